"""Upstream model access: providers, retry, pacing and cost accounting."""
