from . import downloads, jobs, pricing

__all__ = ["downloads", "jobs", "pricing"]
