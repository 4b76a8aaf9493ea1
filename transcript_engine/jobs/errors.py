"""Job-level error taxonomy."""

from __future__ import annotations


class JobError(Exception):
  """Base class for job lifecycle errors."""


class InvalidRequestError(JobError):
  """Malformed or missing request fields; raised before any work starts."""


class DuplicateJobError(InvalidRequestError):
  """A job with the same identifier already exists."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} already exists.")
    self.job_id = job_id


class PlanMismatchError(JobError):
  """Participant metadata does not match the requested plan structure."""


class InvalidTransitionError(JobError):
  """A pause/resume/cancel request is incompatible with the current job state."""

  def __init__(self, job_id: str, action: str, state: str) -> None:
    super().__init__(f"Cannot {action} job in state: {state}")
    self.job_id = job_id
    self.action = action
    self.state = state


class JobNotFoundError(JobError):
  """The job identifier is unknown."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} not found")
    self.job_id = job_id