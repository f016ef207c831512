"""Domain exceptions for the job subsystem."""

from __future__ import annotations


class JobError(Exception):
    """Base class for job subsystem errors."""


class StoreError(JobError):
    """The job store could not be read or written."""


class JobNotFoundError(JobError):
    """No job matches the requested id or user/type."""


class JobOwnershipError(JobError):
    """The caller does not own the targeted job."""


class JobStateError(JobError):
    """The job is in a state that does not allow the requested transition."""


class DuplicateActiveJobError(JobError):
    """Another pending/processing job already holds the user+type slot."""


class JobCanceledError(JobError):
    """Raised at a checkpoint once the running job has been canceled."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} was canceled")
        self.job_id = job_id
