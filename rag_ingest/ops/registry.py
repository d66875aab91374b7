"""In-memory job table shared by the engine and its runners."""

import threading
from typing import Iterable, List, Optional, Union

from .models import Job, JobSnapshot, JobState


class JobRegistry:
    """
    Thread-safe map of job id to live Job.

    The registry lock only guards the map itself; status changes go through
    each job's own compare-and-set so readers never wait on a running job.
    """

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def insert(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Duplicate job id: {job.id}")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list(self) -> List[JobSnapshot]:
        """Snapshot copies of every job."""
        with self._lock:
            jobs = list(self._jobs.values())
        return [job.snapshot() for job in jobs]

    def transition(
        self,
        job_id: str,
        from_state: Union[JobState, Iterable[JobState]],
        to_state: JobState,
    ) -> bool:
        """
        Move a job from ``from_state`` to ``to_state``.

        Returns:
            False if the job is unknown, already terminal, or not in ``from_state``
        """
        job = self.get(job_id)
        if job is None:
            return False
        return job.compare_and_set(from_state, to_state)

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs
