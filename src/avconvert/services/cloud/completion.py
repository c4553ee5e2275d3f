"""
Job completion strategies for the cloud client.

The upload endpoint starts conversion implicitly; what happens next depends
on what the remote service exposes:

- FixedDelayCompletion: the service has no reliable status endpoint. Wait a
  fixed delay, then hand back the download URL. A failed download is the
  authoritative failure signal in this mode.
- PollingCompletion: poll the job resource with exponential backoff until it
  reports a terminal status or the wait budget runs out.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Callable

from avconvert.errors import JobFailedError, JobTimeoutError

if TYPE_CHECKING:
    from avconvert.services.cloud.client import CloudJobClient

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class CompletionStrategy(ABC):
    """Waits for an uploaded job to become downloadable."""

    @abstractmethod
    async def wait(self, client: "CloudJobClient", job_id: str) -> str:
        """
        Returns:
            Download URL of the converted file

        Raises:
            JobFailedError: If the remote reports an error
            JobTimeoutError: If no terminal state is reached in time
        """


class FixedDelayCompletion(CompletionStrategy):
    """Optimistic wait used when the service has no status endpoint."""

    def __init__(self, delay: float = 5.0, sleep: Sleeper = asyncio.sleep):
        self.delay = delay
        self._sleep = sleep

    async def wait(self, client: "CloudJobClient", job_id: str) -> str:
        logger.info(f"Waiting {self.delay}s for job {job_id} (no status endpoint)")
        await self._sleep(self.delay)
        return client.download_url_for(job_id)


class PollingCompletion(CompletionStrategy):
    """Status polling with exponential backoff inside a bounded wait budget."""

    READY_STATUSES = frozenset({"completed", "ready", "finished"})
    FAILED_STATUSES = frozenset({"failed", "error", "cancelled", "canceled"})

    def __init__(
        self,
        interval: float = 2.0,
        backoff: float = 1.5,
        max_interval: float = 30.0,
        max_wait: float = 300.0,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.interval = interval
        self.backoff = backoff
        self.max_interval = max_interval
        self.max_wait = max_wait
        self._sleep = sleep

    async def wait(self, client: "CloudJobClient", job_id: str) -> str:
        waited = 0.0
        interval = self.interval

        while True:
            job = await client.get_job(job_id)
            status = job.status.lower()
            logger.debug(f"Job {job_id} status={status} progress={job.progress}")

            if job.error or status in self.FAILED_STATUSES:
                raise JobFailedError(job_id, job.error or f"remote status '{job.status}'")

            if status in self.READY_STATUSES:
                if job.result and job.result.url:
                    return job.result.url
                return client.download_url_for(job_id)

            if waited >= self.max_wait:
                raise JobTimeoutError(job_id, waited)

            delay = min(interval, self.max_wait - waited)
            await self._sleep(delay)
            waited += delay
            interval = min(interval * self.backoff, self.max_interval)
