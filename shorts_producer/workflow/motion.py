"""
Motion Poller
=============

Waits for a scene-motion job with a fixed poll interval and a hard upper
bound. Cancelling the awaiting task stops polling immediately.
"""

import asyncio
import logging

from ..api.base import BinaryRef, GenerationGateway, JobStatus, MotionJob
from ..core.exceptions import (
    CredentialRequired,
    FetchFailure,
    GenerationTimeout,
    MissingArtifact,
)
from ..core.security import redact_api_key

logger = logging.getLogger(__name__)


class MotionPoller:
    """Bounded, cancellable poll loop for ``MotionJob`` handles."""

    def __init__(
        self,
        gateway: GenerationGateway,
        poll_interval: float = 10.0,
        max_wait: float = 600.0,
    ):
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    async def wait(self, job: MotionJob) -> BinaryRef:
        """
        Poll ``job`` until it finishes.

        Returns:
            The finished video

        Raises:
            FetchFailure: If the job reports failure
            MissingArtifact: If the job finished without a video
            GenerationTimeout: If ``max_wait`` elapses first
            CredentialRequired: If the service refuses the poll
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_wait
        attempt = 0

        while True:
            attempt += 1
            try:
                job = await self.gateway.check_motion(job)
            except CredentialRequired:
                raise
            except FetchFailure as e:
                logger.warning(f"Motion poll {attempt} for {job.job_id} failed: {redact_api_key(e.message)}")
            else:
                if job.status is JobStatus.COMPLETED:
                    if job.result is None:
                        raise MissingArtifact("Motion job finished without a video", artifact="scene motion")
                    logger.info(f"Motion job {job.job_id} completed after {attempt} poll(s)")
                    return job.result
                if job.status in (JobStatus.FAILED, JobStatus.CANCELLED):
                    raise FetchFailure(
                        job.error_message or f"Motion job {job.status.value}",
                        operation="scene_motion",
                    )

            if loop.time() >= deadline:
                raise GenerationTimeout(
                    f"Motion job {job.job_id} did not finish within {self.max_wait:g}s",
                    job_id=job.job_id,
                    timeout_seconds=self.max_wait,
                )

            logger.debug(f"Motion job {job.job_id} status: {job.status.value}, waiting...")
            await asyncio.sleep(self.poll_interval)
