# backend/poller.py
"""
Poll a prediction until the backend reports a terminal status.

The loop trusts the backend verbatim: each round replaces the local snapshot
with whatever the status endpoint returned. Unknown or missing status labels
count as "still pending". Clock and sleep are injectable so the state machine
can be driven without real delays.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from .errors import PollTimeout
from .model import GenerationJob, PollPolicy
from .replicate_client import ReplicateClient

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class JobPoller:
    def __init__(
        self,
        client: ReplicateClient,
        policy: PollPolicy,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.policy = policy
        self.clock = clock
        self.sleep = sleep

    async def poll(self, job: GenerationJob) -> GenerationJob:
        """
        Return the first terminal snapshot of `job`.
        Raises PollTimeout if max_total_wait elapses first.
        """
        started = self.clock()
        rounds = 0

        while not job.status.is_terminal:
            elapsed = self.clock() - started
            remaining = self.policy.max_total_wait - elapsed
            # elapsed == max_total_wait counts as expired; a zero-length sleep would spin otherwise
            if remaining <= 0:
                logger.warning(
                    "[Poller] Gave up on %s after %.1fs (%d rounds), last status=%s",
                    job.id, elapsed, rounds, job.status.value,
                )
                raise PollTimeout(detail=f"prediction {job.id} still {job.status.value} after {elapsed:.1f}s")

            # Không ngủ quá deadline
            await self.sleep(min(self.policy.interval, remaining))
            rounds += 1
            # Status check only gets what is left of the budget plus half an interval
            left = self.policy.max_total_wait - (self.clock() - started)
            job = await self._refresh(job, timeout=max(left, 0) + self.policy.interval / 2)

        logger.info("[Poller] Prediction %s finished: %s (%d rounds)", job.id, job.status.value, rounds)
        return job

    async def _refresh(self, job: GenerationJob, timeout: float) -> GenerationJob:
        """Fetch the latest snapshot; a failed or slow round keeps the previous one."""
        try:
            r = await asyncio.wait_for(self.client.get_prediction(job.id), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("[Poller] Status check for %s took longer than %.1fs", job.id, timeout)
            return job
        except httpx.HTTPError as e:
            logger.warning("[Poller] Status check for %s failed: %s", job.id, e)
            return job

        if not r.is_success:
            logger.warning("[Poller] Status check for %s returned %s", job.id, r.status_code)
            return job

        try:
            data = r.json()
        except ValueError:
            logger.warning("[Poller] Status check for %s returned non-JSON body", job.id)
            return job

        if not isinstance(data, dict):
            return job

        snapshot = GenerationJob.from_payload(data, fallback_id=job.id)
        if snapshot.status != job.status:
            logger.debug("[Poller] %s: %s -> %s", job.id, job.status.value, snapshot.status.value)
        return snapshot

