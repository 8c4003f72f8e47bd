"""Campaign dispatch for PhishSim.

This module implements the background sending path:
1. ``DispatchSupervisor`` accepts send requests as jobs and runs one
   asyncio worker per campaign, so a request is acknowledged immediately
2. ``CampaignDispatcher`` walks a campaign's unsent targets, claims each
   one, renders its message, calls the transport and marks it sent

Sends within a campaign are sequential and spaced at least
``send_interval`` seconds apart, whether or not the previous send worked.
A failed send releases the claim and leaves the target unsent for a later
dispatch; it never stops the batch and is never retried here.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Deque, Dict, List, Optional

from .. import crud
from ..config import Settings
from .renderer import render_message

logger = logging.getLogger(__name__)


class DispatchQueueFull(Exception):
    """Raised when too many dispatch jobs are already waiting."""


class JobStatus:
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class DispatchJob:
    """One accepted send request and its progress."""
    campaign_id: int
    queued: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: str = JobStatus.QUEUED
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None


class SendThrottle:
    """Spaces the sends of one dispatch run at least ``interval`` seconds apart."""

    def __init__(self, interval: float, sleep: Callable[[float], Awaitable], clock: Callable[[], float]):
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self._last_send: Optional[float] = None

    async def wait(self):
        """Wait out the rest of the interval, then mark a send as started."""
        if self._last_send is not None:
            remaining = self.interval - (self._clock() - self._last_send)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_send = self._clock()


class CampaignDispatcher:
    """
    Sends a campaign's unsent emails one at a time.

    Usage:
        dispatcher = CampaignDispatcher(session_factory, mailer, settings)
        await dispatcher.run(campaign_id)
    """

    def __init__(
        self,
        db_session_factory: Callable,
        transport,
        settings: Settings,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            db_session_factory: Callable that returns a DB session
            transport: Object with ``send(from, to, subject, html) -> bool``
            settings: Public base URL, send interval and claim TTL
            sleep: Awaitable used for the inter-send delay
            clock: Monotonic clock used to space sends
        """
        self.db_session_factory = db_session_factory
        self.transport = transport
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

    async def _deliver(
        self, throttle: SendThrottle, from_address: str, to_address: str, subject: str, body: str
    ) -> bool:
        await throttle.wait()
        try:
            return bool(await asyncio.to_thread(
                self.transport.send, from_address, to_address, subject, body
            ))
        except Exception:
            logger.exception(f"Transport raised while sending to {to_address}")
            return False

    async def run(self, campaign_id: int, job: Optional[DispatchJob] = None) -> DispatchJob:
        """Dispatch every unsent, unclaimed target of ``campaign_id``."""
        if job is None:
            job = DispatchJob(campaign_id=campaign_id)

        job.status = JobStatus.RUNNING
        job.started_at = datetime.utcnow()

        db = self.db_session_factory()
        try:
            campaign = crud.get_campaign(db, campaign_id)
            if campaign is None:
                job.status = JobStatus.FAILED
                job.error = "Campaign not found"
                logger.warning(f"Dispatch for missing campaign {campaign_id}")
                return job

            stale_before = crud.claim_cutoff(self.settings.claim_ttl_seconds)
            targets = crud.get_dispatchable_targets(db, campaign_id, stale_before)
            throttle = SendThrottle(self.settings.send_interval, self._sleep, self._clock)
            logger.info(f"Dispatching campaign {campaign_id}: {len(targets)} unsent targets")

            for target in targets:
                if not crud.claim_target(db, target.id, stale_before):
                    # Sent or claimed by another worker since we read it
                    job.skipped += 1
                    continue

                message = render_message(campaign, target, self.settings.public_base_url)
                ok = await self._deliver(throttle, campaign.from_address, target.email, message.subject, message.body)

                if ok:
                    crud.mark_target_sent(db, target.id)
                    job.sent += 1
                else:
                    crud.release_claim(db, target.id)
                    job.failed += 1
                    logger.warning(f"Send failed for target {target.id} ({target.email}); left unsent")

            job.status = JobStatus.COMPLETED
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            raise
        finally:
            job.finished_at = datetime.utcnow()
            db.close()

        logger.info(
            f"Dispatch finished for campaign {campaign_id}: "
            f"sent={job.sent} failed={job.failed} skipped={job.skipped}"
        )
        return job


class DispatchSupervisor:
    """
    Runs dispatch jobs in the background, one worker task per campaign.

    Jobs for the same campaign run one after another; different campaigns
    run concurrently. At most ``max_pending`` jobs may be waiting.
    """

    def __init__(self, dispatcher: CampaignDispatcher, max_pending: int = 100, history: int = 20):
        self.dispatcher = dispatcher
        self.max_pending = max_pending
        self.history = history
        self._pending: Dict[int, Deque[DispatchJob]] = {}
        self._workers: Dict[int, asyncio.Task] = {}
        self._jobs: Dict[int, Deque[DispatchJob]] = {}

    @property
    def pending_count(self) -> int:
        return sum(len(q) for q in self._pending.values())

    def is_running(self, campaign_id: int) -> bool:
        task = self._workers.get(campaign_id)
        return task is not None and not task.done()

    def submit(self, campaign_id: int, queued: int = 0) -> DispatchJob:
        """
        Accept a dispatch request and return immediately.

        Must be called from within a running event loop.
        """
        if self.pending_count >= self.max_pending:
            raise DispatchQueueFull(f"{self.pending_count} dispatch jobs already pending")

        job = DispatchJob(campaign_id=campaign_id, queued=queued)
        self._pending.setdefault(campaign_id, deque()).append(job)
        self._jobs.setdefault(campaign_id, deque(maxlen=self.history)).append(job)

        if not self.is_running(campaign_id):
            self._workers[campaign_id] = asyncio.create_task(
                self._worker(campaign_id), name=f"dispatch-campaign-{campaign_id}"
            )
        logger.info(f"Queued dispatch job {job.id} for campaign {campaign_id} ({queued} targets)")
        return job

    async def _worker(self, campaign_id: int):
        queue = self._pending[campaign_id]
        try:
            while queue:
                job = queue.popleft()
                try:
                    await self.dispatcher.run(campaign_id, job)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    job.status = JobStatus.FAILED
                    job.error = str(e)
                    job.finished_at = datetime.utcnow()
                    logger.exception(f"Dispatch job {job.id} for campaign {campaign_id} failed")
        finally:
            self._workers.pop(campaign_id, None)
            if not queue:
                self._pending.pop(campaign_id, None)

    def jobs_for(self, campaign_id: int) -> List[DispatchJob]:
        """Recent jobs for a campaign, oldest first."""
        return list(self._jobs.get(campaign_id, ()))

    async def wait(self, campaign_id: Optional[int] = None):
        """Wait for the worker of one campaign, or all workers, to finish."""
        if campaign_id is not None:
            tasks = [self._workers[campaign_id]] if campaign_id in self._workers else []
        else:
            tasks = list(self._workers.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self):
        """Cancel all running workers."""
        tasks = list(self._workers.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        for queue in self._pending.values():
            for job in queue:
                job.status = JobStatus.CANCELLED
        self._pending.clear()
        logger.info("Dispatch supervisor stopped")
