"""
Redis-backed job queue with deduplication, backoff retries and rate limiting.

Layout under ``{prefix}:{queue}``:

- ``job:{id}``: hash with name, JSON data, options and attempt count. Its
  existence is the deduplication record; adding an id that already exists
  raises :class:`DuplicateJobError`.
- ``wait``: list of ids ready to run.
- ``active``: list of ids taken by a worker. Each carries a ``lock:{id}``
  key that the worker keeps alive while it runs the job; an active id whose
  lock has expired belongs to a worker that died and is recovered by
  :meth:`JobQueue.recover_stalled`.
- ``delayed``: sorted set of ids scored by the unix time they become ready.
- ``failed``: set of ids that exhausted their attempts.
- ``limiter``: counter for the rate limiter window.
"""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from trinity.exceptions import DuplicateJobError, JobStalledError
from trinity.logging import get_logger

logger = get_logger("queue")

DEFAULT_LOCK_DURATION = 30.0

_clients: dict[str, Redis] = {}


def get_redis(url: str) -> Redis:
    """Return a shared client for ``url`` (lazy, one per URL)."""
    if url not in _clients:
        _clients[url] = Redis.from_url(url, decode_responses=True)
    return _clients[url]


@dataclass
class JobOptions:
    """Retry policy for one job."""

    attempts: int = 1
    backoff_delay: float = 0.0  # seconds before the first retry
    backoff_type: str = "exponential"  # or "fixed"
    remove_on_complete: bool = True

    def backoff_for(self, attempts_made: int) -> float:
        """Delay before the retry that follows attempt number ``attempts_made``."""
        if self.backoff_type == "fixed":
            return self.backoff_delay
        return self.backoff_delay * (2 ** (attempts_made - 1))


@dataclass
class QueueJob:
    id: str
    name: str
    data: dict[str, Any]
    options: JobOptions = field(default_factory=JobOptions)
    attempts_made: int = 0
    failed_reason: str | None = None

    @property
    def is_final_attempt(self) -> bool:
        return self.attempts_made >= self.options.attempts


class JobQueue:
    """
    One named queue.

    Args:
        redis: Async Redis client (``decode_responses=True``)
        name: Queue name
        prefix: Key prefix shared by all queues
        clock: Unix-time source used for delayed jobs
        lock_duration: Seconds a taken job stays locked without a heartbeat
    """

    def __init__(
        self,
        redis: Redis,
        name: str,
        prefix: str = "trinity",
        clock: Callable[[], float] = time.time,
        lock_duration: float = DEFAULT_LOCK_DURATION,
    ) -> None:
        self.redis = redis
        self.name = name
        self.clock = clock
        self.lock_duration = lock_duration
        self._base = f"{prefix}:{name}"

    def _job_key(self, job_id: str) -> str:
        return f"{self._base}:job:{job_id}"

    def _lock_key(self, job_id: str) -> str:
        return f"{self._base}:lock:{job_id}"

    @property
    def wait_key(self) -> str:
        return f"{self._base}:wait"

    @property
    def active_key(self) -> str:
        return f"{self._base}:active"

    @property
    def delayed_key(self) -> str:
        return f"{self._base}:delayed"

    @property
    def failed_key(self) -> str:
        return f"{self._base}:failed"

    @property
    def limiter_key(self) -> str:
        return f"{self._base}:limiter"

    @property
    def _lock_ms(self) -> int:
        return max(1, int(self.lock_duration * 1000))

    async def add(
        self,
        name: str,
        data: dict[str, Any],
        job_id: str,
        options: JobOptions | None = None,
    ) -> QueueJob:
        """
        Enqueue a job under a caller-chosen id.

        Raises:
            DuplicateJobError: If a job with ``job_id`` is waiting, delayed,
                running or failed
        """
        options = options or JobOptions()
        key = self._job_key(job_id)
        if not await self.redis.hsetnx(key, "name", name):
            raise DuplicateJobError(job_id)

        await self.redis.hset(
            key,
            mapping={
                "data": json.dumps(data),
                "options": json.dumps(asdict(options)),
                "attempts_made": 0,
            },
        )
        await self.redis.rpush(self.wait_key, job_id)
        logger.debug("Queued %s job %s on %s", name, job_id, self.name)
        return QueueJob(id=job_id, name=name, data=data, options=options)

    async def get_job(self, job_id: str) -> QueueJob | None:
        raw = await self.redis.hgetall(self._job_key(job_id))
        if not raw or "data" not in raw:
            return None
        return QueueJob(
            id=job_id,
            name=raw["name"],
            data=json.loads(raw["data"]),
            options=JobOptions(**json.loads(raw["options"])),
            attempts_made=int(raw.get("attempts_made", 0)),
            failed_reason=raw.get("failed_reason"),
        )

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose time has come onto the wait list."""
        due = await self.redis.zrangebyscore(self.delayed_key, 0, self.clock())
        moved = 0
        for job_id in due:
            # Only the caller that removes the entry moves it.
            if await self.redis.zrem(self.delayed_key, job_id):
                await self.redis.rpush(self.wait_key, job_id)
                moved += 1
        return moved

    async def next_job(self) -> QueueJob | None:
        """
        Take the next ready job, lock it and count the attempt.

        The id moves from ``wait`` to ``active`` in a single command, so a
        job is always on one of the lists until it completes or fails.
        """
        await self.promote_delayed()
        while True:
            job_id = await self.redis.lmove(self.wait_key, self.active_key, "LEFT", "RIGHT")
            if job_id is None:
                return None
            await self.redis.set(self._lock_key(job_id), "1", px=self._lock_ms)
            job = await self.get_job(job_id)
            if job is not None:
                job.attempts_made = await self.redis.hincrby(self._job_key(job_id), "attempts_made", 1)
                return job
            logger.warning("Dropping queue entry %s with no job record", job_id)
            await self._leave_active(job_id)

    async def extend_lock(self, job: QueueJob) -> None:
        await self.redis.pexpire(self._lock_key(job.id), self._lock_ms)

    async def _leave_active(self, job_id: str, *commands: Callable[[Any], Any]) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.active_key, 1, job_id)
            pipe.delete(self._lock_key(job_id))
            for command in commands:
                command(pipe)
            await pipe.execute()

    async def release(self, job: QueueJob) -> None:
        """Put a taken job back at the head of ``wait`` without counting the attempt."""
        await self._leave_active(
            job.id,
            lambda pipe: pipe.lpush(self.wait_key, job.id),
            lambda pipe: pipe.hincrby(self._job_key(job.id), "attempts_made", -1),
        )
        job.attempts_made -= 1

    async def complete(self, job: QueueJob) -> None:
        if job.options.remove_on_complete:
            await self._leave_active(job.id, lambda pipe: pipe.delete(self._job_key(job.id)))
        else:
            completed_at = self.clock()
            await self._leave_active(
                job.id, lambda pipe: pipe.hset(self._job_key(job.id), "completed_at", completed_at)
            )

    async def retry_later(self, job: QueueJob, reason: str) -> float:
        delay = job.options.backoff_for(job.attempts_made)
        ready_at = self.clock() + delay
        await self._leave_active(
            job.id,
            lambda pipe: pipe.hset(self._job_key(job.id), "failed_reason", reason),
            lambda pipe: pipe.zadd(self.delayed_key, {job.id: ready_at}),
        )
        return delay

    async def fail(self, job: QueueJob, reason: str) -> None:
        await self._leave_active(
            job.id,
            lambda pipe: pipe.hset(self._job_key(job.id), "failed_reason", reason),
            lambda pipe: pipe.sadd(self.failed_key, job.id),
        )

    async def recover_stalled(self) -> list[QueueJob]:
        """
        Return active jobs whose lock expired to ``wait``, or fail them.

        The stalled run already counted as an attempt, so a job that stalled
        on its last attempt is moved to the failed set instead.

        Returns:
            The recovered jobs
        """
        recovered = []
        for job_id in await self.redis.lrange(self.active_key, 0, -1):
            if await self.redis.exists(self._lock_key(job_id)):
                continue
            # Only the caller that removes the entry recovers it.
            if not await self.redis.lrem(self.active_key, 1, job_id):
                continue
            job = await self.get_job(job_id)
            if job is None:
                continue
            reason = str(JobStalledError(job_id))
            job.failed_reason = reason
            if job.is_final_attempt:
                await self.fail(job, reason)
                logger.error("Job %s stalled on its last attempt (%d)", job_id, job.attempts_made)
            else:
                await self.redis.hset(self._job_key(job_id), "failed_reason", reason)
                await self.redis.rpush(self.wait_key, job_id)
                logger.warning(
                    "Job %s stalled on attempt %d/%d, re-queued",
                    job_id, job.attempts_made, job.options.attempts,
                )
            recovered.append(job)
        return recovered

    async def counts(self) -> dict[str, int]:
        return {
            "waiting": await self.redis.llen(self.wait_key),
            "active": await self.redis.llen(self.active_key),
            "delayed": await self.redis.zcard(self.delayed_key),
            "failed": await self.redis.scard(self.failed_key),
        }


class RateLimiter:
    """
    At most ``max_jobs`` starts per ``duration`` seconds for a queue.

    The window lives in Redis, so every worker process on the queue shares it.
    """

    def __init__(self, queue: JobQueue, max_jobs: int, duration: float) -> None:
        self.queue = queue
        self.max_jobs = max_jobs
        self.duration_ms = int(duration * 1000)

    async def reserve(self) -> float:
        """
        Try to take a slot.

        Returns:
            0 if a slot was taken, otherwise seconds until the window resets
        """
        redis = self.queue.redis
        key = self.queue.limiter_key
        count = await redis.incr(key)
        if count == 1:
            await redis.pexpire(key, self.duration_ms)
        if count <= self.max_jobs:
            return 0.0
        ttl = await redis.pttl(key)
        if ttl < 0:
            # Window key lost its expiry; start a new one.
            await redis.pexpire(key, self.duration_ms)
            ttl = self.duration_ms
        return ttl / 1000


Processor = Callable[[QueueJob], Awaitable[Any]]
FailedHook = Callable[[QueueJob, Exception, bool], Awaitable[None]]


class Worker:
    """
    Consumes one queue, one job at a time.

    A processor exception counts as a failed attempt: the job is re-scheduled
    with backoff until ``options.attempts`` is reached, then moved to the
    failed set. A job left behind by a worker that died counts the same way
    once its lock expires. ``on_failed(job, error, final)`` runs after every
    failed attempt; ``final`` is True only for the last one.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: Processor,
        limiter: RateLimiter | None = None,
        on_failed: FailedHook | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.queue = queue
        self.processor = processor
        self.limiter = limiter
        self.on_failed = on_failed
        self.poll_interval = poll_interval

    async def process_next(self) -> bool:
        """
        Run the next ready job, if any.

        Returns:
            True if a job was run
        """
        for stalled in await self.queue.recover_stalled():
            await self._notify_failed(stalled, JobStalledError(stalled.id), stalled.is_final_attempt)

        job = await self.queue.next_job()
        if job is None:
            return False

        if self.limiter is not None:
            wait = await self.limiter.reserve()
            if wait > 0:
                await self.queue.release(job)
                logger.debug("Rate limited on %s for %.1fs", self.queue.name, wait)
                await asyncio.sleep(wait)
                return False

        heartbeat = asyncio.create_task(self._keep_locked(job))
        error: Exception | None = None
        try:
            await self.processor(job)
        except Exception as e:
            error = e
        finally:
            heartbeat.cancel()

        if error is not None:
            await self._handle_failure(job, error)
        else:
            await self.queue.complete(job)
            logger.info("Job %s completed on attempt %d", job.id, job.attempts_made)
        return True

    async def _keep_locked(self, job: QueueJob) -> None:
        while True:
            await asyncio.sleep(self.queue.lock_duration / 2)
            try:
                await self.queue.extend_lock(job)
            except RedisError as e:
                logger.warning("Could not extend lock for job %s: %s", job.id, e)

    async def _handle_failure(self, job: QueueJob, error: Exception) -> None:
        reason = str(error) or type(error).__name__
        final = job.is_final_attempt
        if final:
            await self.queue.fail(job, reason)
            logger.error("Job %s failed permanently after %d attempts: %s", job.id, job.attempts_made, reason)
        else:
            delay = await self.queue.retry_later(job, reason)
            logger.warning(
                "Job %s attempt %d/%d failed, retrying in %.0fs: %s",
                job.id, job.attempts_made, job.options.attempts, delay, reason,
            )
        await self._notify_failed(job, error, final)

    async def _notify_failed(self, job: QueueJob, error: Exception, final: bool) -> None:
        if self.on_failed is None:
            return
        try:
            await self.on_failed(job, error, final)
        except Exception:
            logger.exception("on_failed hook raised for job %s", job.id)

    async def run(self, stop: asyncio.Event) -> None:
        """Process jobs until ``stop`` is set."""
        logger.info("Worker started on %s", self.queue.name)
        while not stop.is_set():
            try:
                processed = await self.process_next()
            except RedisError:
                logger.exception("Queue %s unavailable", self.queue.name)
                processed = False
            if not processed:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        logger.info("Worker stopped on %s", self.queue.name)


class RepeatingTask:
    """Runs a coroutine function every ``interval`` seconds, one run at a time."""

    def __init__(self, name: str, interval: float, fn: Callable[[], Awaitable[Any]]) -> None:
        self.name = name
        self.interval = interval
        self.fn = fn

    async def run(self, stop: asyncio.Event, run_immediately: bool = True) -> None:
        if not run_immediately:
            await self._sleep(stop)
        while not stop.is_set():
            try:
                await self.fn()
            except Exception:
                logger.exception("Repeating task %s failed", self.name)
            await self._sleep(stop)

    async def _sleep(self, stop: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass
