"""Tests for the Redis job queue, using fakeredis."""

import asyncio

import fakeredis
import pytest
from redis.exceptions import RedisError

from trinity.exceptions import DuplicateJobError
from trinity.queue import JobOptions, JobQueue, QueueJob, RateLimiter, RepeatingTask, Worker


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def queue(redis, clock: Clock) -> JobQueue:
    return JobQueue(redis, "test-queue", clock=clock)


class TestJobOptions:
    def test_exponential_backoff_doubles(self) -> None:
        options = JobOptions(attempts=5, backoff_delay=30.0)
        assert [options.backoff_for(n) for n in range(1, 5)] == [30.0, 60.0, 120.0, 240.0]

    def test_fixed_backoff(self) -> None:
        options = JobOptions(attempts=3, backoff_delay=5.0, backoff_type="fixed")
        assert options.backoff_for(1) == options.backoff_for(3) == 5.0

    def test_final_attempt(self) -> None:
        job = QueueJob(id="j", name="n", data={}, options=JobOptions(attempts=2), attempts_made=2)
        assert job.is_final_attempt


class TestJobQueue:
    async def test_add_and_take(self, queue: JobQueue) -> None:
        await queue.add("provision", {"agentId": "a1"}, job_id="job-a1")

        job = await queue.next_job()

        assert job is not None
        assert job.id == "job-a1"
        assert job.data == {"agentId": "a1"}
        assert await queue.next_job() is None

    async def test_duplicate_id_rejected(self, queue: JobQueue) -> None:
        await queue.add("provision", {"agentId": "a1"}, job_id="job-a1")

        with pytest.raises(DuplicateJobError) as exc_info:
            await queue.add("provision", {"agentId": "a1"}, job_id="job-a1")

        assert exc_info.value.job_id == "job-a1"
        assert (await queue.counts())["waiting"] == 1

    async def test_duplicate_rejected_while_running(self, queue: JobQueue) -> None:
        await queue.add("provision", {}, job_id="job-1")
        await queue.next_job()

        with pytest.raises(DuplicateJobError):
            await queue.add("provision", {}, job_id="job-1")

    async def test_completed_job_can_be_re_added(self, queue: JobQueue) -> None:
        await queue.add("provision", {}, job_id="job-1")
        job = await queue.next_job()
        await queue.complete(job)

        await queue.add("provision", {}, job_id="job-1")

        assert (await queue.counts())["waiting"] == 1

    async def test_retry_later_waits_for_backoff(self, queue: JobQueue, clock: Clock) -> None:
        await queue.add("provision", {}, job_id="job-1", options=JobOptions(attempts=3, backoff_delay=30.0))
        job = await queue.next_job()

        delay = await queue.retry_later(job, "boom")

        assert delay == 30.0
        clock.advance(29)
        assert await queue.next_job() is None
        clock.advance(1)
        retried = await queue.next_job()
        assert retried is not None
        assert retried.attempts_made == 2
        assert retried.failed_reason == "boom"

    async def test_options_survive_storage(self, queue: JobQueue) -> None:
        options = JobOptions(attempts=5, backoff_delay=30.0, remove_on_complete=False)
        await queue.add("provision", {"n": 1}, job_id="job-1", options=options)

        job = await queue.get_job("job-1")

        assert job.options == options

    async def test_taken_job_is_active_until_completed(self, queue: JobQueue) -> None:
        await queue.add("provision", {}, job_id="job-1")

        job = await queue.next_job()

        assert job.attempts_made == 1
        assert await queue.counts() == {"waiting": 0, "active": 1, "delayed": 0, "failed": 0}
        await queue.complete(job)
        assert (await queue.counts())["active"] == 0


class WorkerCrashed(BaseException):
    """Stands in for the process dying mid-job."""


class TestStalledJobs:
    @pytest.fixture
    def queue(self, redis, clock: Clock) -> JobQueue:
        return JobQueue(redis, "test-queue", clock=clock, lock_duration=0.05)

    async def test_job_of_crashed_worker_is_picked_up(self, queue: JobQueue) -> None:
        """
        Property 2: No lost jobs

        A job whose worker dies mid-run SHALL be run again by another worker
        once its lock expires, and that run SHALL count as a new attempt.
        """

        async def crash(job: QueueJob) -> None:
            raise WorkerCrashed()

        seen: list[int] = []

        async def processor(job: QueueJob) -> None:
            seen.append(job.attempts_made)

        await queue.add("provision", {"agentId": "a1"}, job_id="social-a1", options=JobOptions(attempts=5))
        with pytest.raises(WorkerCrashed):
            await Worker(queue, crash).process_next()
        assert (await queue.counts())["active"] == 1

        await asyncio.sleep(0.1)
        assert await Worker(queue, processor).process_next() is True

        assert seen == [2]
        assert await queue.counts() == {"waiting": 0, "active": 0, "delayed": 0, "failed": 0}
        await queue.add("provision", {"agentId": "a1"}, job_id="social-a1")

    async def test_locked_job_is_left_alone(self, queue: JobQueue) -> None:
        await queue.add("provision", {}, job_id="job-1")
        await queue.next_job()

        assert await queue.recover_stalled() == []
        assert (await queue.counts())["active"] == 1

    async def test_redis_error_while_rescheduling_does_not_lose_job(
        self, queue: JobQueue, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def processor(job: QueueJob) -> None:
            raise RuntimeError("provider down")

        async def broken_retry(job: QueueJob, reason: str) -> float:
            raise RedisError("connection reset")

        await queue.add("provision", {}, job_id="job-1", options=JobOptions(attempts=3))
        monkeypatch.setattr(queue, "retry_later", broken_retry)
        with pytest.raises(RedisError):
            await Worker(queue, processor).process_next()
        monkeypatch.undo()

        await asyncio.sleep(0.1)
        recovered = await queue.recover_stalled()

        assert [job.id for job in recovered] == ["job-1"]
        assert (await queue.counts())["waiting"] == 1

    async def test_stall_on_last_attempt_fails_job(self, queue: JobQueue) -> None:
        failures: list[tuple[str, bool]] = []

        async def crash(job: QueueJob) -> None:
            raise WorkerCrashed()

        async def on_failed(job: QueueJob, error: Exception, final: bool) -> None:
            failures.append((type(error).__name__, final))

        await queue.add("provision", {}, job_id="job-1", options=JobOptions(attempts=1))
        with pytest.raises(WorkerCrashed):
            await Worker(queue, crash).process_next()

        await asyncio.sleep(0.1)
        assert await Worker(queue, crash, on_failed=on_failed).process_next() is False

        assert failures == [("JobStalledError", True)]
        assert await queue.counts() == {"waiting": 0, "active": 0, "delayed": 0, "failed": 1}
        assert "stalled" in (await queue.get_job("job-1")).failed_reason


class TestWorker:
    async def test_success_completes_job(self, queue: JobQueue) -> None:
        seen: list[str] = []

        async def processor(job: QueueJob) -> None:
            seen.append(job.id)

        await queue.add("provision", {}, job_id="job-1")
        worker = Worker(queue, processor)

        assert await worker.process_next() is True
        assert seen == ["job-1"]
        assert await queue.get_job("job-1") is None
        assert await worker.process_next() is False

    async def test_fails_permanently_after_max_attempts(self, queue: JobQueue, clock: Clock) -> None:
        """
        Property 1: Bounded retries

        A job that always fails SHALL run exactly ``attempts`` times, with
        ``on_failed`` reporting ``final`` only on the last one.
        """
        attempts: list[int] = []
        finals: list[bool] = []

        async def processor(job: QueueJob) -> None:
            attempts.append(job.attempts_made)
            raise RuntimeError("provider down")

        async def on_failed(job: QueueJob, error: Exception, final: bool) -> None:
            finals.append(final)

        await queue.add("provision", {}, job_id="job-1", options=JobOptions(attempts=3, backoff_delay=10.0))
        worker = Worker(queue, processor, on_failed=on_failed)

        for _ in range(3):
            assert await worker.process_next() is True
            clock.advance(1000)

        assert attempts == [1, 2, 3]
        assert finals == [False, False, True]
        assert await worker.process_next() is False
        counts = await queue.counts()
        assert counts == {"waiting": 0, "active": 0, "delayed": 0, "failed": 1}
        assert (await queue.get_job("job-1")).failed_reason == "provider down"

    async def test_hook_errors_do_not_break_worker(self, queue: JobQueue) -> None:
        async def processor(job: QueueJob) -> None:
            raise ValueError("bad input")

        async def on_failed(job: QueueJob, error: Exception, final: bool) -> None:
            raise RuntimeError("hook broke")

        await queue.add("provision", {}, job_id="job-1")
        worker = Worker(queue, processor, on_failed=on_failed)

        assert await worker.process_next() is True
        assert (await queue.counts())["failed"] == 1

    async def test_run_stops_on_event(self, queue: JobQueue) -> None:
        processed: list[str] = []
        stop = asyncio.Event()

        async def processor(job: QueueJob) -> None:
            processed.append(job.id)
            stop.set()

        await queue.add("provision", {}, job_id="job-1")
        await asyncio.wait_for(Worker(queue, processor, poll_interval=0.01).run(stop), timeout=2)

        assert processed == ["job-1"]


class TestRateLimiter:
    async def test_second_start_in_window_waits(self, queue: JobQueue) -> None:
        limiter = RateLimiter(queue, max_jobs=1, duration=15)

        assert await limiter.reserve() == 0
        wait = await limiter.reserve()

        assert 0 < wait <= 15

    async def test_limited_worker_skips_jobs(self, queue: JobQueue, monkeypatch: pytest.MonkeyPatch) -> None:
        slept: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        monkeypatch.setattr("trinity.queue.asyncio.sleep", fake_sleep)
        processed: list[str] = []

        async def processor(job: QueueJob) -> None:
            processed.append(job.id)

        await queue.add("provision", {}, job_id="job-1")
        await queue.add("provision", {}, job_id="job-2")
        worker = Worker(queue, processor, limiter=RateLimiter(queue, max_jobs=1, duration=15))

        assert await worker.process_next() is True
        assert await worker.process_next() is False

        assert processed == ["job-1"]
        assert len(slept) == 1
        assert (await queue.counts())["waiting"] == 1
        assert (await queue.get_job("job-2")).attempts_made == 0

    async def test_empty_polls_keep_the_slot(self, queue: JobQueue) -> None:
        processed: list[str] = []

        async def processor(job: QueueJob) -> None:
            processed.append(job.id)

        worker = Worker(queue, processor, limiter=RateLimiter(queue, max_jobs=1, duration=15))
        for _ in range(3):
            assert await worker.process_next() is False

        await queue.add("provision", {}, job_id="job-1")

        assert await worker.process_next() is True
        assert processed == ["job-1"]


async def test_repeating_task_runs_until_stopped() -> None:
    stop = asyncio.Event()
    runs: list[int] = []

    async def tick() -> None:
        runs.append(len(runs))
        if len(runs) == 3:
            stop.set()

    await asyncio.wait_for(RepeatingTask("tick", 0.001, tick).run(stop), timeout=2)

    assert runs == [0, 1, 2]


async def test_repeating_task_survives_errors() -> None:
    stop = asyncio.Event()
    calls: list[int] = []

    async def flaky() -> None:
        calls.append(1)
        if len(calls) == 2:
            stop.set()
        raise RuntimeError("transient")

    await asyncio.wait_for(RepeatingTask("flaky", 0.001, flaky).run(stop), timeout=2)

    assert len(calls) == 2
