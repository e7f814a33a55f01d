"""Queue worker tests: retries, failure recording and concurrency."""

import asyncio

import pytest

from autoflow.config import QueueOptions
from autoflow.contracts import Job
from autoflow.errors import UnrecoverableError
from autoflow.execute import QueueWorker
from autoflow.transports.inmemory import InMemoryTransport
from autoflow.utils.ratelimit import RateLimiter
from autoflow.utils.retry import compute_backoff

QUEUE = "work"


def _job(**kwargs) -> Job:
    defaults = {"attempts": 3, "backoff_delay": 1.0}
    return Job(queue=QUEUE, name="process", data={}, **{**defaults, **kwargs})


@pytest.mark.asyncio
async def test_successful_job_is_recorded_completed():
    transport = InMemoryTransport()
    seen = []

    async def handler(job):
        seen.append(job.job_id)

    worker = QueueWorker(transport, QUEUE, handler)
    job = _job()
    assert await worker.process(job) is True

    assert seen == [job.job_id]
    completed = await transport.finished(QUEUE, "completed")
    assert [j.job_id for j in completed] == [job.job_id]
    assert completed[0].finished_at is not None


@pytest.mark.asyncio
async def test_failed_job_is_retried_with_backoff():
    transport = InMemoryTransport()

    async def handler(job):
        raise RuntimeError("flaky")

    worker = QueueWorker(transport, QUEUE, handler)
    assert await worker.process(_job(backoff_delay=2.0)) is False

    delayed = transport._delayed[QUEUE]
    assert len(delayed) == 1
    _, _, (_, retried) = delayed[0]
    assert retried.attempt == 2
    assert await transport.finished(QUEUE, "failed") == []


@pytest.mark.asyncio
async def test_exhausted_job_is_recorded_failed_and_hook_called():
    transport = InMemoryTransport()
    exhausted = []

    async def handler(job):
        raise RuntimeError("still broken")

    async def on_exhausted(job, error):
        exhausted.append((job.job_id, str(error)))

    worker = QueueWorker(transport, QUEUE, handler, on_exhausted=on_exhausted)
    job = _job(attempt=3)
    await worker.process(job)

    assert transport.pending(QUEUE) == 0
    failed = await transport.finished(QUEUE, "failed")
    assert failed[0].failed_reason == "still broken"
    assert exhausted == [(job.job_id, "still broken")]


@pytest.mark.asyncio
async def test_unrecoverable_error_skips_retries():
    transport = InMemoryTransport()

    async def handler(job):
        raise UnrecoverableError("quota exceeded")

    worker = QueueWorker(transport, QUEUE, handler)
    await worker.process(_job())

    assert transport.pending(QUEUE) == 0
    failed = await transport.finished(QUEUE, "failed")
    assert failed[0].failed_reason == "quota exceeded"


@pytest.mark.asyncio
async def test_start_respects_concurrency():
    transport = InMemoryTransport(poll_interval=0.01)
    running = 0
    peak = 0
    done = []

    async def handler(job):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.02)
        running -= 1
        done.append(job.job_id)

    for _ in range(5):
        await transport.publish(QUEUE, _job())

    worker = QueueWorker(transport, QUEUE, handler, QueueOptions(concurrency=2))
    await worker.start(lifespan=0.3)

    assert len(done) == 5
    assert peak == 2


def test_compute_backoff_is_exponential():
    assert compute_backoff(1, 2.0) == 2.0
    assert compute_backoff(2, 2.0) == 4.0
    assert compute_backoff(3, 1.0) == 4.0
    assert 1.0 <= compute_backoff(1, 1.0, jitter=0.5) <= 1.5


@pytest.mark.asyncio
async def test_rate_limiter_spaces_out_calls():
    limiter = RateLimiter(max_calls=2, period=0.1)
    loop = asyncio.get_running_loop()
    start = loop.time()
    for _ in range(3):
        await limiter.acquire()
    assert loop.time() - start >= 0.09


def test_rate_limiter_rejects_zero():
    with pytest.raises(ValueError):
        RateLimiter(max_calls=0)
