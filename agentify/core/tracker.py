"""
Job Status Tracker - poll a job until it reaches a terminal status.

One primitive, `poll_until_terminal`, drives both loops:
- the bounded server-side wait (POST /compile/status), budgeted in ms
- the client-side loop (CompileClient), budgeted in attempts

Running out of budget is returned as data (a failed job whose error says
"timeout"), never raised: the caller needs an answer either way.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from agentify.core.errors import DispatchError
from agentify.core.jobs import CompilationJob, timeout_job
from agentify.core.metrics import metrics

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 5.0
CLIENT_MAX_ATTEMPTS = 60  # 5 minutes at 5 s
DEFAULT_WAIT_TIMEOUT_MS = 300_000

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (DispatchError,)


async def poll_until_terminal(
    job_id: str,
    fetch: Callable[[str], Awaitable[CompilationJob]],
    *,
    interval: float = POLL_INTERVAL_S,
    max_attempts: Optional[int] = None,
    timeout: Optional[float] = None,
    transient_errors: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_poll: Optional[Callable[[int, CompilationJob], None]] = None,
) -> CompilationJob:
    """
    Call `fetch(job_id)` every `interval` seconds until a terminal status.

    Args:
        job_id: Job to observe
        fetch: Async status lookup
        interval: Seconds between polls
        max_attempts: Stop after this many fetches (None = unbounded)
        timeout: Stop after this many seconds (None = unbounded)
        transient_errors: Exceptions retried within the budget
        sleep: Async sleep (injectable for tests)
        clock: Monotonic clock (injectable for tests)
        on_poll: Callback (attempt, job) after each successful fetch

    Returns:
        The terminal job, or a synthetic failed job when the budget ran out.
        If the last attempt itself failed, its error is the failure message.
    """
    if max_attempts is None and timeout is None:
        raise ValueError("poll_until_terminal needs max_attempts or timeout")

    deadline = clock() + timeout if timeout is not None else None
    attempt = 0
    last_job: Optional[CompilationJob] = None
    last_error: Optional[Exception] = None

    while True:
        attempt += 1
        try:
            job = await fetch(job_id)
        except transient_errors as e:
            last_error = e
            logger.warning(
                f"poll_error job_id={job_id} attempt={attempt} error_type={type(e).__name__}"
            )
        else:
            last_error = None
            last_job = job
            if on_poll is not None:
                on_poll(attempt, job)
            if job.is_terminal:
                logger.info(f"poll_done job_id={job_id} attempt={attempt} status={job.status.value}")
                return job

        if max_attempts is not None and attempt >= max_attempts:
            break
        if deadline is not None:
            remaining = deadline - clock()
            if remaining <= 0:
                break
            await sleep(min(interval, remaining))
        else:
            await sleep(interval)

    logs = list(last_job.logs) if last_job else []
    if last_error is not None:
        message = getattr(last_error, "message", None) or str(last_error)
        logger.warning(f"poll_failed job_id={job_id} attempts={attempt}")
        return timeout_job(job_id, message=f"Status polling failed: {message}", logs=logs)

    metrics.inc("poll_timeout_total")
    logger.warning(f"poll_timeout job_id={job_id} attempts={attempt}")
    if max_attempts is not None and attempt >= max_attempts:
        message = f"Compilation timeout: still running after {attempt} status checks"
    else:
        message = "Compilation timeout"
    return timeout_job(job_id, message=message, logs=logs)


class JobStatusTracker:
    """Server-side wait on top of a status source (the dispatcher)."""

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[CompilationJob]],
        interval: float = POLL_INTERVAL_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._interval = interval
        self._sleep = sleep
        self._clock = clock

    async def get_status(self, job_id: str) -> CompilationJob:
        """Single observation, no retry."""
        return await self._fetch(job_id)

    async def wait_for_completion(self, job_id: str, timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS) -> CompilationJob:
        """
        Poll until terminal or until `timeout_ms` elapses.

        Never raises for a timeout; returns a failed job instead.
        """
        return await poll_until_terminal(
            job_id,
            self._fetch,
            interval=self._interval,
            timeout=max(timeout_ms, 0) / 1000,
            sleep=self._sleep,
            clock=self._clock,
        )
