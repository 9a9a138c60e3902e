"""Run registered jobs, retrying only failures that are worth repeating."""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable

from tradebot.core.exceptions import (
    ExternalServiceError,
    JobError,
    ResearchCycleError,
    StorageError,
)
from tradebot.core.logging import get_logger

from .registry import get_job


logger = get_logger("jobs.executor")

TRANSIENT_ERRORS = (ExternalServiceError, StorageError)


def is_retryable(error: BaseException | None) -> bool:
    """
    Whether running the job again could succeed.

    A research cycle that already recorded an error run is final for that
    trigger; the next scheduled cycle picks up from the run log. Otherwise
    only upstream and storage failures are repeated.
    """
    if isinstance(error, JobError):
        return is_retryable(error.__cause__)
    if isinstance(error, ResearchCycleError):
        if error.details.get("error_run_recorded"):
            return False
        return is_retryable(error.__cause__)
    return isinstance(error, TRANSIENT_ERRORS)


async def _call(job_func: Callable[[], Any]) -> Any:
    result = job_func()
    if inspect.isawaitable(result):
        result = await result
    return result


async def execute_job(name: str) -> str:
    """
    Execute a job by name.

    Returns:
        The job's result message, or "Completed" when it returns nothing

    Raises:
        JobError: UNKNOWN_JOB, or JOB_EXECUTION_FAILED with ``retryable`` in details
    """
    job_func = get_job(name)
    if job_func is None:
        raise JobError(
            message=f"Unknown job: {name}",
            error_code="UNKNOWN_JOB",
            details={"job_name": name},
        )

    started = time.monotonic()
    try:
        result = await _call(job_func)
    except Exception as e:
        duration = time.monotonic() - started
        logger.error(f"Job {name} failed after {duration:.2f}s: {e}")
        raise JobError(
            message=f"Job {name} failed: {e}",
            error_code="JOB_EXECUTION_FAILED",
            details={
                "job_name": name,
                "duration_seconds": round(duration, 3),
                "retryable": is_retryable(e),
            },
        ) from e

    message = str(result) if result else "Completed"
    logger.info(f"Job {name} finished in {time.monotonic() - started:.2f}s: {message}")
    return message


async def execute_job_with_retry(
    name: str,
    max_retries: int = 2,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
) -> str:
    """
    Execute a job, repeating retryable failures with exponential backoff.

    Non-retryable failures are raised from the first attempt unchanged.

    Raises:
        JobError: the first non-retryable failure, or JOB_RETRIES_EXHAUSTED
    """
    delay = retry_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await execute_job(name)
        except JobError as e:
            if not e.details.get("retryable"):
                raise
            if attempt > max_retries:
                logger.error(f"Job {name} failed after {attempt} attempts")
                raise JobError(
                    message=f"Job {name} failed after {attempt} attempts: {e.message}",
                    error_code="JOB_RETRIES_EXHAUSTED",
                    details={"job_name": name, "attempts": attempt},
                ) from e
            logger.warning(f"Job {name} attempt {attempt} failed, retrying in {delay:.1f}s")
            await asyncio.sleep(delay)
            delay *= backoff_factor
