"""Job execution with error handling."""

from __future__ import annotations

import inspect
import time

from twstocks.core.exceptions import AppException, JobError
from twstocks.core.logging import get_logger

from .registry import get_job, list_job_names


logger = get_logger("jobs.executor")


async def execute_job(name: str) -> str:
    """
    Execute a job by name.

    Args:
        name: Job name

    Returns:
        Job result message

    Raises:
        JobError: If the job is unknown or fails
        AppException: Fatal startup errors pass through unchanged
    """
    job_func = get_job(name)
    if job_func is None:
        raise JobError(
            message=f"Unknown job: {name}",
            error_code="UNKNOWN_JOB",
            details={"available": list_job_names()},
        )

    start_time = time.monotonic()

    try:
        if inspect.iscoroutinefunction(job_func):
            result = await job_func()
        else:
            result = job_func()

        duration = time.monotonic() - start_time
        message = str(result) if result else "Completed"
        logger.info(f"Job {name} executed in {duration:.2f}s: {message}")
        return message

    except AppException as e:
        if e.fatal:
            raise
        duration = time.monotonic() - start_time
        logger.exception(f"Job {name} failed after {duration:.2f}s")
        raise JobError(
            message=f"Job execution failed: {e.message}",
            error_code="JOB_EXECUTION_FAILED",
            details={"job_name": name, "duration_seconds": duration, **e.details},
        ) from e

    except Exception as e:
        duration = time.monotonic() - start_time
        logger.exception(f"Job {name} failed after {duration:.2f}s")
        raise JobError(
            message=f"Job execution failed: {e!s}",
            error_code="JOB_EXECUTION_FAILED",
            details={"job_name": name, "duration_seconds": duration},
        ) from e
