#!/usr/bin/env python
"""Run an ingestion job once.

Usage:
    python main.py                # prices_daily
    python main.py stocks_sync

Exit codes: 0 on success, 1 when the job fails, 2 on a fatal startup error.
"""
import asyncio
import json
import logging
import sys

from pydantic import ValidationError


DEFAULT_JOB = "prices_daily"

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_FATAL = 2


async def run(job_name: str) -> int:
    from twstocks.core.config import validate_settings
    from twstocks.core.exceptions import AppException, JobError
    from twstocks.core.logging import get_logger
    from twstocks.database.connection import check_database, close_sqlalchemy_engine
    from twstocks.jobs import execute_job

    logger = get_logger("main")

    try:
        validate_settings()
        await check_database()
        message = await execute_job(job_name)
        print(message)
        return EXIT_OK
    except JobError as e:
        logger.error(f"{e.message}", extra={"extra_fields": e.to_dict()})
        return EXIT_JOB_FAILED
    except AppException as e:
        if not e.fatal:
            raise
        logger.critical(f"Fatal startup error: {e.message}", extra={"extra_fields": e.to_dict()})
        return EXIT_FATAL
    finally:
        await close_sqlalchemy_engine()


def main(argv: list[str]) -> int:
    # Settings are read from the environment when the package is first imported
    try:
        from twstocks.core.logging import setup_logging
    except ValidationError as e:
        problems = {".".join(str(part) for part in err["loc"]): err["msg"] for err in e.errors()}
        logging.basicConfig(stream=sys.stdout, format="%(levelname)s %(name)s: %(message)s")
        logging.getLogger("twstocks.main").critical(
            "Fatal startup error: Invalid configuration %s",
            json.dumps({"error": "CONFIGURATION_ERROR", "details": problems}, ensure_ascii=False),
        )
        return EXIT_FATAL

    setup_logging()
    job = argv[1] if len(argv) > 1 else DEFAULT_JOB
    return asyncio.run(run(job))


if __name__ == "__main__":
    sys.exit(main(sys.argv))
