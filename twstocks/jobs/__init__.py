"""Job registry, definitions and executor."""

from . import definitions  # noqa: F401  (registers built-in jobs)
from .executor import execute_job
from .registry import get_job, list_job_names, register_job


__all__ = [
    "execute_job",
    "get_job",
    "list_job_names",
    "register_job",
]
