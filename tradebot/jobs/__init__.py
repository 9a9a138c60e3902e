"""Background jobs.

Importing this package registers every job with the registry.
"""

from . import research  # noqa: F401
from .executor import execute_job, execute_job_with_retry
from .registry import get_job, list_job_names, register_job

__all__ = [
    "execute_job",
    "execute_job_with_retry",
    "get_job",
    "list_job_names",
    "register_job",
]
