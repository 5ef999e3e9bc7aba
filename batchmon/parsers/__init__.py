"""Parsers for scheduler command output.

Re-exports the entry points used by the poll daemons.
"""

from .groups import parse_groups_output
from .jmanl import parse_jmanl_output
from .jobstat import ClusterStatus, JobstatSnapshot, parse_jobstat_output
from .records import NOT_YET_KNOWN, JobRecord, JobState

__all__ = [
    "ClusterStatus",
    "JobRecord",
    "JobState",
    "JobstatSnapshot",
    "NOT_YET_KNOWN",
    "parse_groups_output",
    "parse_jmanl_output",
    "parse_jobstat_output",
]
