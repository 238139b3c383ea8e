"""
Storage module for phishscan.
"""

from phishscan.storage.results import (
    META_COLUMNS,
    read_tasks,
    result_columns,
    write_errors,
    write_results,
)

__all__ = [
    "META_COLUMNS",
    "read_tasks",
    "result_columns",
    "write_errors",
    "write_results",
]
