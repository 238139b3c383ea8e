"""
Scheduler module for phishscan.

Provides per-URL orchestration and the concurrency-bounded batch scanner.
"""

from phishscan.scheduler.batch import BatchScanner, scan_urls
from phishscan.scheduler.models import (
    ErrorRecord,
    ScanFailure,
    ScanOutcome,
    ScanSuccess,
    ScanTask,
    to_record,
)
from phishscan.scheduler.orchestrator import ScanOrchestrator, ScanPolicy

__all__ = [
    # Batch
    "BatchScanner",
    "scan_urls",
    # Models
    "ErrorRecord",
    "ScanFailure",
    "ScanOutcome",
    "ScanSuccess",
    "ScanTask",
    "to_record",
    # Orchestration
    "ScanOrchestrator",
    "ScanPolicy",
]
