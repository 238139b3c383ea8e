"""
Data model for scan batches.

A ScanTask becomes exactly one ScanOutcome: ScanSuccess carrying the
feature map of the first attempt that worked, or ScanFailure carrying one
message per attempt actually tried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from phishscan.crawler.attempt_planner import AttemptSpec
from phishscan.extractor.dom_features import FeatureMap


@dataclass(frozen=True)
class ScanTask:
    """
    One input URL and its caller-supplied label.

    Attributes:
        url: Absolute URL to scan.
        label: Opaque label carried through to the output row.
    """

    url: str
    label: Any = None


@dataclass
class ScanSuccess:
    """Terminal outcome of a task that loaded and extracted."""

    features: FeatureMap
    final_url: str
    tls_bypass_used: bool
    used_proxy: bool
    user_agent: str


@dataclass
class ScanFailure:
    """Terminal outcome of a task whose every attempt failed."""

    messages: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        """All attempt messages as ``- <msg>`` lines, in attempt order."""
        return "\n".join(f"- {m}" for m in self.messages)


ScanOutcome = ScanSuccess | ScanFailure


@dataclass(frozen=True)
class ErrorRecord:
    """Diagnostic entry appended once per failed task."""

    url: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "error": self.message}


def to_record(task: ScanTask, outcome: ScanOutcome) -> dict[str, Any]:
    """Build the external output row for a finished task.

    Success rows are the flattened feature map followed by the meta columns
    tlsBypassUsed, usedProxy, finalUrlTried and label. Failure rows carry
    the joined error message, the task URL as finalUrlTried, and the label.
    """
    if isinstance(outcome, ScanSuccess):
        record: dict[str, Any] = dict(outcome.features)
        record["tlsBypassUsed"] = 1 if outcome.tls_bypass_used else 0
        record["usedProxy"] = 1 if outcome.used_proxy else 0
        record["finalUrlTried"] = outcome.final_url
        record["label"] = task.label
        return record

    return {
        "error": outcome.message,
        "finalUrlTried": task.url,
        "label": task.label,
    }


__all__ = [
    "AttemptSpec",
    "ErrorRecord",
    "ScanFailure",
    "ScanOutcome",
    "ScanSuccess",
    "ScanTask",
    "to_record",
]
