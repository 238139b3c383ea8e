"""
CSV persistence for scan batches.

Input is a CSV with ``url`` and ``label`` columns (header optional). Output
rows have heterogeneous keys (success rows carry features, failure rows an
error), so the result file's columns are the union of all keys with the meta
columns last.
"""

import csv
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from phishscan.scheduler.models import ErrorRecord, ScanTask
from phishscan.utils.logging import get_logger

logger = get_logger(__name__)

META_COLUMNS: tuple[str, ...] = ("error", "tlsBypassUsed", "usedProxy", "finalUrlTried", "label")


def read_tasks(path: str | Path) -> list[ScanTask]:
    """Load scan tasks from a ``url,label`` CSV.

    A first row whose first cell is ``url`` is treated as a header. Blank
    rows and rows with an empty URL are skipped.

    Args:
        path: Input CSV path.

    Returns:
        Tasks in file order.
    """
    tasks: list[ScanTask] = []
    with open(path, encoding="utf-8", newline="") as f:
        for index, row in enumerate(csv.reader(f)):
            if not row:
                continue
            url = row[0].strip()
            if index == 0 and url.lower() == "url":
                continue
            if not url:
                logger.debug("Skipping row without URL", row=index)
                continue
            label = row[1].strip() if len(row) > 1 else None
            tasks.append(ScanTask(url=url, label=label))

    logger.info("Loaded scan tasks", path=str(path), count=len(tasks))
    return tasks


def result_columns(rows: Iterable[dict[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order, with the meta columns moved last."""
    columns: list[str] = []
    seen: set[str] = set()
    present_meta: set[str] = set()
    for row in rows:
        for key in row:
            if key in META_COLUMNS:
                present_meta.add(key)
            elif key not in seen:
                seen.add(key)
                columns.append(key)
    return columns + [c for c in META_COLUMNS if c in present_meta]


def write_results(path: str | Path, rows: Sequence[dict[str, Any]]) -> Path:
    """Write result rows; columns missing from a row are left empty.

    Args:
        path: Output CSV path (parent directories are created).
        rows: Rows from to_record().

    Returns:
        The written path.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    with out.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=result_columns(rows), restval="")
        writer.writeheader()
        writer.writerows(rows)

    logger.info("Results written", path=str(out), rows=len(rows))
    return out


def write_errors(path: str | Path, errors: Sequence[ErrorRecord]) -> Path:
    """Write the error log as ``url,error`` rows."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    with out.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["url", "error"])
        writer.writeheader()
        writer.writerows(error.to_dict() for error in errors)

    logger.info("Error log written", path=str(out), rows=len(errors))
    return out
