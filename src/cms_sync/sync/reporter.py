"""Save and resync report formatting.

- ``format_save_report`` -- human-readable save summary.
- ``format_resync_report`` -- human-readable bulk write summary.
- ``save_result_to_json`` / ``resync_result_to_json`` -- structured dicts
  for JSON output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ResyncResult, RowFailure, SaveResult


def _failures_by_page(failures: list[RowFailure]) -> dict[str, list[RowFailure]]:
    grouped: dict[str, list[RowFailure]] = defaultdict(list)
    for failure in failures:
        grouped[failure.page].append(failure)
    return dict(grouped)


def _failure_lines(failures: list[RowFailure]) -> list[str]:
    lines = ["Failed:"]
    for page, items in sorted(_failures_by_page(failures).items()):
        lines.append(f"  {page}:")
        for failure in items:
            lines.append(f"    {failure.content_key}: {failure.reason}")
    return lines


# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_save_report(result: SaveResult) -> str:
    """Format a save result as human-readable text.

    Saved keys are listed in full; failures are grouped by page.

    Args:
        result: The completed save.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [result.summary()]
    lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at}")

    if result.saved_keys:
        lines.append("")
        lines.append("Saved:")
        for key in result.saved_keys:
            lines.append(f"  {key}")

    if result.failures:
        lines.append("")
        lines.extend(_failure_lines(result.failures))

    return "\n".join(lines)


def format_resync_report(result: ResyncResult) -> str:
    lines = [result.summary()]
    if result.skipped_pages:
        lines.append("")
        lines.append("Skipped pages (not in store):")
        for page in result.skipped_pages:
            lines.append(f"  {page}")
    if result.failed_pages:
        lines.append("")
        lines.append("Blocked pages (existing content not cleared):")
        for page in result.failed_pages:
            lines.append(f"  {page}")
    if result.failures:
        lines.append("")
        lines.extend(_failure_lines(result.failures))
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _failure_to_json(failure: RowFailure) -> dict:
    return {
        "page": failure.page,
        "content_key": failure.content_key,
        "reason": failure.reason,
    }


def save_result_to_json(result: SaveResult) -> dict:
    """Convert a save result to a structured dict for JSON serialisation."""
    data: dict = {
        "success": result.success,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "counts": {
            "saved": result.saved_count,
            "failed": result.failure_count,
        },
        "saved_keys": list(result.saved_keys),
        "failures": [_failure_to_json(f) for f in result.failures],
    }
    if result.error:
        data["error"] = result.error
    return data


def resync_result_to_json(result: ResyncResult) -> dict:
    data: dict = {
        "success": result.success,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "counts": {
            "pages": len(result.pages),
            "skipped_pages": len(result.skipped_pages),
            "failed_pages": len(result.failed_pages),
            "deleted": result.deleted,
            "written": result.written,
            "failed": result.failure_count,
        },
        "pages": list(result.pages),
        "skipped_pages": list(result.skipped_pages),
        "failed_pages": list(result.failed_pages),
        "failures": [_failure_to_json(f) for f in result.failures],
    }
    if result.error:
        data["error"] = result.error
    return data
