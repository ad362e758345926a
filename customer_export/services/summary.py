from __future__ import annotations

from ..models.customer_report import RunSummary

"""SUMMARY line rendering for CLI runs."""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_body(summary: RunSummary) -> str:
    """Render ``source=... rows=... elapsed_sec=...[ output=...]`` without the label."""
    body = (
        f"source={summary.source} "
        f"rows={summary.rows} "
        f"elapsed_sec={_format_seconds(summary.elapsed_seconds)}"
    )
    if summary.output:
        body += f" output={summary.output}"
    return body


def render_summary_line(summary: RunSummary) -> str:
    """Render the labeled ``SUMMARY source=... rows=... elapsed_sec=...[ output=...]`` line.

    >>> from datetime import datetime, timezone
    >>> start = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    >>> end = datetime(2025, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
    >>> render_summary_line(RunSummary("misa", 12, start, end, 2.0))
    'SUMMARY source=misa rows=12 elapsed_sec=2'
    """
    return f"SUMMARY {render_summary_body(summary)}"
