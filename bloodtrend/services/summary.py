from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering for batch runs."""


def _format_seconds(elapsed: float) -> str:
    if elapsed == 0:
        return "0"
    if elapsed == int(elapsed):
        return str(int(elapsed))
    if elapsed < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{elapsed:.6f}".rstrip("0").rstrip(".")
    return f"{elapsed:.2f}".rstrip("0").rstrip(".")


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render the SUMMARY line for a ProcessingResult.

    Format::

        SUMMARY files={total}/{total} success={success} failed={failed}
        parameters={p} observations={o} anomalies={a} elapsed_sec={elapsed}

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ProcessingResult(
        ...     success_files=1, failed_files=0, total_parameters=12,
        ...     total_observations=40, total_anomalies=1, start_time=start,
        ...     end_time=end, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(1, result)
        'SUMMARY files=1/1 success=1 failed=0 parameters=12 observations=40 anomalies=1 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={total_files}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"parameters={result.total_parameters} "
        f"observations={result.total_observations} "
        f"anomalies={result.total_anomalies} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
