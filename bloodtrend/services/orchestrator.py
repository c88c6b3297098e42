from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from ..config.loader import NormalizerConfig
from ..logging.anomaly_log import AnomalyLogBuffer
from ..models.anomaly_record import NO_POSITION, AnomalyRecord
from ..models.history import NormalizedHistory
from ..models.processing_result import FileStat, ProcessingResult
from .export import history_to_json
from .normalizer import MalformedInputError, normalize
from .progress import ProgressTracker

logger = logging.getLogger(__name__)

"""Batch orchestration over a directory of blood-test exports.

Each file is normalized on its own (no cross-file merge) and written as JSON
to the output directory. A MalformedInputError fails only that file; the run
continues with the next one. Anomalies of all files are buffered and flushed
to the anomaly log once at the end.
"""

HISTORY_SUFFIXES = (".xlsx", ".xls", ".csv")

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class ProcessingError(Exception):
    """Fatal batch error (source directory unusable)."""


def scan_history_files(directory: Path) -> list[Path]:
    """Non-recursive scan for .xlsx / .xls / .csv files, sorted by name.

    Raises:
        ProcessingError: directory missing, not a directory or unreadable
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")

    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")

    try:
        return sorted(
            (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in HISTORY_SUFFIXES),
            key=lambda p: p.name,
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def normalize_file(path: Path, config: NormalizerConfig) -> NormalizedHistory:
    """Read ``path`` and normalize it with the settings of ``config``."""
    return normalize(
        path.read_bytes(),
        config.categories,
        source_name=path.name,
        sheet=config.sheet,
        dayfirst=config.dayfirst,
        keep_na_strings=config.keep_na_strings,
    )


def _failed_stat(
    file_path: Path,
    message: str,
    start: datetime,
    anomaly_log: AnomalyLogBuffer,
) -> FileStat:
    logger.error(message)
    anomaly_log.append(
        AnomalyRecord.create(
            file=file_path.name,
            row=NO_POSITION,
            column=NO_POSITION,
            issue="MALFORMED_INPUT",
            raw_value="",
            message=message,
        )
    )
    return FileStat(
        file_name=file_path.name,
        status=STATUS_FAILED,
        anomalies=1,
        elapsed_seconds=(datetime.now(UTC) - start).total_seconds(),
        error=message,
    )


def _process_single_file(
    file_path: Path,
    config: NormalizerConfig,
    output_dir: Path,
    anomaly_log: AnomalyLogBuffer,
) -> FileStat:
    start = datetime.now(UTC)
    try:
        history = normalize_file(file_path, config)
    except MalformedInputError as e:
        # メッセージには既にファイル名が入っている
        return _failed_stat(file_path, str(e), start, anomaly_log)
    except OSError as e:
        return _failed_stat(file_path, f"{file_path.name}: {e}", start, anomaly_log)

    anomaly_log.extend(history.anomalies)
    out_path = output_dir / f"{file_path.stem}.json"
    out_path.write_text(history_to_json(history), encoding="utf-8")
    logger.info(
        f"{file_path.name}: parameters={len(history.parameter_names)} "
        f"dates={len(history.data_points)} -> {out_path}"
    )
    return FileStat(
        file_name=file_path.name,
        status=STATUS_SUCCESS,
        parameters=len(history.parameter_names),
        observations=history.observation_count,
        dates=len(history.data_points),
        anomalies=len(history.anomalies),
        elapsed_seconds=(datetime.now(UTC) - start).total_seconds(),
        output_path=str(out_path),
    )


def process_all(config: NormalizerConfig, anomaly_log: AnomalyLogBuffer | None = None) -> ProcessingResult:
    """Normalize every history file in ``config.source_directory``.

    Raises:
        ProcessingError: the source directory is unusable
    """
    start_time = datetime.now(UTC)
    anomaly_log = anomaly_log if anomaly_log is not None else AnomalyLogBuffer()

    file_paths = scan_history_files(Path(config.source_directory))

    output_dir = Path(config.output_directory)
    if file_paths:
        output_dir.mkdir(parents=True, exist_ok=True)

    file_stats: list[FileStat] = []
    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)
            stat = _process_single_file(file_path, config, output_dir, anomaly_log)
            file_stats.append(stat)
            progress.set_postfix(
                success=sum(1 for s in file_stats if s.status == STATUS_SUCCESS),
                failed=sum(1 for s in file_stats if s.status == STATUS_FAILED),
            )
            progress.finish_file()

    log_path = anomaly_log.flush()
    if log_path is not None:
        logger.info(f"anomaly log: {log_path}")

    end_time = datetime.now(UTC)
    succeeded = [s for s in file_stats if s.status == STATUS_SUCCESS]
    return ProcessingResult(
        success_files=len(succeeded),
        failed_files=len(file_stats) - len(succeeded),
        total_parameters=sum(s.parameters for s in succeeded),
        total_observations=sum(s.observations for s in succeeded),
        total_anomalies=sum(s.anomalies for s in file_stats),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
    )
