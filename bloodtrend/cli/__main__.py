from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from bloodtrend.config.loader import DEFAULT_CONFIG_PATH, ConfigError, NormalizerConfig, load_config
from bloodtrend.logging.init import log_summary, setup_logging
from bloodtrend.services.normalizer import MalformedInputError
from bloodtrend.services.orchestrator import (
    ProcessingError,
    normalize_file,
    process_all,
    scan_history_files,
)
from bloodtrend.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (only BLOODTREND_CONFIG is read from the environment)
- Load and validate the YAML config
- Normalize every history file of source_directory into output_directory
- Print the SUMMARY line

Exit codes: 0 all files succeeded (or none found), 2 some file failed,
1 fatal startup error.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

CONFIG_ENV_VAR = "BLOODTREND_CONFIG"


def _load_env_file(path: Path) -> None:
    """Load .env via python-dotenv (existing variables win)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Blood-test history normalizer")
    p.add_argument("--config", type=Path, default=None, help="Path to YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--inspect-data",
        action="store_true",
        help="Print date columns & parameters per file then exit",
    )
    return p.parse_args(argv)


def _resolve_config_path(args: argparse.Namespace) -> Path:
    if args.config is not None:
        return args.config
    env_path = os.getenv(CONFIG_ENV_VAR)
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def _inspect_data(cfg: NormalizerConfig) -> int:
    try:
        files = scan_history_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not files:
        print("inspect: no history files")
        return EXIT_SUCCESS_ALL
    for f in files:
        print(f"FILE: {f.name}")
        try:
            history = normalize_file(f, cfg)
        except (MalformedInputError, OSError) as e:
            print(f"  error: {e}")
            continue
        dates = [dc.date.date().isoformat() for dc in history.date_columns]
        print(f"  dates={dates}")
        for metric in history.metrics:
            print(
                f"  {metric.name} [{metric.unit}] category={metric.category} "
                f"latest={metric.value} trend={metric.trend:+.1f}"
            )
        if history.anomalies:
            print(f"  anomalies={len(history.anomalies)}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみ sys.argv を読む (テストで main([]) を呼ぶため)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"))

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    config_path = _resolve_config_path(args)
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    logger.info(f"Processing files from: {directory}")
    try:
        result = process_all(cfg)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    total_files = result.success_files + result.failed_files
    summary_line = render_summary_line(total_files, result)
    # log_summary が "SUMMARY " を付与するので除去して渡す
    log_summary(summary_line.removeprefix("SUMMARY "))

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
