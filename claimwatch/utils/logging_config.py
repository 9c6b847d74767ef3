"""Logging setup for claimwatch.

Every accepted event runs a full pass over the content tree, and the tree,
matcher and handle modules log per node at DEBUG/TRACE. Those records always
reach the watcher file; the console only shows them when
``LOG_PASS_DETAILS`` is on.
"""
import sys
from pathlib import Path

from loguru import logger

# Modules that log once per visited node or released handle
PASS_DETAIL_MODULES = ("claimwatch.tree", "claimwatch.matching")

_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function} - {message}"


def pass_detail_filter(show_details: bool):
    """Build a loguru filter hiding sub-INFO records of per-pass modules."""
    info_no = logger.level("INFO").no

    def _filter(record) -> bool:
        if show_details or record["level"].no >= info_no:
            return True
        return not (record["name"] or "").startswith(PASS_DETAIL_MODULES)

    return _filter


def setup_logging(config):
    """Install console, watcher-file and error-file sinks from ``config``.

    Args:
        config: ``Settings`` carrying the ``log_*`` fields
    """
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()

    logger.add(
        sys.stdout,
        format=(
            "<green>{time:HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
            "<level>{message}</level>"
        ),
        level=config.log_level,
        filter=pass_detail_filter(config.log_pass_details),
        colorize=True,
    )

    logger.add(
        log_dir / "watcher_{time:YYYY-MM-DD}.log",
        rotation=config.log_rotation,
        retention=config.log_retention,
        level="TRACE" if config.log_pass_details else "DEBUG",
        format=_FILE_FORMAT,
        compression="zip",
    )

    logger.add(
        log_dir / "errors_{time:YYYY-MM-DD}.log",
        rotation=config.log_rotation,
        retention=config.error_log_retention,
        level="ERROR",
        format=_FILE_FORMAT.replace("{function}", "{function}:{line}"),
        backtrace=True,
        diagnose=False,
    )

    logger.info(
        f"Logging to {log_dir} (console {config.log_level}, "
        f"pass details {'on' if config.log_pass_details else 'off'})"
    )
