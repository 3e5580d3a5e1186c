# CUI // SP-CTI
# specgate Utilities

"""Utility functions for specgate command-line runs.

Provides run ID generation and logger setup (console plus optional log file
under ``.tmp/validation_runs/{run_id}/{phase}/``).
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

# Project root: specgate/utils.py -> go up 1 level
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def make_run_id() -> str:
    """Generate a short 8-character UUID for validation run tracking."""
    return str(uuid.uuid4())[:8]


def setup_logger(run_id: str, phase: str = "validate", verbose: bool = False,
                 log_root: Optional[Path] = None) -> logging.Logger:
    """Configure the ``specgate`` logger hierarchy for a CLI run.

    Console output goes to stderr so ``--json`` output on stdout stays
    parseable.  When *log_root* is given a file handler capturing DEBUG is
    added at ``{log_root}/{run_id}/{phase}/execution.log``.

    Args:
        run_id: The validation run ID
        phase: Phase name (validate, fix, ...)
        verbose: Show DEBUG messages on the console
        log_root: Directory for run logs, e.g. PROJECT_ROOT / ".tmp" / "validation_runs"

    Returns:
        Configured ``specgate`` logger
    """
    logger = logging.getLogger("specgate")
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console_handler)

    if log_root is not None:
        log_dir = Path(log_root) / run_id / phase
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "execution.log"
        file_handler = logging.FileHandler(str(log_file), mode='a')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)
        logger.debug(f"Log file: {log_file}")

    logger.debug(f"specgate logger initialized - Run: {run_id}, Phase: {phase}")
    return logger
