# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import sys
from pathlib import Path

from loguru import logger

__all__ = ["logger", "setup_logger"]


def setup_logger(log_dir: Path | str = "logs", level: str = "INFO") -> Path:
    """Configure the application logger.

    Replaces any existing sinks with a human-readable stderr sink and a
    rotating JSON file sink at ``<log_dir>/app.log``. The file sink is
    enqueued so that concurrent requests never interleave partial lines.

    Returns:
        Path: The log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        log_file,
        level=level,
        rotation="10 MB",
        retention=5,
        serialize=True,
        enqueue=True,
    )
    return log_file
