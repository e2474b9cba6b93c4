"""Logging configuration for zmachine.

Logging is silent by default (library behavior). A driver caller opts in
with a LogConfig, typically for the lifetime of one ``open_driver`` block.

Example:
    from zmachine import LogConfig, setup_logging, teardown_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", console=True))
    try:
        ...
    finally:
        teardown_logging(handler_ids)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from zmachine.observability.logger import logger

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "TRACE"]


def _parse_rotation_bytes(rotation: str) -> int:
    parts = rotation.strip().split()
    match parts:
        case [num, unit] if unit.upper() == "MB":
            return int(num) * 1024 * 1024
        case [num, unit] if unit.upper() == "KB":
            return int(num) * 1024
        case _:
            return 50 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration for a driver session.

    Attributes:
        level: Minimum log level for the console sink.
        file: Path to log file. Empty string disables file output.
        console: Whether to log to stderr through rich.
        rotation: File rotation size (e.g., "50 MB").
        retention: Number of old log files to keep.
    """

    level: LogLevel = "INFO"
    file: str = ".zmachine/zmachine.log"
    console: bool = False
    rotation: str = "50 MB"
    retention: int = 10


def setup_logging(config: LogConfig) -> list[int]:
    """Attach sinks described by ``config`` and return their handler IDs."""
    logger.enable("zmachine")
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(logger.add(sys.stderr, level=config.level))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                max_bytes=_parse_rotation_bytes(config.rotation),
                retention=config.retention,
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
