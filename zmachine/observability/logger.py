"""Loguru-style logger backed by stdlib logging + rich.

Usage::

    from zmachine.observability.logger import logger

    log = logger.bind(component="session")
    log.info("Logged in as {account}", account="admin")
"""

from __future__ import annotations

import inspect
import logging
import logging.handlers
import os
import sys
from types import FrameType
from typing import TextIO

from rich.logging import RichHandler

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_root = logging.getLogger("zmachine")


def _caller_frame(depth: int) -> FrameType:
    frame = inspect.currentframe()
    for _ in range(depth + 1):
        if frame is None or frame.f_back is None:
            break
        frame = frame.f_back
    assert frame is not None
    return frame


def _format_message(msg: str, args: tuple[object, ...], kwargs: dict[str, object]) -> str:
    if kwargs:
        return msg.format(**kwargs)
    if args:
        return msg.format(*args)
    return msg


def _format_context(extras: dict[str, object]) -> str:
    if not extras:
        return ""
    return " [" + " ".join(f"{k}={v}" for k, v in extras.items()) + "]"


class BoundLogger:
    __slots__ = ("_extras",)

    def __init__(self, extras: dict[str, object] | None = None) -> None:
        self._extras = extras or {}

    def bind(self, **kwargs: object) -> BoundLogger:
        return BoundLogger({**self._extras, **kwargs})

    def _log(
        self,
        level: int,
        message: str,
        args: tuple[object, ...],
        kwargs: dict[str, object],
        depth: int = 2,
    ) -> None:
        exc_info = kwargs.pop("exc_info", False)
        frame = _caller_frame(depth)
        lib_logger = logging.getLogger(frame.f_globals.get("__name__", "zmachine"))
        if not lib_logger.isEnabledFor(level):
            return
        text = _format_message(message, args, kwargs)
        record = lib_logger.makeRecord(
            name=lib_logger.name,
            level=level,
            fn="",
            lno=0,
            msg=text,
            args=(),
            exc_info=None,
        )
        record.pathname = frame.f_code.co_filename
        record.filename = os.path.basename(frame.f_code.co_filename)
        record.lineno = frame.f_lineno
        record.funcName = frame.f_code.co_name
        for k, v in self._extras.items():
            setattr(record, k, v)
        record.extras = self._extras  # type: ignore[attr-defined]
        record.ctx = _format_context(self._extras)  # type: ignore[attr-defined]
        if exc_info:
            record.exc_info = sys.exc_info()
        lib_logger.handle(record)

    def trace(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(TRACE, message, args, kwargs)

    def debug(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.DEBUG, message, args, kwargs)

    def info(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.INFO, message, args, kwargs)

    def warning(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.WARNING, message, args, kwargs)

    def error(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.ERROR, message, args, kwargs)

    def exception(self, message: str, /, *args: object, **kwargs: object) -> None:
        kwargs["exc_info"] = True
        self._log(logging.ERROR, message, args, kwargs)


_handler_counter = 0
_handlers: dict[int, logging.Handler] = {}


class _ContextDefaultFilter(logging.Filter):
    """Records from third-party loggers lack ``ctx``; give them an empty one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "ctx"):
            record.ctx = ""  # type: ignore[attr-defined]
        return True


def _make_file_handler(
    path: str,
    *,
    level: int,
    max_bytes: int,
    retention: int,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=retention,
    )
    handler.setLevel(level)
    handler.addFilter(_ContextDefaultFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(levelname)-8s | "
        "%(name)s:%(funcName)s:%(lineno)d%(ctx)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    return handler


def _make_console_handler(level: int, stream: TextIO | None) -> logging.Handler:
    from rich.console import Console

    handler = RichHandler(
        level=level,
        console=Console(file=stream) if stream is not None else None,
        show_time=True,
        show_level=True,
        show_path=True,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    return handler


class LoguruCompat:
    def __init__(self) -> None:
        self._bound = BoundLogger()

    def bind(self, **kwargs: object) -> BoundLogger:
        return self._bound.bind(**kwargs)

    def trace(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound._log(TRACE, message, args, kwargs)

    def debug(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound._log(logging.DEBUG, message, args, kwargs)

    def info(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound._log(logging.INFO, message, args, kwargs)

    def warning(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound._log(logging.WARNING, message, args, kwargs)

    def error(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound._log(logging.ERROR, message, args, kwargs)

    def exception(self, message: str, /, *args: object, **kwargs: object) -> None:
        kwargs["exc_info"] = True
        self._bound._log(logging.ERROR, message, args, kwargs)

    def remove(self, handler_id: int | None = None) -> None:
        if handler_id is None:
            for h in list(_handlers.values()):
                _root.removeHandler(h)
                h.close()
            _handlers.clear()
            return
        if h := _handlers.pop(handler_id, None):
            _root.removeHandler(h)
            h.close()

    def add(
        self,
        sink: str | TextIO,
        *,
        level: str = "DEBUG",
        max_bytes: int = 50 * 1024 * 1024,
        retention: int = 10,
    ) -> int:
        global _handler_counter
        numeric_level = getattr(logging, level.upper(), logging.DEBUG)

        match sink:
            case str() as path:
                handler = _make_file_handler(
                    path,
                    level=numeric_level,
                    max_bytes=max_bytes,
                    retention=retention,
                )
            case stream:
                handler = _make_console_handler(numeric_level, stream)

        _root.addHandler(handler)
        _handler_counter += 1
        _handlers[_handler_counter] = handler
        return _handler_counter

    def enable(self, name: str) -> None:
        target = logging.getLogger(name)
        target.disabled = False
        target.setLevel(TRACE)

    def disable(self, name: str) -> None:
        logging.getLogger(name).disabled = True


logger = LoguruCompat()

_root.setLevel(TRACE)
_root.addHandler(logging.NullHandler())
_root.propagate = False
