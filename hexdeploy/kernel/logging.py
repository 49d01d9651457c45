"""Loguru-based logging for hexdeploy.

Every record carries the id of the deployment run that emitted it (``-``
outside a run), so interleaved output of a run can be filtered by run id.

Examples
--------
Basic usage:

>>> from hexdeploy.kernel.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Deploying {app}", app="checkout")

Configure once at process start::

    from hexdeploy.kernel.logging import configure_logging
    configure_logging(level="DEBUG", format="json", output_file="logs/deploy.log")

Scope records to a run::

    with run_logging_context(ctx.run_id):
        await executor.execute(stages, ctx)
"""

from __future__ import annotations

import contextvars
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger
from rich.logging import RichHandler

if TYPE_CHECKING:
    from loguru import Logger, Record

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich"]

NO_RUN = "-"
LEVEL_ENV_VAR = "HEXDEPLOY_LOG_LEVEL"
FORMAT_ENV_VAR = "HEXDEPLOY_LOG_FORMAT"
FILE_ENV_VAR = "HEXDEPLOY_LOG_FILE"

_run_id: contextvars.ContextVar[str] = contextvars.ContextVar("hexdeploy_run_id", default=NO_RUN)

# Settings of the active configuration and the loguru handler ids it added
_active: dict[str, Any] | None = None
_handler_ids: list[int] = []

_TEXT_FORMATS: dict[str, str] = {
    "console": "{time}{level: <8} | run={extra[run_id]} | {extra[module]} | {message}",
    "structured": (
        "<green>{time}</green>[<level>{level: <8}</level>] "
        "<cyan>{extra[module]}:{function}:{line}</cyan> <dim>run={extra[run_id]}</dim> "
        "| <level>{message}</level>"
    ),
}


def _patch_record(record: Record) -> None:
    extra = record["extra"]
    extra.setdefault("run_id", _run_id.get())
    extra.setdefault("module", record["name"])


def _text_format(format: LogFormat, include_timestamp: bool) -> str:
    timestamp = "{time:YYYY-MM-DD HH:mm:ss} " if include_timestamp else ""
    return _TEXT_FORMATS[format].replace("{time}", timestamp)


def _add_sink(sink: Any, **options: Any) -> None:
    _handler_ids.append(logger.add(sink, **options))


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    backtrace: bool = True,
    diagnose: bool = True,
) -> None:
    """Install the hexdeploy log sinks.

    Calling it again with unchanged settings is a no-op. Only handlers added
    here are replaced, so sinks installed by other code (pytest's capture,
    for one) survive reconfiguration.

    Parameters
    ----------
    level : LogLevel, default="INFO"
        Minimum level for every sink
    format : LogFormat, default="structured"
        Stderr format. ``console`` is plain text, ``structured`` is colored
        text with module, function and run id, ``json`` is one serialized
        record per line, and ``rich`` renders through a rich ``RichHandler``
    output_file : str | Path | None, default=None
        Additional JSON file sink, rotated at 10 MB and kept for a week
    use_color : bool, default=True
        Colorize ``structured`` output when stderr is a terminal
    include_timestamp : bool, default=True
        Prefix text formats with a timestamp
    force_reconfigure : bool, default=False
        Replace the sinks even when the settings are unchanged
    backtrace : bool, default=True
        Extend exception tracebacks beyond the catching frame
    diagnose : bool, default=True
        Show variable values in tracebacks; turn off where values may hold secrets
    """
    global _active

    settings = {
        "level": level,
        "format": format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }
    if settings == _active and not force_reconfigure:
        return

    while _handler_ids:
        handler_id = _handler_ids.pop()
        try:
            logger.remove(handler_id)
        except ValueError:
            logger.debug("Log handler {id} was already removed", id=handler_id)

    logger.configure(patcher=_patch_record)
    common = {"level": level, "backtrace": backtrace, "diagnose": diagnose}

    if format == "rich":
        handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=include_timestamp,
            show_path=False,
        )
        _add_sink(handler, format="[{extra[run_id]}] {message}", **common)
    elif format == "json":
        _add_sink(sys.stderr, serialize=True, **common)
    else:
        colorize = format == "structured" and use_color and sys.stderr.isatty()
        _add_sink(
            sys.stderr,
            format=_text_format(format, include_timestamp),
            colorize=colorize,
            **common,
        )

    if output_file:
        path = Path(output_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        _add_sink(
            path,
            serialize=True,
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            **common,
        )

    _active = settings


@lru_cache(maxsize=256)
def get_logger(name: str) -> Logger:
    """Logger bound to module ``name``.

    The first call configures logging from ``HEXDEPLOY_LOG_LEVEL``,
    ``HEXDEPLOY_LOG_FORMAT`` and ``HEXDEPLOY_LOG_FILE`` unless
    ``configure_logging`` already ran.
    """
    if _active is None:
        configure_logging(
            level=os.getenv(LEVEL_ENV_VAR, "INFO").upper(),  # type: ignore[arg-type]
            format=os.getenv(FORMAT_ENV_VAR, "structured").lower(),  # type: ignore[arg-type]
            output_file=os.getenv(FILE_ENV_VAR) or None,
        )
    return logger.bind(module=name)


@contextmanager
def run_logging_context(run_id: str) -> Iterator[str]:
    """Tag every record emitted inside the block with ``run_id``.

    The previous run id is restored on exit, including when the block raises.
    """
    token = _run_id.set(run_id)
    try:
        yield run_id
    finally:
        _run_id.reset(token)


def current_run_id() -> str:
    """Run id of the enclosing ``run_logging_context``, or ``"-"`` outside a run.

    Examples
    --------
    >>> current_run_id()
    '-'
    """
    return _run_id.get()
