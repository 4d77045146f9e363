"""Logging for the back office.

Everything logs under the ``btm_backoffice`` logger tree. The CLI calls
:func:`configure_logging` once at startup; modules only ever ask
:func:`get_logger` for a child logger. Until something configures output the
tree carries a ``NullHandler``, so importing the package as a library prints
nothing.

The level comes from the caller, else from ``BTM_LOG_LEVEL`` (a level name such
as ``DEBUG`` or a number), else ``INFO``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ROOT_LOGGER = "btm_backoffice"
LEVEL_ENV_VAR = "BTM_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_configured = False


def resolve_level(level: int | str | None = None) -> int:
    """Turn ``level`` (or the environment) into a ``logging`` level number.

    Unknown names fall back to ``INFO``.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    return numeric if numeric is not None else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send ``btm_backoffice`` records to ``stream``. Later calls are no-ops.

    Parameters
    ----------
    level:
        Level number or name; see :func:`resolve_level`.
    fmt:
        Record format; :data:`DEFAULT_FORMAT` when omitted.
    stream:
        Destination of the one ``StreamHandler``; stderr by default so report
        CSV written to stdout stays clean.
    """

    global _configured
    if _configured:
        return

    root = logging.getLogger(ROOT_LOGGER)
    for handler in [h for h in root.handlers if isinstance(h, logging.NullHandler)]:
        root.removeHandler(handler)

    numeric = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric)
    # Records stop here; the interpreter's root logger would print them twice.
    root.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Child logger ``name``; silent until :func:`configure_logging` runs."""

    root = logging.getLogger(ROOT_LOGGER)
    if not _configured and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["DEFAULT_FORMAT", "configure_logging", "get_logger", "resolve_level"]
