# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging setup: structlog rendering for stdlib ``logging`` records.

Modules log with ``logging.getLogger(__name__)``; ``configure()`` routes every
record through structlog so ``popguard run --json-logs`` emits one JSON
object per line.  ``tab_context()`` binds the tab an event concerns, so
engine decisions carry ``tab_id`` without repeating it in each message.

Leaf module: no popguard imports. Safe to call early in startup.
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager, nullcontext

import structlog

# Third-party loggers stay at WARNING unless DEBUG is requested.
_NOISY_LOGGERS = ("asyncio", "aiosqlite")


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install a single stderr handler rendering console text or JSON lines.

    Calling it again replaces the previous handler.  Unknown level names
    fall back to INFO.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if root.level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def tab_context(tab_id: int | None) -> AbstractContextManager[None]:
    """Bind ``tab_id`` to every log record emitted inside the block."""
    if tab_id is None:
        return nullcontext()
    return structlog.contextvars.bound_contextvars(tab_id=tab_id)
