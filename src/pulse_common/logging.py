"""
Logging setup shared by the Pulse packages.

`setup_logging` puts one stderr handler on the root logger. Its formatter runs
structlog's processor chain, so events from `structlog.get_logger()` and
records from plain `logging` come out the same way: key/value lines in dev
mode, one JSON object per line otherwise.
"""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

import structlog
from structlog.types import Processor

from .config import AppConfig


# Applied to every event, whether it came from structlog or from stdlib logging
_PRE_CHAIN: List[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _render_chain(dev_mode: bool) -> List[Processor]:
    chain: List[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if dev_mode:
        chain.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        chain.append(structlog.processors.format_exc_info)
        chain.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    return chain


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """Configure structlog and the root logger from `config` (or the environment)."""
    cfg = config or AppConfig.from_env()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_PRE_CHAIN,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_PRE_CHAIN,
            processors=_render_chain(cfg.dev_mode),
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(_level(cfg.log_level))


def bind_user(user_id: str) -> None:
    """Attach `user_id` to every event logged from this context on."""
    structlog.contextvars.bind_contextvars(user=user_id)
