"""Structured logging initialisation utilities."""
from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict

import structlog
import yaml

_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def configure_logging(config_path: Path) -> None:
    """Configure stdlib and structlog logging using the YAML definition."""
    if not config_path.exists():
        logging.basicConfig(level=logging.INFO)
        structlog.configure(processors=_PROCESSORS)
        return

    with config_path.open("r", encoding="utf-8") as handle:
        config: Dict[str, Any] = yaml.safe_load(handle)
    logging.config.dictConfig(config)
    structlog.configure(
        processors=_PROCESSORS,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
