from __future__ import annotations
import logging
import logging.config
from pathlib import Path
from typing import Optional
import yaml

PACKAGE_LOGGER = "message_export"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(config_path: str = "configs/logging.yaml", level: Optional[str] = None) -> None:
    """
    Configure logging for an export run.

    The dictConfig YAML at `config_path` is applied when it exists, otherwise a
    console handler is installed. `level`, when given, overrides the level of
    the message_export logger tree in either case (e.g. DEBUG to see every
    discarded duplicate).
    """
    path = Path(config_path)
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            logging.config.dictConfig(yaml.safe_load(f))
    else:
        logging.basicConfig(level=level or logging.INFO, format=CONSOLE_FORMAT)

    if level:
        logging.getLogger(PACKAGE_LOGGER).setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    """Logger under the message_export tree; bare component names are prefixed."""
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
