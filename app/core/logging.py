import logging
import sys
from typing import Optional

from app.core.config import settings

def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure structured logging for the CLI.

    The library modules only create loggers; handlers are installed here.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level or settings.log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create console handler
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z"
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noise
    logging.getLogger("networkx").setLevel(logging.WARNING)
