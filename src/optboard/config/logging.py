"""
Loguru sink setup.
"""

import sys
from pathlib import Path

from loguru import logger

from optboard.config.settings import LoggingConfig

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(config: LoggingConfig) -> None:
    """
    Replace the default loguru handler with stderr (and optional file) sinks.

    Args:
        config: Logging section of MonitorConfig
    """
    logger.remove()
    logger.add(sys.stderr, level=config.level, format=LOG_FORMAT)

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file,
            rotation=config.rotation,
            retention=config.retention,
            compression=config.compression,
            level=config.level,
            format=LOG_FORMAT,
        )
        logger.info(f"Logging to: {config.file}")
