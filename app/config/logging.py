"""
Logging configuration.

Configures loguru for the scheduler and the Dramatiq workers.
Sets up log rotation and retention policies.
"""

from loguru import logger

from app.config.constants import LOG_FILE_PATH, LOG_RETENTION, LOG_ROTATION


def setup_logging(level: str = "INFO", log_file: str = LOG_FILE_PATH) -> None:
    """Configure logger with file rotation."""
    logger.add(
        log_file,
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        level=level,
        encoding="utf-8",
    )

    logger.info("Starting retry worker...")
