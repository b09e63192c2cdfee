import sys
from loguru import logger
from nearby.core.config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"

def setup_logging() -> None:
    logger.remove()

    logger.add(
        sys.stdout,
        level=LOG_LEVEL,
        format=LOG_FORMAT,
    )

    if LOG_FILE:
        logger.add(
            LOG_FILE,
            rotation="10 MB",
            retention="14 days",
            level=LOG_LEVEL,
            format=LOG_FORMAT,
            enqueue=True,
        )

    logger.info("Logging initialized")
