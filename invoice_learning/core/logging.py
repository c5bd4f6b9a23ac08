import sys

from loguru import logger

from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level> | {extra}"
)


def setup_logging(level: str | None = None, json_output: bool | None = None):
    """
    Configure the loguru logger for the library.

    Replaces loguru's default handler with a single stderr sink. Structured
    fields passed as keyword arguments (logger.info("...", schema_id=...)) end up
    in ``extra`` and are rendered after the message, or serialized as JSON when
    LOG_JSON is set.

    Returns:
        The configured loguru logger
    """
    level = level or settings.log_level
    json_output = settings.log_json if json_output is None else json_output

    logger.remove()
    if json_output:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logger.debug("Logging configured", level=level, json_output=json_output, app_env=settings.app_env)
    return logger
