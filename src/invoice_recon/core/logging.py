import sys
from loguru import logger
from .config import settings


def setup_logging(level: str | None = None, serialize: bool | None = None):
    """
    Configure the shared loguru logger for the service.

    Replaces loguru's default sink with a single stderr sink whose level and
    output format come from settings (LOG_LEVEL, LOG_JSON). Structured context
    passed as keyword arguments (logger.info("...", item_id=...)) ends up in
    the record's "extra" dict and is rendered after the message.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        serialize=settings.log_json if serialize is None else serialize,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
            "<level>{message}</level> {extra}"
        ),
        backtrace=False,
        diagnose=settings.app_env == "dev",
    )
    return logger
