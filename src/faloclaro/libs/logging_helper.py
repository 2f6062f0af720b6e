import inspect
import logging
import os
import sys

from loguru import logger

from faloclaro.constants import ENV, LOG_LEVEL, PRODUCT
from faloclaro.utils.logging_config import NOISY_LOGGERS

__all__ = ["logger", "setup_logging"]


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists.
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message.
        frame, depth = inspect.currentframe(), 0
        while frame:
            filename = frame.f_code.co_filename
            is_logging = filename == logging.__file__
            is_frozen = "importlib" in filename and "_bootstrap" in filename
            if depth > 0 and not (is_logging or is_frozen):
                break
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


_configured = False


def setup_logging(level: str | None = None) -> None:
    """Route stdlib logging through loguru.

    Every module logs with ``logging.getLogger(__name__)``; this installs a
    single intercepting handler on the root logger and a loguru sink on
    stdout. ``LOG_FORMAT=json`` switches the sink to serialized records.
    Calling it twice is a no-op.
    """
    global _configured
    if _configured:
        return

    level = (level or LOG_LEVEL).upper()
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.remove()  # Remove default configuration
    if os.getenv("LOG_FORMAT") == "json":
        logger.add(
            sys.stdout, level=level, backtrace=True, diagnose=False, serialize=True
        )
    else:
        logger.add(sys.stdout, level=level, backtrace=True, diagnose=False)
    if ENV == "dev":
        logger.add(f"/tmp/{PRODUCT}-{ENV}.log", level=level)

    _configured = True
    logger.info(f"Logging setup completed (env={ENV}, level={level})")
