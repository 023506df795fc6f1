import logging
from loguru import logger

from app.core.config import settings


# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "multipart")


class InterceptHandler(logging.Handler):
    """Routes records from stdlib loggers (uvicorn, sqlalchemy, httpx) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_back and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging():
    logging.root.handlers.clear()
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.add(
        settings.log_file,
        rotation=settings.log_rotation,
        compression="zip",
        level=settings.log_level or ("DEBUG" if settings.debug else "INFO"),
        backtrace=True,
        diagnose=settings.debug,
        enqueue=True,
    )
