import logging
import sys

from knowdesk.settings import settings

# Third-party loggers that are chatty at INFO during ingestion and answering.
QUIET_LOGGERS = ("httpx", "httpcore", "fastembed", "celery.app.trace")


def setup_logging() -> logging.Logger:
    """
    Sets up the knowdesk logger with a stdout handler. DEBUG=true lowers the
    level to DEBUG.
    """
    logger = logging.getLogger("knowdesk")
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


logger = setup_logging()
