import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ..config.config import settings

LOG_FORMAT = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"
LOG_FILE_NAME = "internship_tracker.log"

# Loggers that report every scheduler tick or connection at INFO.
NOISY_LOGGERS = ("apscheduler.executors.default", "apscheduler.scheduler")


def setup_logging():
    """
    Configures the root logger for the whole application.

    Records go to stdout and to a size-rotated file in ``settings.LOG_DIR``
    (mounted as a volume in deployment). Handlers installed earlier, for
    example by uvicorn, are replaced so every line shares one format.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    logger = logging.getLogger()
    logger.setLevel(settings.LOG_LEVEL)

    if logger.hasHandlers():
        logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=5*1024*1024,  # 5 MB
        backupCount=5
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
