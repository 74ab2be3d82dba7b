import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '1.0.0'

LOG_FORMAT = '%(asctime)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(log_file=None, level=logging.INFO):
    """
    Configure package logging.

    Lines go to the console and, when log_file is given, are appended to it
    as "YYYY-MM-DD HH:MM:SS - message". Calling again replaces the handlers,
    so the log file can be switched once the configuration has been read.

    Args:
        log_file: Path of the run log (optional)
        level: Logging level

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(__name__)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        try:
            log_dir = os.path.dirname(os.path.abspath(log_file))
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
        except OSError as e:
            logger.warning(f"Cannot open log file {log_file}: {e}. Logging to console only.")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
