"""
Logging setup and the error handling decorator shared by the application.
"""

import os
import sys
import time
import logging
import traceback
from datetime import datetime
from functools import wraps
from logging.handlers import RotatingFileHandler

logger = logging.getLogger("AutoPaint")

LOG_RETENTION_SECONDS = 7 * 24 * 60 * 60


def setup_logging(log_dir=None, console_level=logging.INFO):
    """Configure application-wide logging with file and console output"""
    if log_dir is None:
        log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")

    # Ensure log directory exists
    if not os.path.exists(log_dir):
        try:
            os.makedirs(log_dir)
        except OSError:
            # Fall back to the script directory if we can't create the logs dir
            log_dir = os.path.dirname(os.path.abspath(__file__))

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"autopaint_{timestamp}.log")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    detailed_format = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s')

    # Per-run file with everything
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_format)

    # Rolling history, 5MB each, 5 backups max
    rotating_handler = RotatingFileHandler(
        os.path.join(log_dir, "autopaint.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    rotating_handler.setLevel(logging.DEBUG)
    rotating_handler.setFormatter(detailed_format)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    root.addHandler(file_handler)
    root.addHandler(rotating_handler)
    root.addHandler(console_handler)

    cleanup_old_logs(log_dir)

    logger.info(f"AutoPaint started at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"Operating system: {sys.platform}")
    logger.info(f"Log file: {log_file}")

    return logger


def cleanup_old_logs(log_dir, max_age=LOG_RETENTION_SECONDS):
    """Remove per-run log files older than max_age seconds"""
    removed = 0
    try:
        for name in os.listdir(log_dir):
            if name.startswith("autopaint_") and name.endswith(".log"):
                path = os.path.join(log_dir, name)
                if (time.time() - os.path.getmtime(path)) > max_age:
                    os.remove(path)
                    removed += 1
    except OSError as e:
        logger.warning(f"Error cleaning old log files: {e}")
    return removed


def error_handler(func):
    """Decorator for catching and logging exceptions in methods

    The wrapped call returns None when the function raised.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if args and hasattr(args[0], '__class__'):
            class_name = args[0].__class__.__name__
        else:
            class_name = func.__module__

        try:
            logger.debug(f"Calling {class_name}.{func.__name__}")
            result = func(*args, **kwargs)
            logger.debug(f"Completed {class_name}.{func.__name__}")
            return result

        except Exception as e:
            logger.error(f"Error in {class_name}.{func.__name__}: {str(e)}")
            logger.debug(f"Exception type: {type(e).__name__}")
            logger.debug(f"Function arguments: {args[1:]} {kwargs}")
            logger.debug(f"Traceback: {traceback.format_exc()}")
            return None
    return wrapper
