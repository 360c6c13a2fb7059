import os
import logging
from logging.handlers import RotatingFileHandler

from alicebackup.globals import Globals

logger = logging.getLogger("aliceBackup")
logger.setLevel(logging.INFO)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _old_file_namer(default_name):
    # RotatingFileHandler names the backup "<file>.1"; keep the historic "<file>.old"
    base, _, _ = default_name.rpartition(".")
    return f"{base}.old"


def configure_logging(log_file=Globals.DEFAULT_LOG_FILE, verbose=False):
    """
    Attach the rotating file handler (and optionally a console handler) to the logger.

    The log file is created with mode 0600 and rotated to "<log_file>.old" once it
    exceeds 10MB. Calling this again replaces previously attached handlers.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    if not os.path.exists(log_file):
        fd = os.open(log_file, os.O_CREAT | os.O_WRONLY, 0o600)
        os.close(fd)

    file_handler = RotatingFileHandler(log_file, maxBytes=Globals.LOG_MAX_BYTES, backupCount=1)
    file_handler.namer = _old_file_namer
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
        logger.addHandler(console_handler)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    return logger
