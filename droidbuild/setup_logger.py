import logging
import sys


def setup_logger(log_level=logging.INFO, log_file=None):
    """
    Setup logging for droidbuild. Device work runs on one thread per device, so the
    thread name is part of every line.

    :param log_level: int - level for the root logger and its handlers.
    :param log_file: str - optional path of an additional log file.
    """
    logger = logging.getLogger()
    if not logger.handlers:
        logger.setLevel(log_level)
        formatter = logging.Formatter('%(asctime)s - %(threadName)s - %(levelname)s - %(message)s')
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    return logger
