import logging
from typing import Optional

from logger.secret_registry import RedactSecretsFilter

VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logger(verbose: bool = False, log_file: Optional[str] = None):
    logger = logging.getLogger()
    logger.propagate = False

    # logger is singleton so clear handlers and set level to prevent duplicate logs
    for old in list(logger.handlers):
        old.close()
    logger.handlers.clear()
    console_level = VERBOSE if verbose else logging.INFO
    # the file keeps everything down to DEBUG, the console only what was asked for
    logger.setLevel(logging.DEBUG if log_file else console_level)
    formatter = logging.Formatter(_FORMAT)

    handler = logging.StreamHandler()
    handler.setLevel(console_level)
    handler.setFormatter(formatter)
    handler.addFilter(RedactSecretsFilter())
    logger.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RedactSecretsFilter())
        logger.addHandler(file_handler)

    return logger
