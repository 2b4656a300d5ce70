import logging
import logging.handlers
import sys
import time

LOGGER_NAME = "gh-sks"


class UTCFormatter(logging.Formatter):
    converter = time.gmtime


def get_logger(name: str = "") -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def setup_logging(verbose: bool = False, log_file: str = "") -> logging.Logger:
    """Configure the gh-sks logger for command line use.

    Messages go to stderr and, when `log_file` is given, to a rotating file.
    Handlers from a previous call are replaced.
    """
    logger = get_logger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    formatter = UTCFormatter(
        "%(asctime)s [gh-sks] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    log_file, maxBytes=10 * 1024 * 1024, backupCount=5
                )
            )
        except OSError as e:
            print(f"Error setting up file logging: {e}", file=sys.stderr)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
