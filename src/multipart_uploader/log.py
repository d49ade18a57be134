import logging
import sys
from pathlib import Path

_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
_PACKAGE = "multipart_uploader"
# per-request lines from the HTTP stack
_NOISY = ("httpx", "httpcore")


def configure_logging(
    level: int = logging.INFO, log_file: Path | None = None
) -> logging.Logger:
    """Route the uploader's log records to stdout and optionally a file.

    Only the package logger is configured, so an application embedding the
    uploader keeps its own root setup. httpx request lines show up at DEBUG
    only.

    Args:
        level: The logging level (default: logging.INFO)
        log_file: Optional path to a log file
    """
    logger = logging.getLogger(_PACKAGE)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    noisy_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _NOISY:
        logging.getLogger(name).setLevel(noisy_level)
    return logger
