import logging
from typing import Any


_default_root_logger = logging.getLogger()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# chatty at DEBUG and never about the page being captured
_QUIET_LOGGERS = ("asyncio", "PIL")


def create_stream_logging_handler(
    log_level: int, root_logger: logging.Logger = _default_root_logger
) -> logging.StreamHandler[Any]:
    """
    Sets up logging with a single handler which emits logs to stderr.
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger.setLevel(log_level)
    root_logger.addHandler(stream_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    return stream_handler
