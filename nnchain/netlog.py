"""
Logging setup for applications using nnchain.

The library itself only emits records on the ``nnchain.*`` loggers; call
``setup_logging`` once from a script to see them.
"""

import logging
import sys

SCREEN_FORMAT = "%(asctime)s | %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)8s [%(name)s:%(lineno)d] %(message)s"


def setup_logging(level="INFO", log_file=None, stream=None):
    """
    Route ``nnchain`` log records to the screen and optionally to a file.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Screen level name ("DEBUG" also switches to the detailed format)
        log_file: Optional path receiving every record down to DEBUG
        stream: Screen stream (default: sys.stdout)

    Returns:
        The ``nnchain`` logger
    """
    log = logging.getLogger("nnchain")
    for handler in [h for h in log.handlers if getattr(h, "_nnchain", False)]:
        log.removeHandler(handler)
        handler.close()

    screen = logging.StreamHandler(stream or sys.stdout)
    screen.setFormatter(logging.Formatter(DEBUG_FORMAT if level == "DEBUG" else SCREEN_FORMAT,
                                          datefmt="%H:%M:%S"))
    screen.setLevel(level)
    screen._nnchain = True
    log.addHandler(screen)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(DEBUG_FORMAT))
        file_handler.setLevel("DEBUG")
        file_handler._nnchain = True
        log.addHandler(file_handler)

    log.setLevel("DEBUG")  # Handlers filter by their own levels.

    return log
