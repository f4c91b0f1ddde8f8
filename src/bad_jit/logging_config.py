# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Logging setup for scripts and experiments.

Library modules only create module-level loggers with
`logging.getLogger(__name__)`; attaching handlers is left to the
application. `get_logger` does that for experiments and benchmarks.
"""

import logging

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Return a logger with the given name.
    Logs `level` and above to the console.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:  # avoid duplicate handlers on reload
        logger.setLevel(level)

        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)

    return logger
