"""
Logging Configuration

Library modules only create `logging.getLogger(__name__)` loggers under the
`block_voxelizer` namespace. Handlers are attached by the `blockvox` command
through setup_logging(); embedding applications configure logging themselves.
"""
import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "block_voxelizer"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.WARNING, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to the package logger.

    Voxelizer warnings such as clamped resolutions or undecodable textures
    reach the user on stderr. With -v the engine's per-conversion debug
    records (grid size, atlas layout, written files) show up as well.

    Args:
        level: Threshold for the package logger and its handlers
        log_file: Optional path; the file receives the same records as the console

    Returns:
        The `block_voxelizer` logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # main() may run several times in one process (tests, batch scripts)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # stdout carries the command's own messages ("Exported: ...", --stats)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging to stderr%s at %s", f" and {log_file}" if log_file else "",
                 logging.getLevelName(level))
    return logger
