"""Utility functions for logging configuration"""
import sys
import logging
from typing import Optional, TextIO


def _filter_header_parsing_error(record: logging.LogRecord) -> int:
    """Filters warnings of ``urllib3.exceptions.HeaderParsingError``.

    Multipart bulk data responses of most DICOMweb servers trigger them.

    Parameters
    ----------
    record: logging.LogRecord
        log record to filter

    Returns
    -------
    int
        zero if the record should be filtered, non-zero otherwise

    """
    if 'Failed to parse headers' in record.getMessage():
        return 0
    return 1


def _map_logging_verbosity(verbosity: int) -> int:
    """Maps logging verbosity to logging level.

    Parameters
    ----------
    verbosity: int
        logging verbosity (e.g. ``2``)

    Returns
    -------
    int
        logging level (e.g. ``logging.INFO``)

    """
    levels = (logging.ERROR, logging.WARN, logging.INFO, logging.DEBUG)
    if verbosity < 0:
        return levels[0]
    try:
        return levels[verbosity]
    except IndexError:
        return levels[-1]


def configure_logging(
    verbosity: int,
    stream: Optional[TextIO] = None
) -> logging.Logger:
    """Configures the root logger with a stream handler that directs logging
    messages to standard error (to allow redirecting the study metadata that
    is written to standard output).

    Logging verbosity maps to levels as follows::

            0 -> no messages
            1 -> CRITICAL, ERROR & WARN/WARNING messages
            2 -> CRITICAL, ERROR, WARN/WARNING, & INFO messages
            3 -> CRITICAL, ERROR, WARN/WARNING, INFO & DEBUG messages
            4 -> all messages, including the name of the worker thread

    Parameters
    ----------
    verbosity: int
        logging verbosity
    stream: Union[TextIO, None], optional
        stream to write to (defaults to ``sys.stderr``)

    Returns
    -------
    logging.Logger
        package root logger

    """
    if verbosity > 3:
        # instances and palettes are fetched on worker threads
        fmt = (
            '%(asctime)s | %(levelname)-8s | %(threadName)-24s | '
            '%(name)-32s | %(lineno)-4s | %(message)s'
        )
    else:
        fmt = '%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s'
    datefmt = '%Y-%m-%d %H:%M:%S'
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    if stream is None:
        stream = sys.stderr
    stream_handler = logging.StreamHandler(stream=stream)
    stream_handler.name = 'stderr'
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if handler.name == stream_handler.name:
            root_logger.removeHandler(handler)
    root_logger.addHandler(stream_handler)
    level = _map_logging_verbosity(verbosity)
    root_logger.setLevel(logging.ERROR)

    pkg_name = __name__.split('.')[0]
    pkg_logger = logging.getLogger(pkg_name)
    pkg_logger.setLevel(level)

    requests_logger = logging.getLogger('urllib3')
    requests_logger.setLevel(level)
    requests_logger.propagate = True

    conn_pool_logger = logging.getLogger('urllib3.connectionpool')
    conn_pool_logger.addFilter(_filter_header_parsing_error)

    return pkg_logger
