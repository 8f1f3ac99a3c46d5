"""A print-based logger for interactive simulation work.

Standard Python logging disappears in Jupyter notebooks unless carefully
configured. This module prints to stdout with timestamps and level labels
instead. A training loop runs many episodes and each one logs a summary at
INFO, so a single process-wide threshold lets a caller quiet the whole
package:

    from spikenet.utils import get_logger, set_level
    log = get_logger("my_module")
    log.info("Built %s neurons", 175)
    set_level("WARNING")   # episode summaries are now dropped
"""

import sys
from datetime import datetime

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

_threshold = {"level": LEVELS["DEBUG"]}


def set_level(level):
    """Set the minimum level printed by every spikenet logger.

    Returns the previous level name, so callers can restore it.
    """
    name = str(level).upper()
    if name not in LEVELS:
        raise ValueError(f"Unknown log level {level!r}; "
                         f"expected one of {list(LEVELS)}")
    previous = get_level()
    _threshold["level"] = LEVELS[name]
    return previous


def get_level():
    """Name of the current minimum level."""
    for name, value in LEVELS.items():
        if value == _threshold["level"]:
            return name
    return "DEBUG"


def get_logger(name, out=None):
    """Create a print-based logger.

    Parameters
    ----------
    name : str
        Logger name, displayed in every message header.
    out : file-like, optional
        Additional output stream (e.g., an open episode log file).

    Returns
    -------
    callable
        A log function with .debug, .info, .warning, .error methods.
    """
    prefix = f"spikenet:{name}"
    line_length = 72
    outputs = [sys.stdout] + ([out] if out else [])

    def _header(level):
        now = datetime.now().strftime("%H:%M:%S")
        for dest in outputs:
            print(f"{'_' * line_length}", file=dest)
            print(f"{prefix} {level} [{now}]", file=dest)

    def log(level, msg, args):
        if LEVELS[level] < _threshold["level"]:
            return
        _header(level)
        for dest in outputs:
            try:
                print(msg % args, file=dest)
            except TypeError:
                print(msg, file=dest)

    log.debug = lambda msg, *args: log("DEBUG", msg, args)
    log.info = lambda msg, *args: log("INFO", msg, args)
    log.warning = lambda msg, *args: log("WARNING", msg, args)
    log.error = lambda msg, *args: log("ERROR", msg, args)

    return log
