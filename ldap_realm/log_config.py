"""Logging setup for the command-line tool.

Library modules only create module level loggers; the host application (or
the CLI) decides where records go.
"""

import logging
import sys
from typing import Optional

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Handler installed by setup_logging, replaced on reconfiguration
_console_handler: Optional[logging.Handler] = None


def setup_logging(level: str = "WARNING") -> None:
    """Send records of the given level and above to stderr."""
    global _console_handler

    level_str = (level or "WARNING").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "WARNING"
    log_level = getattr(logging, level_str)

    root = logging.getLogger()
    if _console_handler and _console_handler in root.handlers:
        root.removeHandler(_console_handler)

    _console_handler = logging.StreamHandler(sys.stderr)
    _console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))
    _console_handler.setLevel(log_level)
    root.addHandler(_console_handler)
    root.setLevel(log_level)

    # ldap3 logs through its own logger, keep it quiet unless debugging
    logging.getLogger("ldap3").setLevel(logging.DEBUG if log_level == logging.DEBUG else logging.WARNING)
