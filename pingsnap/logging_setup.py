"""
Per-target run log: a midnight-rotated file named after the target host plus
console output. Sample lines, process failures with their diagnostics and
persistence errors all go to both.
"""
import logging
import re
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from pingsnap.config import get_config_dir

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
BACKUP_DAYS = 30

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def log_file_name(target: Optional[str] = None) -> str:
    """pingsnap-<target>.log, with anything unsafe in a file name replaced by '_'."""
    if not target:
        return "pingsnap.log"
    safe = _UNSAFE.sub("_", target.strip()).strip("._") or "target"
    return f"pingsnap-{safe}.log"


def resolve_log_file(log_path: Optional[str], target: Optional[str] = None) -> Path:
    """
    `log_path` may name a directory (the target's file goes inside it) or a
    file ending in .log, used as is. Unset means <config dir>/logs.
    """
    base = Path(log_path) if log_path else get_config_dir() / "logs"
    if base.suffix == ".log" and not base.is_dir():
        return base
    return base / log_file_name(target)


def setup_logging(
    log_path: Optional[str] = None,
    verbose: bool = False,
    target: Optional[str] = None,
) -> logging.Logger:
    """Replace the root handlers with the run log file and the console; returns the 'pingsnap' logger."""
    log_file = resolve_log_file(log_path, target)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    fh = TimedRotatingFileHandler(log_file, when="midnight", backupCount=BACKUP_DAYS, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    # selector and subprocess transport chatter
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger("pingsnap")
    logger.setLevel(logging.DEBUG)
    logger.debug("Logging to %s", log_file)
    return logger
