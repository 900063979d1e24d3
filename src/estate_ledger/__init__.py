"""Estate Ledger: sales, payments, commissions and installments for an estate agency.

Every module logs through the package ``log`` object defined here. Records go
to ``.logs/estate_ledger.log`` in the project root (or ``ESTATE_LEDGER_LOG_DIR``)
and to stderr, so command output on stdout stays machine readable.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional, Tuple


__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR_ENV = "ESTATE_LEDGER_LOG_DIR"
LOG_LEVEL_ENV = "ESTATE_LEDGER_LOG_LEVEL"
LOG_FILE_NAME = "estate_ledger.log"


def resolve_log_settings(environ: Optional[Mapping[str, str]] = None) -> Tuple[Path, int]:
    """Return the log directory and level, honouring the environment overrides.

    Unknown level names fall back to INFO.
    """

    environ = os.environ if environ is None else environ
    log_dir = Path(environ.get(LOG_DIR_ENV) or PROJECT_ROOT / ".logs")
    level = logging.getLevelName(environ.get(LOG_LEVEL_ENV, "INFO").upper())
    return log_dir, level if isinstance(level, int) else logging.INFO


def configure_logging(
    name: str = __name__,
    environ: Optional[Mapping[str, str]] = None,
) -> logging.Logger:
    """Attach a rotating ledger log file and a stderr stream to logger ``name``."""

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_dir, level = resolve_log_settings(environ)
    logger.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_file = log_dir / LOG_FILE_NAME
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    except OSError as exc:
        # Ledger commands still run; only the file trail is lost.
        print(f"Estate Ledger: audit log file '{log_file}' unavailable ({exc}); logging to stderr only", file=sys.stderr)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.debug("Ledger log for '%s' writes to %s at level %s", name, log_file, logging.getLevelName(level))
    return logger


log = configure_logging()
