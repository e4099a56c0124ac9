import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from trainstats.session import get_session_id
from trainstats.config import config


def setup_error_logger(session_id: Optional[str] = None) -> logging.Logger:
    """
    Configure the global trainstats logger.
    Writes WARN+ to stderr and, when file logging is enabled, ERROR+ to a
    rotating file under `<logs_dir>/<session_id>/`.
    """
    logger = logging.getLogger("trainstats")
    if logger.handlers:
        return logger

    logger.setLevel(logging.WARNING)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.WARNING)
    sh.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logger.addHandler(sh)

    if config.enable_logging:
        errors_dir = Path(config.logs_dir) / (session_id or get_session_id())
        errors_dir.mkdir(parents=True, exist_ok=True)

        fh = RotatingFileHandler(
            errors_dir / "trainstats_errors.log",
            maxBytes=5_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setLevel(logging.ERROR)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(fh)

    logger.propagate = False
    return logger


def get_error_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"trainstats.{name}")
