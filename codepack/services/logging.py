# codepack/services/logging.py
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.paths import get_user_log_dir


def setup_logging(level: str = "INFO", verbose: bool = False, log_dir: Optional[Path] = None) -> None:
    """Configures logging using Loguru: colored stderr plus a rotating file sink."""
    log_level = "DEBUG" if verbose else level

    # Remove default handler
    logger.remove()

    fmt_console = "<level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
    logger.add(
        sys.stderr,
        level=log_level,
        format=fmt_console,
        colorize=True,
        enqueue=True
    )

    fmt_file = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process} | {thread.name} | {name}:{function}:{line} - {message}"
    log_file_str = ""
    try:
        directory = Path(log_dir) if log_dir else get_user_log_dir()
        directory.mkdir(parents=True, exist_ok=True)
        log_file_str = str(directory / "codepack_{time:YYYY-MM-DD}.log")
        logger.add(
            log_file_str,
            level="DEBUG", # Log more details to file
            format=fmt_file,
            rotation="1 day",
            retention="7 days",
            compression="zip",
            enqueue=True,
            encoding="utf-8"
        )
        logger.info(f"Logging initialized. Level: {log_level}. Log file: {log_file_str}")
    except (OSError, ValueError) as e:
        # File logging is optional (read-only home, bad permissions)
        logger.error(f"Could not configure file logging to {log_file_str or log_dir}: {e}")
        logger.warning("File logging disabled.")
