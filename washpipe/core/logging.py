"""
Logging setup for the Washpipe API process.

Log lines go to stdout and to a dated file under LOG_DIR. HTTP client
libraries log every request at INFO; they are held at WARNING so poll
pages stay readable.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "google")

_HANDLER_MARK = "_washpipe_handler"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    log_dir: Union[str, Path] = "logs",
) -> logging.Logger:
    """
    Attach washpipe's console and file handlers to the root logger.

    Calling it again replaces washpipe's own handlers and leaves handlers
    installed by uvicorn or pytest in place.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Explicit log file (default: <log_dir>/washpipe_YYYYMMDD.log)
        console: Also log to stdout
        log_dir: Directory for the dated default log file

    Returns:
        The root logger
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in [h for h in root_logger.handlers if getattr(h, _HANDLER_MARK, False)]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    if log_file is None:
        log_file = Path(log_dir) / f"washpipe_{datetime.now().strftime('%Y%m%d')}.log"
    log_path = Path(log_file)
    log_path.parent.mkdir(exist_ok=True, parents=True)
    handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    root_logger.info(f"Logging to {log_path} at {logging.getLevelName(numeric_level)}")
    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def init_pipeline_logging(level: str = "INFO", log_dir: Union[str, Path] = "logs") -> logging.Logger:
    """Configure logging from the LOG_LEVEL / LOG_DIR settings."""
    return setup_logging(level=level, log_dir=log_dir)
