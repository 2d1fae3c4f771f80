import sys
import logging
from pathlib import Path
from typing import Optional
from loguru import logger

from config import app_config

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{function}:{line} | {message}"
CONSOLE_FORMAT = "{time:HH:mm:ss} | {level} | {message}"

# Standard-library loggers forwarded into loguru (the HTTP server logs through these).
STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


class InterceptHandler(logging.Handler):
    """Re-emit standard ``logging`` records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip the logging module's own frames so {function}/{line} point at the caller.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_stdlib_logging(names=STDLIB_LOGGERS, level: int = logging.INFO) -> None:
    handler = InterceptHandler()
    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.setLevel(level)
        std_logger.propagate = False


def setup_logger(
        log_file: Optional[str] = None,
        level: Optional[str] = None,
        console_level: str = "WARNING",
):
    """
    Route all output to a rotating file plus stderr.

    ``log_file``/``level`` default to LOG_FILE/LOG_LEVEL. The terminal chat
    passes ``console_level="CRITICAL"`` so log lines never land in the REPL.
    """
    log_file = log_file or app_config.log_file
    level = (level or app_config.log_level).upper()

    logger.remove()
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        level=level,
        format=FILE_FORMAT,
        backtrace=True,
        # no local variable values in tracebacks
        diagnose=False,
        enqueue=True,
    )
    logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT)

    std_level = logging.getLevelName(level)
    intercept_stdlib_logging(level=std_level if isinstance(std_level, int) else logging.INFO)

    logger.info(f"{app_config.name} logging to {log_file} at {level}")
    return logger
