"""Logging setup for YuFi."""
import logging
import re
import sys
from pathlib import Path
from typing import Optional

# key=value / key: value pairs whose value must never reach a log handler
_SECRET_PATTERN = re.compile(
    r'(?P<key>\b(?:password|passphrase|psk|wep-key0|secret|token)\b\s*[=:]\s*)'
    r'(?P<quote>[\'"]?)(?P<value>[^\s\'",)]+)(?P=quote)',
    re.IGNORECASE,
)


class SanitizingFormatter(logging.Formatter):
    """
    Formatter that masks credentials in the rendered message.

    Anything that looks like ``psk=...`` or ``password: ...`` is replaced
    with ``***``.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        return _SECRET_PATTERN.sub(
            lambda m: f"{m.group('key')}{m.group('quote')}***{m.group('quote')}",
            message,
        )


def setup_logger(
    name: str = "yufi",
    level=logging.INFO,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Set up the application logger.

    Args:
        name: Logger name (module loggers are children of it)
        level: Logging level, as an int or a level name
        log_file: Optional file path for file handler

    Returns:
        Configured logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(SanitizingFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(SanitizingFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    return logger
