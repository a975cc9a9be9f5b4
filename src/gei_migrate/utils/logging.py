"""Logging utilities for the GEI migration control plane."""

import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
    '<level>{level: <8}</level> | '
    '<cyan>{extra[component]}</cyan> | '
    '<level>{message}</level>'
)

FILE_FORMAT = (
    '{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | '
    '{extra[component]} | {name}:{function}:{line} | {message}'
)

# Classic and fine-grained GitHub tokens.
_TOKEN_PATTERN = re.compile(r'\b(gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})')


def redact(text: str) -> str:
    """Replace anything shaped like a GitHub token."""
    return _TOKEN_PATTERN.sub('<redacted>', text)


def _patch_record(record) -> None:
    record['message'] = redact(record['message'])


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Configure loguru sinks.

    Console output goes to stderr so that stdout stays free for command
    results. Records carry a ``component`` extra (``logger.bind``) and are
    passed through :func:`redact` before reaching any sink.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional rotating log file
        log_format: Console format overriding the default
    """
    logger.remove()
    logger.configure(extra={'component': 'gei-migrate'}, patcher=_patch_record)

    logger.add(
        sys.stderr,
        format=log_format or CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        # Variable values in tracebacks could expose tokens.
        diagnose=False,
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level=level,
            rotation='10 MB',
            retention='30 days',
            compression='gz',
            backtrace=True,
            diagnose=False,
        )
        logger.debug(f'Logging to {log_file} at {level}')


def mask_secret(secret: Optional[str]) -> str:
    """Describe a secret for log output without revealing it."""
    if not secret:
        return '<unset>'
    return '<set>'
