"""Console and file logging for CLI runs."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
REDACTED = "***REDACTED***"


class SecretRedactionFilter(logging.Filter):
    """Logging filter that replaces known secrets with ``***REDACTED***``."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self._secrets = [s for s in secrets if s]

    def _scrub(self, value: object) -> object:
        text = str(value)
        if not any(s in text for s in self._secrets):
            return value
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        record.msg = self._scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self._scrub(a) for a in record.args)
        elif isinstance(record.args, dict):
            record.args = {k: self._scrub(v) for k, v in record.args.items()}
        return True


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    secrets: Iterable[str] = (),
) -> logging.Logger:
    """Configure the ``groupmigrate`` logger with a clean console format.

    The console shows INFO (DEBUG with *verbose*); the optional log file
    always receives DEBUG with timestamps.
    """
    logger = logging.getLogger("groupmigrate")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    redaction = SecretRedactionFilter(secrets)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter("%(message)s"))
    console.addFilter(redaction)
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.addFilter(redaction)
        logger.addHandler(file_handler)

    return logger
