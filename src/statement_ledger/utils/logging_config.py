"""Logging configuration for the statement ledger."""

import logging
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "statement_ledger"

# Default log file name
DEFAULT_LOG_FILE = "statement_ledger.log"

# Sensitive field names to mask in log output
SENSITIVE_FIELDS = {
    "password", "token", "cpf", "cnpj", "account_number", "agencia",
    "card_number", "pin", "secret", "api_key", "pix_key",
}

# Log format with timestamp, level, module, and message
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _sanitize_context(context: dict[str, object]) -> dict[str, object]:
    """Mask sensitive fields in a context dict.

    Args:
        context: Dictionary of context values.

    Returns:
        Dictionary with sensitive fields masked.
    """
    return {k: "***" if k.lower() in SENSITIVE_FIELDS else v for k, v in context.items()}


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = DEFAULT_LOG_FILE,
    console_output: bool = True,
) -> logging.Logger:
    """Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. None disables file logging.
        console_output: Whether to also output to stderr.

    Returns:
        The package root logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_file:
        file_handler = logging.FileHandler(Path(log_file), encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__).

    Returns:
        A logger under the package namespace.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class LogContext:
    """Context manager that logs the start, end, and failure of an operation."""

    def __init__(self, logger: logging.Logger, operation: str, **context: object):
        """Initialize log context.

        Args:
            logger: Logger instance to use.
            operation: Name of the operation being performed.
            **context: Additional context to include in log messages.
        """
        self.logger = logger
        self.operation = operation
        self.context = context

    def __enter__(self) -> "LogContext":
        sanitized = _sanitize_context(self.context)
        context_str = ", ".join(f"{k}={v}" for k, v in sanitized.items())
        self.logger.debug(f"Starting {self.operation}: {context_str}")
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> bool:
        if exc_type is not None:
            self.logger.error(
                f"Error in {self.operation}: {exc_type.__name__}: {exc_val}",
                exc_info=True,
            )
        else:
            self.logger.debug(f"Completed {self.operation}")
        return False
