"""
Custom logging configuration that masks secrets in pipeline logs
"""

import logging
import logging.config
from typing import Any, Dict, Set

MASK = "****"

_secrets: Set[str] = set()


def register_secret(value: str) -> None:
    """Register a value that must never appear in log output."""
    if value and len(value) >= 4:
        _secrets.add(value)


def clear_secrets() -> None:
    _secrets.clear()


class SecretMaskFilter(logging.Filter):
    """Filter that replaces registered secrets in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Rewrite the record message with secrets masked."""
        if not _secrets:
            return True

        message = record.getMessage()
        masked = message
        for secret in _secrets:
            masked = masked.replace(secret, MASK)

        if masked != message:
            record.msg = masked
            record.args = None
        return True  # Never drop records, only rewrite them


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get logging configuration with secret masking."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "secret_mask_filter": {
                "()": SecretMaskFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
                "filters": ["secret_mask_filter"]
            }
        },
        "loggers": {
            "kubeship": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            "urllib3": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            }
        },
        "root": {
            "level": "WARNING",
            "handlers": ["default"]
        }
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(get_logging_config(level))
