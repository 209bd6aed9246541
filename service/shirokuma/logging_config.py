"""
Logging configuration for the diagnosis service.
"""

import logging
import sys

from shirokuma.utils.masking import mask_secrets


class MaskingFormatter(logging.Formatter):
    """Formatter that masks secrets in the fully rendered record, traceback included."""

    def format(self, record: logging.LogRecord) -> str:
        return mask_secrets(super().format(record))


def setup_logging():
    """Setup logging with proper format and handlers."""

    # Create logger
    logger = logging.getLogger("shirokuma")
    logger.setLevel(logging.DEBUG)

    # Remove existing handlers
    logger.handlers.clear()

    # Create console handler with masking formatter
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    formatter = MaskingFormatter(
        '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    # Add handler to logger
    logger.addHandler(handler)

    # Prevent propagation to root logger (root handlers would bypass masking)
    logger.propagate = False

    return logger

# Global logger instance
bot_logger = setup_logging()
