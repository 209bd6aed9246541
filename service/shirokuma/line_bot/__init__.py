"""
LINE bot module for the Shirokuma diagnosis service.

ARCHITECTURE: Thin routing layer over services/
- Receives webhook events from LINE
- Parses and validates the diagnosis request
- Acknowledges with a reply, runs the diagnosis in the background
- Delivers the result with a push message

All diagnosis logic (classification, prompts, completion, reports)
lives in services/.
"""

from .bot import handle_webhook_events, initialize_bot, shutdown_bot, get_dispatcher
from .handlers import DiagnosisDispatcher, FormValidationError
from .line_api import get_line_client
from .signature import verify_signature

__all__ = [
    "handle_webhook_events",
    "initialize_bot",
    "shutdown_bot",
    "get_dispatcher",
    "DiagnosisDispatcher",
    "FormValidationError",
    "get_line_client",
    "verify_signature",
]
