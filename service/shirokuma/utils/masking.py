"""
Secret masking for log output.

Every log line passes through mask_secrets before it reaches a sink.
"""

import re
from typing import Iterable, Optional

MASK = "***"

# Registered secret values (tokens, keys) loaded from settings at startup
_registered_secrets: set[str] = set()

# Shorter values would mask ordinary words
MIN_SECRET_LENGTH = 6

_SECRET_PATTERNS = [
    (re.compile(r'(Bearer\s+)[A-Za-z0-9._~+/=-]+', re.IGNORECASE), r'\1' + MASK),
    (re.compile(r'\bsk-[A-Za-z0-9_-]{8,}'), MASK),
    (re.compile(r'((?:api[_-]?key|access[_-]?token|secret)["\']?\s*[:=]\s*["\']?)[^\s"\',}]+', re.IGNORECASE), r'\1' + MASK),
]


def register_secret(value: Optional[str]) -> None:
    """Add a secret value to be masked in every log line."""
    if value and len(value) >= MIN_SECRET_LENGTH:
        _registered_secrets.add(value)


def clear_registered_secrets() -> None:
    _registered_secrets.clear()


def mask_secrets(text: str, secrets: Optional[Iterable[str]] = None) -> str:
    """
    Replace secret values and secret-shaped tokens with a mask.

    Args:
        text: Text about to be logged
        secrets: Extra secret values; registered secrets are always applied

    Returns:
        Masked text
    """
    if not text:
        return text

    values = set(_registered_secrets)
    if secrets:
        values.update(s for s in secrets if s and len(s) >= MIN_SECRET_LENGTH)

    # Longest first so a secret containing another is masked whole
    for value in sorted(values, key=len, reverse=True):
        text = text.replace(value, MASK)

    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)

    return text
