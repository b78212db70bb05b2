"""PII redaction for tool arguments shown to clients and written to logs."""

import re
from typing import Any

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(r"(\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")

EMAIL_PLACEHOLDER = "[EMAIL_REDACTED]"
PHONE_PLACEHOLDER = "[PHONE_REDACTED]"


def redact_pii(text: str, emails: bool = True, phones: bool = True) -> str:
    """Replace email addresses and phone numbers in a string with placeholders."""
    redacted = text
    if emails:
        redacted = EMAIL_PATTERN.sub(EMAIL_PLACEHOLDER, redacted)
    if phones:
        redacted = PHONE_PATTERN.sub(PHONE_PLACEHOLDER, redacted)
    return redacted


def redact_pii_from_object(value: Any, emails: bool = True, phones: bool = True) -> Any:
    """Recursively redact every string inside a JSON-like structure."""
    if isinstance(value, str):
        return redact_pii(value, emails=emails, phones=phones)
    if isinstance(value, list):
        return [redact_pii_from_object(item, emails=emails, phones=phones) for item in value]
    if isinstance(value, dict):
        return {key: redact_pii_from_object(item, emails=emails, phones=phones) for key, item in value.items()}
    return value
