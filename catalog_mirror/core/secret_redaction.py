from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<REDACTED>"

_KEY_VALUE_PATTERNS = [
    re.compile(
        r'(?i)("?(?:consumer_key|consumer_secret|oauth_signature|oauth_consumer_key|access_token|token|'
        r'api_key|password|client_secret)"?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|[^&,\s}\])]+)'
    ),
    re.compile(r"(?i)(authorization\s*[:=]\s*(?:bearer|basic)\s+)([^\s,;]+)"),
]
_URL_CREDENTIALS_PATTERN = re.compile(r"(?i)(https?://)[^/\s:@]+:[^/\s@]+@")


def redact_text(text: str) -> str:
    """Masks WooCommerce keys, tokens and URL credentials in free text."""
    redacted = text
    for pattern in _KEY_VALUE_PATTERNS:
        redacted = pattern.sub(rf"\1{REDACTED}", redacted)
    return _URL_CREDENTIALS_PATTERN.sub(rf"\1{REDACTED}@", redacted)


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, BaseException):
        return redact_text(str(value))
    if isinstance(value, Mapping):
        return {key: _redact_value(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_redact_value(item) for item in value]
    return value


class LoggingSecretsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_text(record.msg)

        if isinstance(record.args, Mapping):
            record.args = {key: _redact_value(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_redact_value(value) for value in record.args)

        extra_payload = getattr(record, "extra", None)
        if isinstance(extra_payload, Mapping):
            record.extra = {key: _redact_value(value) for key, value in extra_payload.items()}

        return True
