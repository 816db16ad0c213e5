"""Helpers for safe logging.

The gateway injects the user's Mappable API key into every outbound URL, so
anything that may end up in a log line (URLs, httpx exception messages)
goes through these helpers first.
"""

from __future__ import annotations

import re

REDACTED = "<redacted>"

_APIKEY_IN_TEXT = re.compile(r"(?i)(api_?key=)[^&\s'\"]+")
_APIKEY_IN_JSON = re.compile(r"(?i)(\"api_?key\"\s*:\s*\")[^\"]*(\")")


def redact_text(text: str) -> str:
    """Mask ``apikey=...`` query values and ``"apiKey": "..."`` JSON fields."""
    text = _APIKEY_IN_TEXT.sub(rf"\1{REDACTED}", text)
    return _APIKEY_IN_JSON.sub(rf"\1{REDACTED}\2", text)
