"""Error classification for the resilience coordinator.

Maps a failure to one category using the HTTP status first and then
case-insensitive phrase matching on the provider's error text. The phrase
lists describe how providers word these errors today, not a contract, so
the invalid-model list can be extended through settings.
"""

import enum
import json
import re
from dataclasses import dataclass

from callai.config.settings import Settings, get_settings

DEFAULT_INVALID_MODEL_PATTERNS = (
    r"not a valid model",
    r"model\b.*\bdoes not exist",
    r"unknown model",
    r"no provider (was )?found",
    r"invalid model",
    r"model not found",
    r"fake-model",  # marker used by integration fixtures
)

CREDENTIAL_PHRASES = (
    "unauthorized",
    "forbidden",
    "authentication",
    "not authorized",
    "invalid api key",
    "incorrect api key",
    "invalid key",
    "incorrect key",
    "api key",
    "apikey",
)

QUOTA_PHRASES = (
    "rate limit",
    "too many requests",
    "quota",
    "exceed",
    "billing",
    "payment",
    "subscription",
    "insufficient credits",
)

_STATUS_IN_MESSAGE = re.compile(r"status:\s*(\d{3})", re.IGNORECASE)


class ErrorCategory(str, enum.Enum):
    INVALID_MODEL = "invalid_model"
    CREDENTIAL_INVALID = "credential_invalid"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorClassification:
    category: ErrorCategory
    http_status: int | None
    raw_message: str

    @property
    def needs_new_key(self) -> bool:
        return self.category in (ErrorCategory.CREDENTIAL_INVALID, ErrorCategory.RATE_LIMITED)


def extract_status(exc: Exception) -> int | None:
    """Find an HTTP status on an exception, or in its message text."""
    for attr in ("status_code", "status"):
        val = getattr(exc, attr, None)
        if isinstance(val, int) and 100 <= val < 600:
            return val
    resp = getattr(exc, "response", None)
    if resp is not None:
        sc = getattr(resp, "status_code", None)
        if isinstance(sc, int) and 100 <= sc < 600:
            return sc
    match = _STATUS_IN_MESSAGE.search(str(exc))
    return int(match.group(1)) if match else None


def error_text(exc: Exception) -> str:
    """Message plus error body, lowercased, for phrase matching."""
    parts = [getattr(exc, "raw_message", None) or str(exc)]
    body = getattr(exc, "body", None)
    if isinstance(body, (dict, list)):
        parts.append(json.dumps(body))
    elif body:
        parts.append(str(body))
    return " ".join(parts).lower()


class ErrorClassifier:
    """Classifies failures; invalid-model patterns are configurable."""

    def __init__(self, invalid_model_patterns: tuple[str, ...] = DEFAULT_INVALID_MODEL_PATTERNS):
        self._invalid_model = [re.compile(p, re.IGNORECASE) for p in invalid_model_patterns]

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ErrorClassifier":
        settings = settings or get_settings()
        extra = tuple(re.escape(p) for p in settings.extra_invalid_model_patterns)
        return cls(DEFAULT_INVALID_MODEL_PATTERNS + extra)

    def is_invalid_model(self, text: str) -> bool:
        return any(p.search(text) for p in self._invalid_model)

    def classify(self, exc: Exception) -> ErrorClassification:
        status = extract_status(exc)
        text = error_text(exc)
        raw_message = getattr(exc, "raw_message", None) or str(exc)

        def result(category: ErrorCategory) -> ErrorClassification:
            return ErrorClassification(category=category, http_status=status, raw_message=raw_message)

        if status in (401, 403):
            return result(ErrorCategory.CREDENTIAL_INVALID)
        if status == 429:
            return result(ErrorCategory.RATE_LIMITED)

        if status is not None and 400 <= status < 500:
            if self.is_invalid_model(text):
                return result(ErrorCategory.INVALID_MODEL)
            if any(phrase in text for phrase in CREDENTIAL_PHRASES):
                return result(ErrorCategory.CREDENTIAL_INVALID)
            if any(phrase in text for phrase in QUOTA_PHRASES):
                return result(ErrorCategory.RATE_LIMITED)
            if status == 408:
                return result(ErrorCategory.TRANSIENT)
            return result(ErrorCategory.FATAL)

        if status is None or status >= 500:
            return result(ErrorCategory.TRANSIENT)

        return result(ErrorCategory.FATAL)


def classify(exc: Exception) -> ErrorClassification:
    """Classify with the configured pattern set."""
    return ErrorClassifier.from_settings().classify(exc)
