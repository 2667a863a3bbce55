"""Exception hierarchy for callai.

DecodeError stays inside the frame decoder. Everything else reaches the
caller unless the resilience coordinator recovers from it first.
"""


class CallAIError(Exception):
    """Base class for every error raised by callai."""


class DecodeError(CallAIError):
    """A single stream frame could not be decoded. Recovered locally."""


class StructuredPayloadError(CallAIError):
    """The upstream reported an error inside an otherwise well-formed payload."""

    def __init__(self, message: str, payload: dict | None = None):
        super().__init__(message)
        self.payload = payload or {}


class TransportError(CallAIError):
    """HTTP-layer failure before any payload was parsed.

    Attributes:
        status_code: HTTP status of the failed response (synthesized 502/504
            for network failures).
        raw_message: Provider message extracted from the error body.
        body: Parsed JSON error body, or the raw text when it was not JSON.
        retry_path: Recoveries attempted before this error surfaced
            (``"fallback_model"``, ``"key_refresh"``).
        previous_error: The failure that triggered the last retry, if any.
    """

    def __init__(
        self,
        raw_message: str,
        status_code: int | None = None,
        body: dict | str | None = None,
    ):
        self.raw_message = raw_message
        self.status_code = status_code
        self.body = body
        self.retry_path: list[str] = []
        self.previous_error: "TransportError | None" = None
        super().__init__(self._render())

    def _render(self) -> str:
        if self.status_code is not None and str(self.status_code) not in self.raw_message:
            return f"{self.raw_message} (Status: {self.status_code})"
        return self.raw_message

    def __str__(self) -> str:
        text = self._render()
        if self.retry_path:
            text += f" [after {', '.join(self.retry_path)}]"
        return text

    def promote(self, cls: type["TransportError"]) -> "TransportError":
        """Re-type this error as a more specific TransportError subclass."""
        if isinstance(self, cls):
            return self
        promoted = cls(self.raw_message, status_code=self.status_code, body=self.body)
        promoted.retry_path = list(self.retry_path)
        promoted.previous_error = self.previous_error
        promoted.__cause__ = self.__cause__
        return promoted


class InvalidModelError(TransportError):
    """The upstream rejected the requested model identifier."""


class CredentialError(TransportError):
    """The upstream rejected the credential (invalid, expired or out of quota)."""


class ExhaustedRetryError(CredentialError):
    """A credential failure whose key refresh also failed."""

    def __init__(self, original: TransportError, refresh_error: Exception):
        super().__init__(
            f"{original.raw_message} (Key refresh failed: {refresh_error})",
            status_code=original.status_code or 401,
            body=original.body,
        )
        self.original = original
        self.refresh_error = refresh_error
        self.retry_path = [*original.retry_path, "key_refresh"]
        self.previous_error = original


class KeyRefreshError(CallAIError):
    """The key refresh endpoint could not issue a new key."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
