"""Resilience coordinator: wraps one call in model fallback and key refresh.

An attempt is any coroutine function taking an ``AttemptContext``. The
coordinator runs it, and when it raises ``TransportError``:

* an invalid model on the first attempt is retried once with the
  fallback model;
* a rejected or exhausted credential triggers one key refresh, then the
  attempt is retried with the new key;
* anything else propagates, re-typed to match its classification.

Errors raised after the stream has started yielding never reach the
coordinator, so partial output is never retried or retracted.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TypeVar

from callai.config.settings import Settings, get_settings
from callai.errors import (
    CredentialError,
    ExhaustedRetryError,
    InvalidModelError,
    KeyRefreshError,
    TransportError,
)
from callai.logging.debug import get_logger
from callai.resilience.classify import ErrorCategory, ErrorClassification, ErrorClassifier
from callai.resilience.credentials import CredentialState, KeyRefresher

T = TypeVar("T")

FALLBACK_MODEL = "fallback_model"
KEY_REFRESH = "key_refresh"

logger = get_logger("resilience")


@dataclass
class CoordinatorOptions:
    model: str | None = None
    skip_retry: bool = False
    skip_refresh: bool = False
    api_key: str | None = None
    refresh_endpoint: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class AttemptContext:
    model: str | None
    api_key: str
    is_retry: bool = False


Attempt = Callable[[AttemptContext], Awaitable[T]]


class ResilienceCoordinator:
    def __init__(
        self,
        credentials: CredentialState,
        refresher: KeyRefresher,
        settings: Settings | None = None,
        classifier: ErrorClassifier | None = None,
    ):
        self.credentials = credentials
        self.refresher = refresher
        self.settings = settings or get_settings()
        self.classifier = classifier or ErrorClassifier.from_settings(self.settings)

    async def coordinate(self, attempt: Attempt, options: CoordinatorOptions | None = None) -> T:
        """Run ``attempt`` until it succeeds or no recovery applies.

        Raises:
            InvalidModelError: the model was rejected and fallback did not help
                or was not allowed.
            CredentialError: the key was rejected and refresh was skipped or
                already used.
            ExhaustedRetryError: the key was rejected and the refresh failed.
            TransportError: any other HTTP or network failure.
        """
        options = options or CoordinatorOptions()
        ctx = AttemptContext(
            model=options.model,
            api_key=options.api_key or self.credentials.current_key or "",
        )
        retry_path: list[str] = []
        previous_error: TransportError | None = None

        while True:
            try:
                return await attempt(ctx)
            except TransportError as exc:
                classification = self.classifier.classify(exc)
                error = _promote(exc, classification)
                error.retry_path = list(retry_path)
                error.previous_error = previous_error

                logger.debug(
                    "Attempt failed",
                    extra={"debug_data": {
                        "model": ctx.model,
                        "status_code": classification.http_status,
                        "category": classification.category.value,
                        "retry_path": retry_path,
                    }},
                )

                if self._should_fall_back(classification, ctx, options, retry_path):
                    fallback = self.settings.fallback_model
                    logger.warning(
                        "Model rejected, retrying with fallback model",
                        extra={"debug_data": {"model": ctx.model, "fallback_model": fallback}},
                    )
                    retry_path.append(FALLBACK_MODEL)
                    previous_error = error
                    ctx = replace(ctx, model=fallback, is_retry=True)
                    continue

                if classification.needs_new_key and not options.skip_refresh and KEY_REFRESH not in retry_path:
                    try:
                        result = await self.refresher.refresh(
                            ctx.api_key or None,
                            endpoint=options.refresh_endpoint,
                            refresh_token=options.refresh_token,
                        )
                    except KeyRefreshError as refresh_error:
                        raise ExhaustedRetryError(error, refresh_error) from refresh_error

                    retry_path.append(KEY_REFRESH)
                    previous_error = error
                    ctx = replace(ctx, api_key=result.api_key, is_retry=True)
                    continue

                if error is exc:
                    raise
                raise error from exc

    @staticmethod
    def _should_fall_back(
        classification: ErrorClassification,
        ctx: AttemptContext,
        options: CoordinatorOptions,
        retry_path: list[str],
    ) -> bool:
        return (
            classification.category is ErrorCategory.INVALID_MODEL
            and not options.skip_retry
            and not ctx.is_retry
            and FALLBACK_MODEL not in retry_path
        )


def _promote(error: TransportError, classification: ErrorClassification) -> TransportError:
    if classification.category is ErrorCategory.INVALID_MODEL:
        return error.promote(InvalidModelError)
    if classification.needs_new_key:
        return error.promote(CredentialError)
    return error
