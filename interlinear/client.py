"""Retrying, cancellable adapter between the pipeline and a provider."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from .errors import (
    TranslationError,
    TranslationProviderError,
    TranslationServiceOverloaded,
)
from .policy import CancellationToken, RetryPhase, RetryPolicy, RetryState
from .providers import TranslationProvider

logger = logging.getLogger(__name__)


class TranslationClient:
    """Order-preserving ``translate(texts) -> texts`` with bounded retries.

    Only :class:`TranslationServiceOverloaded` is retried; any other provider
    failure ends the chunk immediately. Waiting goes through the cancellation
    token so a cancel request interrupts a backoff sleep.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        source_language: str | None,
        target_language: str,
        model: str | None = None,
        retry_policy: RetryPolicy | None = None,
        cancel_token: CancellationToken | None = None,
        wait: Optional[Callable[[float], bool]] = None,
    ) -> None:
        self.provider = provider
        self.source_language = source_language
        self.target_language = target_language
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.cancel_token = cancel_token or CancellationToken()
        self._wait = wait or self.cancel_token.wait

    def translate(self, texts: Sequence[str]) -> List[str]:
        if not texts:
            return []

        state = RetryState(self.retry_policy)
        last_error: Exception | None = None
        while not state.finished:
            self.cancel_token.raise_if_cancelled()
            attempt = state.begin_attempt()
            try:
                results = self.provider.translate(
                    list(texts),
                    source_language=self.source_language,
                    target_language=self.target_language,
                    model=self.model,
                )
            except TranslationServiceOverloaded as exc:
                last_error = exc
                phase = state.record_failure(retryable=True)
            except TranslationProviderError as exc:
                last_error = exc
                phase = state.record_failure(retryable=False)
            except Exception as exc:
                logger.warning(
                    "Unexpected %s from %s: %s", type(exc).__name__, self.provider.name, exc
                )
                last_error = exc
                phase = state.record_failure(retryable=False)
            else:
                if len(results) != len(texts):
                    raise TranslationError(
                        f"Provider returned {len(results)} result(s) for {len(texts)} text(s)."
                    )
                state.record_success()
                return list(results)

            if phase is RetryPhase.WAITING:
                logger.info(
                    "Translation service overloaded (attempt %d of %d); retrying in %.1fs.",
                    attempt,
                    self.retry_policy.max_attempts,
                    state.delay,
                )
                self._wait(state.delay)

        if state.phase is RetryPhase.EXHAUSTED:
            raise TranslationError(
                f"Translation service still overloaded after {state.attempt} attempt(s): {last_error}"
            ) from last_error
        raise TranslationError(f"Translation failed: {last_error}") from last_error
