"""Retry and cancellation policy for calls to the translation service."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .errors import PipelineCancelled


class RetryPhase(Enum):
    """States of a single retried request."""

    READY = auto()
    WAITING = auto()
    SUCCEEDED = auto()
    EXHAUSTED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with linearly increasing backoff (2s, 4s, 6s ...)."""

    max_attempts: int = 3
    backoff_seconds: float = 2.0

    def delay_after(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


@dataclass
class RetryState:
    """Explicit state machine driven by the caller around each attempt."""

    policy: RetryPolicy
    attempt: int = 0
    phase: RetryPhase = RetryPhase.READY
    delay: float = 0.0

    def begin_attempt(self) -> int:
        if self.phase not in (RetryPhase.READY, RetryPhase.WAITING):
            raise RuntimeError(f"Cannot start an attempt from state {self.phase.name}.")
        self.attempt += 1
        self.phase = RetryPhase.READY
        self.delay = 0.0
        return self.attempt

    def record_success(self) -> RetryPhase:
        self.phase = RetryPhase.SUCCEEDED
        return self.phase

    def record_failure(self, *, retryable: bool) -> RetryPhase:
        """Move to WAITING, EXHAUSTED or FAILED depending on the failure."""

        if not retryable:
            self.phase = RetryPhase.FAILED
        elif self.attempt >= self.policy.max_attempts:
            self.phase = RetryPhase.EXHAUSTED
        else:
            self.phase = RetryPhase.WAITING
            self.delay = self.policy.delay_after(self.attempt)
        return self.phase

    @property
    def finished(self) -> bool:
        return self.phase in (
            RetryPhase.SUCCEEDED,
            RetryPhase.EXHAUSTED,
            RetryPhase.FAILED,
        )


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a pipeline."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Translation cancelled.") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelled(self.reason or "Translation cancelled.")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True early if cancelled meanwhile."""

        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
