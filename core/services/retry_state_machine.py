from __future__ import annotations

from enum import Enum
from typing import Optional


class RetryState(str, Enum):
    IDLE = "IDLE"
    ATTEMPTING = "ATTEMPTING"
    SUCCEEDED = "SUCCEEDED"
    EXHAUSTED = "EXHAUSTED"
    ABORTED = "ABORTED"


class RetryStateMachine:
    """
    Exponential backoff as an explicit state machine.

    IDLE -> ATTEMPTING(n) -> SUCCEEDED | EXHAUSTED | ABORTED

    The machine never sleeps; `record_failure` returns the delay the caller
    should wait before the next attempt, or None when the run is over.
    Delay before attempt n+1 is min(cap, base * 2**(n-1)).
    """

    def __init__(self, *, base_s: float = 0.1, cap_s: float = 5.0, max_attempts: int = 5):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._base_s = float(base_s)
        self._cap_s = float(cap_s)
        self._max_attempts = int(max_attempts)
        self._state = RetryState.IDLE
        self._attempt = 0

    @property
    def state(self) -> RetryState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def is_terminal(self) -> bool:
        return self._state in (RetryState.SUCCEEDED, RetryState.EXHAUSTED, RetryState.ABORTED)

    def delay_for(self, attempt: int) -> float:
        """Backoff to wait after failed attempt number `attempt` (1-based)."""
        return min(self._cap_s, self._base_s * (2 ** (attempt - 1)))

    def begin(self) -> int:
        """Enter ATTEMPTING for the next attempt and return its number."""
        if self.is_terminal:
            raise RuntimeError(f"retry run already finished ({self._state.value})")
        if self._state is RetryState.ATTEMPTING and self._attempt >= self._max_attempts:
            raise RuntimeError("no attempts left")
        self._state = RetryState.ATTEMPTING
        self._attempt += 1
        return self._attempt

    def record_success(self) -> None:
        self._require_attempting()
        self._state = RetryState.SUCCEEDED

    def record_failure(self, *, transient: bool) -> Optional[float]:
        """
        Record a failed attempt.

        Returns the delay before the next attempt, or None if the run is
        now terminal (permanent failure -> ABORTED, out of attempts -> EXHAUSTED).
        """
        self._require_attempting()
        if not transient:
            self._state = RetryState.ABORTED
            return None
        if self._attempt >= self._max_attempts:
            self._state = RetryState.EXHAUSTED
            return None
        return self.delay_for(self._attempt)

    def _require_attempting(self) -> None:
        if self._state is not RetryState.ATTEMPTING:
            raise RuntimeError(f"no attempt in progress ({self._state.value})")
