from datetime import datetime, timedelta, timezone
from enum import Enum
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

# (name, old_state, new_state) - return value is ignored
StateChangeCallback = Callable[[str, str, str], Any]


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial call in flight


@dataclass
class CircuitBreaker:
    """
    Guards calls to a single unreliable upstream.

    CLOSED counts consecutive failures and opens at failure_threshold.
    OPEN refuses calls until recovery_timeout has elapsed since opened_at,
    then admits exactly one trial call and moves to HALF_OPEN. The trial's
    outcome closes the circuit (success) or reopens it with a fresh
    opened_at (failure).

    All transitions happen under one lock, so concurrent pollers never both
    observe a permitted call in HALF_OPEN.
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds
    on_state_change: Optional[StateChangeCallback] = None

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: Optional[datetime] = field(default=None, init=False)
    _last_error: Optional[str] = field(default=None, init=False)
    _trial_started_at: Optional[datetime] = field(default=None, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Return current state. Use can_call() for state transitions."""
        return self._state

    def _transition(self, new_state: CircuitState) -> None:
        """Must be called while holding self._lock."""
        old_state = self._state
        self._state = new_state
        if self.on_state_change:
            try:
                self.on_state_change(self.name, old_state.value, new_state.value)
            except Exception as e:
                logger.error("Circuit breaker state callback failed", circuit=self.name, error=str(e))

    def _recovery_due(self, now: datetime) -> bool:
        if self._opened_at is None:
            return False
        return now >= self._opened_at + timedelta(seconds=self.recovery_timeout)

    def can_call(self) -> bool:
        now = datetime.now(timezone.utc)
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if not self._recovery_due(now):
                    return False
                self._transition(CircuitState.HALF_OPEN)
                self._trial_started_at = now
                logger.info("Circuit OPEN -> HALF_OPEN, admitting trial call", circuit=self.name)
                return True

            # HALF_OPEN: the trial is still outstanding. A trial that never reported
            # back (e.g. a low-confidence parse) is replaced after another cooldown.
            if self._trial_started_at and now >= self._trial_started_at + timedelta(seconds=self.recovery_timeout):
                self._trial_started_at = now
                logger.info("Circuit HALF_OPEN trial expired, admitting new trial", circuit=self.name)
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.OPEN:
                # Late result from a call admitted before the circuit opened; the cooldown stands
                logger.info("Circuit OPEN, ignoring late success", circuit=self.name)
                return
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
                logger.info("Circuit HALF_OPEN -> CLOSED, upstream recovered", circuit=self.name)
            self._failure_count = 0
            self._opened_at = None
            self._trial_started_at = None

    def record_failure(self, reason: Optional[str] = None) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            self._failure_count += 1
            self._last_error = reason or "Unknown"

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                self._opened_at = now
                self._trial_started_at = None
                logger.warning(
                    "Circuit HALF_OPEN -> OPEN (trial call failed)",
                    circuit=self.name,
                    error=self._last_error,
                )
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)
                self._opened_at = now
                logger.error(
                    "Circuit CLOSED -> OPEN (threshold reached)",
                    circuit=self.name,
                    failures=self._failure_count,
                    recovery_seconds=self.recovery_timeout,
                    error=self._last_error,
                )

    def reset(self) -> None:
        """Administrative reset to CLOSED."""
        with self._lock:
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._opened_at = None
            self._last_error = None
            self._trial_started_at = None
        logger.info("Circuit manually reset to CLOSED", circuit=self.name)

    def status(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        with self._lock:
            time_until_recovery = 0.0
            if self._state == CircuitState.OPEN and self._opened_at:
                reopen_at = self._opened_at + timedelta(seconds=self.recovery_timeout)
                time_until_recovery = max(0.0, (reopen_at - now).total_seconds())
            return {
                "state": self._state.value,
                "consecutive_failures": self._failure_count,
                "opened_at": self._opened_at.isoformat() if self._opened_at else None,
                "last_error": self._last_error,
                "threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout,
                "time_until_recovery": round(time_until_recovery, 1),
            }
