"""
Delivery outcomes and the retry/backoff policy.

Each batch gets up to max_attempts attempts within one flush cycle.
Delay before retry n (0-based): min(max_delay, base * 2**n) + jitter,
with a floor for 429 responses. Sleeping goes through an injected wait
callable so a stopping agent can interrupt it.
"""
import enum
import random
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

import structlog

from ..errors import AuthError, ClientError, DeliveryError, ServerError, UnexpectedStatusError

logger = structlog.get_logger()

AUTH_STATUSES = frozenset({401, 403})
CLIENT_STATUSES = frozenset({400, 422})
SERVER_STATUSES = frozenset({408, 429})
RATE_LIMITED = 429

# Returns True when the wait was interrupted
Wait = Callable[[float], bool]


class OutcomeKind(enum.Enum):
    SUCCESS = 'success'
    RETRYABLE = 'retryable'
    DEFERRED = 'deferred'
    TERMINAL = 'terminal'


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one delivery attempt (or of the whole retry sequence)."""

    kind: OutcomeKind
    status_code: Optional[int] = None
    error: Optional[DeliveryError] = None
    attempts: int = 1

    @classmethod
    def success(cls, status_code: int) -> 'DeliveryOutcome':
        return cls(OutcomeKind.SUCCESS, status_code=status_code)

    @classmethod
    def failure(cls, error: DeliveryError) -> 'DeliveryOutcome':
        if error.retryable:
            kind = OutcomeKind.RETRYABLE
        elif error.requeue:
            kind = OutcomeKind.DEFERRED
        else:
            kind = OutcomeKind.TERMINAL
        return cls(kind, status_code=error.status_code, error=error)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def reason(self) -> str:
        return self.error.reason if self.error is not None else ""


def classify_status(status_code: int, detail: str = "") -> DeliveryOutcome:
    """
    Map an HTTP status code to an outcome.

    2xx succeeds; 401/403 and 400/422 are terminal; 408, 429 and 5xx
    are retryable. Anything else is deferred: requeued for the next
    cycle without an immediate retry.
    """
    if 200 <= status_code < 300:
        return DeliveryOutcome.success(status_code)

    reason = f"HTTP {status_code}"
    if detail:
        reason = f"{reason}: {detail}"

    if status_code in AUTH_STATUSES:
        return DeliveryOutcome.failure(AuthError(reason, status_code))
    if status_code in CLIENT_STATUSES:
        return DeliveryOutcome.failure(ClientError(reason, status_code))
    if status_code in SERVER_STATUSES or status_code >= 500:
        return DeliveryOutcome.failure(ServerError(reason, status_code))
    return DeliveryOutcome.failure(UnexpectedStatusError(reason, status_code))


def _sleep(seconds: float) -> bool:
    time.sleep(seconds)
    return False


class RetryPolicy:
    """Exponential backoff with jitter, bounded by max_attempts."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_s: float = 5.0,
        max_delay_s: float = 60.0,
        rate_limit_delay_s: float = 60.0,
        jitter_s: float = 1.0,
        rng: Callable[[], float] = random.random
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self.rate_limit_delay_s = rate_limit_delay_s
        self.jitter_s = jitter_s
        self._rng = rng

    def with_max_attempts(self, max_attempts: int) -> 'RetryPolicy':
        """Copy of this policy with a different attempt budget."""
        return RetryPolicy(
            max_attempts=max_attempts,
            base_delay_s=self.base_delay_s,
            max_delay_s=self.max_delay_s,
            rate_limit_delay_s=self.rate_limit_delay_s,
            jitter_s=self.jitter_s,
            rng=self._rng
        )

    def compute_delay(self, retry_number: int, status_code: Optional[int] = None) -> float:
        """
        Seconds to wait before the next attempt.

        Args:
            retry_number: 0 for the first retry, 1 for the second, ...
            status_code: Status of the failed attempt, if any
        """
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** retry_number))
        if status_code == RATE_LIMITED:
            delay = max(delay, self.rate_limit_delay_s)
        return delay + self._rng() * self.jitter_s

    def execute(
        self,
        attempt: Callable[[], DeliveryOutcome],
        wait: Optional[Wait] = None
    ) -> DeliveryOutcome:
        """
        Run attempt until it succeeds, fails without a retry, or the budget runs out.

        Args:
            attempt: Performs one delivery, never raises
            wait: Sleeps for the given seconds, returns True if interrupted

        Returns:
            Final outcome, with attempts set to the number of tries made
        """
        wait = wait or _sleep
        outcome = attempt()
        tries = 1

        while outcome.kind is OutcomeKind.RETRYABLE and tries < self.max_attempts:
            delay = self.compute_delay(tries - 1, outcome.status_code)
            logger.info(
                "delivery_retry_scheduled",
                attempt=tries,
                max_attempts=self.max_attempts,
                delay_s=round(delay, 2),
                reason=outcome.reason
            )
            if wait(delay):
                logger.info("delivery_retry_cancelled", attempt=tries)
                break

            outcome = attempt()
            tries += 1

        return replace(outcome, attempts=tries)
