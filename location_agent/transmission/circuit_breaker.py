"""
Circuit breaker for batch delivery.

Opens after 5 consecutive failed batches, allows one trial batch after
a 5 minute cooldown. Prevents hammering an endpoint that is clearly down
or misconfigured.
"""
from typing import Callable, Optional

import pybreaker
import structlog

from .retry import DeliveryOutcome

logger = structlog.get_logger()

DEFAULT_FAIL_MAX = 5
DEFAULT_COOLDOWN_S = 300


class _StateChangeLogger(pybreaker.CircuitBreakerListener):
    """Log circuit breaker state changes."""

    def state_change(self, cb, old_state, new_state):
        logger.warning(
            "circuit_breaker_state_change",
            breaker=cb.name,
            old_state=old_state.name if old_state else None,
            new_state=new_state.name if new_state else None,
            failures=cb.fail_counter
        )


class DeliveryCircuitBreaker:
    """
    Gate around batch delivery backed by pybreaker.

    A batch that ends in any failure counts once; a success resets the
    counter. While open, calls are skipped without touching the network.
    """

    def __init__(
        self,
        fail_max: int = DEFAULT_FAIL_MAX,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        name: str = "location_api"
    ):
        self._breaker = pybreaker.CircuitBreaker(
            fail_max=fail_max,
            reset_timeout=cooldown_s,
            listeners=[_StateChangeLogger()],
            name=name
        )
        logger.info(
            "circuit_breaker_created",
            fail_max=fail_max,
            cooldown_s=cooldown_s
        )

    @property
    def state(self) -> str:
        """One of pybreaker.STATE_CLOSED, STATE_OPEN, STATE_HALF_OPEN."""
        return self._breaker.current_state

    @property
    def failure_count(self) -> int:
        return self._breaker.fail_counter

    @property
    def fail_max(self) -> int:
        return self._breaker.fail_max

    def is_open(self) -> bool:
        return self.state == pybreaker.STATE_OPEN

    def is_healthy(self) -> bool:
        """Closed or half-open, and below the failure threshold."""
        return not self.is_open() and self.failure_count < self.fail_max

    def call(self, deliver: Callable[[], DeliveryOutcome]) -> Optional[DeliveryOutcome]:
        """
        Run deliver through the breaker.

        Returns:
            The delivery outcome, or None if the circuit is open and
            deliver was not invoked
        """
        outcomes: list[DeliveryOutcome] = []

        def _guarded() -> DeliveryOutcome:
            outcome = deliver()
            outcomes.append(outcome)
            if not outcome.succeeded:
                # pybreaker counts raised exceptions as failures
                raise outcome.error
            return outcome

        try:
            return self._breaker.call(_guarded)
        except pybreaker.CircuitBreakerError:
            # Also raised when this very failure trips the breaker
            if outcomes:
                return outcomes[0]
            logger.debug("circuit_open_delivery_skipped")
            return None
        except Exception:
            if outcomes:
                return outcomes[0]
            raise

    def reset(self) -> None:
        """Force the breaker closed with a zero counter, bypassing cooldown."""
        self._breaker.close()
        logger.info("circuit_breaker_reset")
