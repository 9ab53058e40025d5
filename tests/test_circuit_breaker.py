"""
Unit tests for the delivery circuit breaker.
"""
import time

import pybreaker

from location_agent.transmission import DeliveryCircuitBreaker, classify_status


class Delivery:
    """Callable returning a fixed status outcome and counting calls."""

    def __init__(self, status):
        self.status = status
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return classify_status(self.status)


def test_opens_after_threshold_and_skips():
    breaker = DeliveryCircuitBreaker(fail_max=3, cooldown_s=60)
    failing = Delivery(500)

    for _ in range(2):
        assert breaker.call(failing).status_code == 500
    assert breaker.state == pybreaker.STATE_CLOSED
    assert breaker.is_healthy()

    # Tripping call still reports its own outcome
    assert breaker.call(failing).status_code == 500
    assert breaker.state == pybreaker.STATE_OPEN
    assert not breaker.is_healthy()

    assert breaker.call(failing) is None
    assert failing.calls == 3


def test_success_resets_counter():
    breaker = DeliveryCircuitBreaker(fail_max=3, cooldown_s=60)

    breaker.call(Delivery(503))
    breaker.call(Delivery(401))
    assert breaker.failure_count == 2

    assert breaker.call(Delivery(200)).succeeded
    assert breaker.failure_count == 0
    assert breaker.state == pybreaker.STATE_CLOSED


def test_successful_trial_closes_after_cooldown():
    breaker = DeliveryCircuitBreaker(fail_max=1, cooldown_s=0.2)
    breaker.call(Delivery(500))
    assert breaker.is_open()

    time.sleep(0.3)
    trial = Delivery(200)

    assert breaker.call(trial).succeeded
    assert trial.calls == 1
    assert breaker.state == pybreaker.STATE_CLOSED
    assert breaker.failure_count == 0
    assert breaker.is_healthy()


def test_failed_trial_reopens():
    breaker = DeliveryCircuitBreaker(fail_max=1, cooldown_s=0.2)
    breaker.call(Delivery(500))

    time.sleep(0.3)
    trial = Delivery(502)

    assert breaker.call(trial).status_code == 502
    assert trial.calls == 1
    assert breaker.is_open()
    assert breaker.failure_count >= 1

    # Cooldown restarted, so the next call is skipped
    follow_up = Delivery(200)
    assert breaker.call(follow_up) is None
    assert follow_up.calls == 0


def test_reset_closes_immediately():
    breaker = DeliveryCircuitBreaker(fail_max=2, cooldown_s=300)
    breaker.call(Delivery(500))
    breaker.call(Delivery(500))
    assert not breaker.is_healthy()

    breaker.reset()

    assert breaker.state == pybreaker.STATE_CLOSED
    assert breaker.failure_count == 0
    assert breaker.is_healthy()
    assert breaker.call(Delivery(200)).succeeded


def test_reset_when_already_closed_is_harmless():
    breaker = DeliveryCircuitBreaker()
    breaker.reset()
    assert breaker.is_healthy()
