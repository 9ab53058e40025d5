import threading

import pytest
from structlog.testing import capture_logs

from location_agent.transmission import ReadingBuffer
from tests.helpers import make_readings


def test_drain_returns_retry_before_incoming():
    buffer = ReadingBuffer()
    fresh = make_readings(2)
    failed = make_readings(2, start=100)

    for reading in fresh:
        buffer.add(reading)
    buffer.requeue_failed(failed)

    assert buffer.drain_all() == failed + fresh
    assert buffer.size() == 0
    assert buffer.drain_all() == []


def test_requeue_evicts_oldest_over_cap():
    buffer = ReadingBuffer(retry_max=3)
    failed = make_readings(5)

    with capture_logs() as logs:
        buffer.requeue_failed(failed)

    assert buffer.size() == 3
    assert buffer.drain_all() == failed[2:]
    trimmed = [entry for entry in logs if entry["event"] == "retry_buffer_trimmed"]
    assert trimmed and trimmed[0]["evicted_count"] == 2
    assert trimmed[0]["log_level"] == "warning"


def test_incoming_is_not_capped():
    buffer = ReadingBuffer(retry_max=2)
    for reading in make_readings(10):
        buffer.add(reading)

    assert buffer.size() == 10
    assert buffer.stats() == {"incoming": 10, "retry": 0, "retry_max": 2}


def test_clear_empties_both_queues():
    buffer = ReadingBuffer()
    for reading in make_readings(3):
        buffer.add(reading)
    buffer.requeue_failed(make_readings(3, start=10))

    buffer.clear()

    assert buffer.size() == 0
    assert buffer.drain_all() == []


def test_concurrent_adds_are_not_lost():
    buffer = ReadingBuffer()
    readings = make_readings(50)

    def produce():
        for reading in readings:
            buffer.add(reading)

    threads = [threading.Thread(target=produce) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert buffer.size() == 400


def test_retry_max_must_be_positive():
    with pytest.raises(ValueError):
        ReadingBuffer(retry_max=0)
