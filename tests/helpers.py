"""Test doubles shared across the test modules."""
from datetime import datetime, timedelta, timezone

import requests

from location_agent.errors import TransportError
from location_agent.models import Reading
from location_agent.transmission import DeliveryOutcome, classify_status

BASE_TIME = datetime(2025, 6, 29, 10, 30, tzinfo=timezone.utc)


def make_readings(count, start=0):
    """Distinct readings, one second apart."""
    return [
        Reading.create(
            latitude=40.0 + i * 0.001,
            longitude=-74.0,
            accuracy=5.0,
            at=BASE_TIME + timedelta(seconds=i)
        )
        for i in range(start, start + count)
    ]


def make_response(status_code, body=b""):
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    response.encoding = "utf-8"
    response.url = "https://api.example.com/locations"
    response.reason = "Test"
    return response


class FakeClient:
    """Delivery client stub answering with scripted status codes.

    An exception instance in the script is reported as a transport error.
    """

    def __init__(self, statuses=None, default=200):
        self.statuses = list(statuses or [])
        self.default = default
        self.batches = []

    @property
    def calls(self):
        return len(self.batches)

    @property
    def sizes(self):
        return [len(batch) for batch in self.batches]

    def send(self, batch, config):
        self.batches.append(batch)
        status = self.statuses.pop(0) if self.statuses else self.default
        if isinstance(status, Exception):
            return DeliveryOutcome.failure(TransportError(str(status)))
        return classify_status(status)


class FakeSession:
    """Stands in for requests.Session; records every request."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else make_response(200, b"{}")
        self.error = error
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


class WaitRecorder:
    """Retry sleeper that records delays instead of sleeping."""

    def __init__(self, interrupt_after=None):
        self.delays = []
        self.interrupt_after = interrupt_after

    def __call__(self, seconds):
        self.delays.append(seconds)
        return self.interrupt_after is not None and len(self.delays) >= self.interrupt_after
