"""
Pytest fixtures for location-agent.

HTTP is never touched: agent tests use a scripted delivery client and
client tests use a stub session returning real requests.Response objects.
"""
import pytest

from location_agent.config import Config
from location_agent.daemon import LocationTelemetryAgent
from tests.helpers import FakeClient, WaitRecorder


@pytest.fixture
def make_agent():
    """Build a configured agent around a FakeClient without retry sleeps."""
    agents = []

    def _make(statuses=None, default=200, breaker=None, buffer=None, interval_s=60.0, **overrides):
        config = Config(**overrides)
        client = FakeClient(statuses, default=default)
        agent = LocationTelemetryAgent(
            config,
            client=client,
            breaker=breaker,
            buffer=buffer,
            wait=WaitRecorder()
        )
        agent.configure(
            "https://api.example.com/locations",
            headers={"Authorization": "Bearer token"},
            additional_params={"deviceId": "device-1"},
            flush_interval_s=interval_s
        )
        agents.append(agent)
        return agent, client

    yield _make

    for agent in agents:
        agent.stop()
