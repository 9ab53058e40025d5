"""Location telemetry agent: buffered, batched delivery of position readings."""

__version__ = "1.0.0"
