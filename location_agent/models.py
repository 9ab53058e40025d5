"""
Position reading model.

A Reading is produced by the location provider and copied into batches
by the transmission layer. It is never mutated after creation.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

OPTIONAL_FIELDS = ('altitude', 'bearing', 'speed')


def format_timestamp(moment: datetime) -> str:
    """
    Render a datetime as UTC with millisecond precision.

    Naive datetimes are assumed to already be UTC.

    Example: 2025-06-29T10:30:00.000Z
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S') + f'.{moment.microsecond // 1000:03d}Z'


@dataclass(frozen=True)
class Reading:
    """One timestamped positional sample."""

    latitude: float
    longitude: float
    accuracy: float
    timestamp: str
    altitude: Optional[float] = None
    bearing: Optional[float] = None
    speed: Optional[float] = None

    @classmethod
    def create(
        cls,
        latitude: float,
        longitude: float,
        accuracy: float,
        at: Optional[datetime] = None,
        **optional: Optional[float]
    ) -> 'Reading':
        """Build a reading stamped with ``at`` (default: now, UTC)."""
        moment = at if at is not None else datetime.now(timezone.utc)
        return cls(
            latitude=float(latitude),
            longitude=float(longitude),
            accuracy=float(accuracy),
            timestamp=format_timestamp(moment),
            **optional
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Reading':
        """
        Parse a reading from a JSON-style mapping.

        Raises:
            ValueError: If a required field is missing or not numeric
        """
        try:
            values = {
                'latitude': float(data['latitude']),
                'longitude': float(data['longitude']),
                'accuracy': float(data['accuracy']),
            }
            for name in OPTIONAL_FIELDS:
                if data.get(name) is not None:
                    values[name] = float(data[name])
        except KeyError as e:
            raise ValueError(f"missing field: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid reading: {e}") from e

        timestamp = data.get('timestamp')
        if isinstance(timestamp, datetime):
            timestamp = format_timestamp(timestamp)
        elif not timestamp:
            timestamp = format_timestamp(datetime.now(timezone.utc))

        return cls(timestamp=str(timestamp), **values)

    def to_payload(self) -> dict[str, Any]:
        """Wire representation; absent optional fields are omitted."""
        payload: dict[str, Any] = {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'accuracy': self.accuracy,
            'timestamp': self.timestamp,
        }
        for name in OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        return payload
