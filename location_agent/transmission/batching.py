"""Batch construction: split drained readings into bounded request bodies."""
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Sequence

from ..models import Reading

DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class Batch:
    """Ordered, non-empty group of readings sent as one request."""

    readings: tuple[Reading, ...]
    additional_params: Optional[Mapping[str, Any]] = None

    def __post_init__(self):
        if not self.readings:
            raise ValueError("a batch needs at least one reading")

    def __len__(self) -> int:
        return len(self.readings)

    def to_payload(self) -> dict[str, Any]:
        """Request body: locationData plus additionalParams (or null)."""
        params = self.additional_params
        return {
            'locationData': [reading.to_payload() for reading in self.readings],
            'additionalParams': dict(params) if params is not None else None,
        }


def split_batches(
    readings: Sequence[Reading],
    batch_size: int = DEFAULT_BATCH_SIZE,
    additional_params: Optional[Mapping[str, Any]] = None
) -> Iterator[Batch]:
    """
    Yield consecutive batches of at most batch_size readings, in order.

    250 readings with batch_size 100 yield batches of 100, 100 and 50.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    for start in range(0, len(readings), batch_size):
        yield Batch(
            readings=tuple(readings[start:start + batch_size]),
            additional_params=additional_params
        )
