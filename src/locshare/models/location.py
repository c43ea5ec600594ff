"""Location sample model."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any


def now_ms() -> int:
    """Current wall-clock time in Unix epoch milliseconds."""
    return int(time.time() * 1000)


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single position fix.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        accuracy: Horizontal accuracy radius in meters.
        timestamp: Unix epoch milliseconds of the fix.
        speed: Ground speed in meters/second, if the device reported one.
        heading: Direction of travel in degrees, if the device reported one.
    """

    latitude: float
    longitude: float
    accuracy: float
    timestamp: int
    speed: float | None = None
    heading: float | None = None

    def __post_init__(self) -> None:
        if self.accuracy < 0:
            raise ValueError(f"accuracy must be >= 0, got {self.accuracy}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary using the stored field names.

        Returns:
            Dictionary representation.
        """
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp,
            "speed": self.speed,
            "heading": self.heading,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocationSample:
        """Create from dictionary.

        Older values may lack ``accuracy``; it defaults to 0.

        Args:
            data: Dictionary with sample data.

        Returns:
            LocationSample instance.

        Raises:
            KeyError: If latitude, longitude or timestamp is missing.
            TypeError: If a field has the wrong type.
            ValueError: If a field cannot be converted.
        """
        accuracy = data.get("accuracy")
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            accuracy=float(accuracy) if accuracy is not None else 0.0,
            timestamp=int(data["timestamp"]),
            speed=_optional_float(data.get("speed")),
            heading=_optional_float(data.get("heading")),
        )


def samples_from_list(data: Any) -> list[LocationSample]:
    """Decode a list of sample dictionaries.

    Args:
        data: Parsed JSON value expected to be a list of sample objects.

    Returns:
        Decoded samples in stored order.

    Raises:
        TypeError: If data is not a list or an entry is not a mapping.
        KeyError: If an entry is missing a required field.
        ValueError: If an entry has an invalid value.
    """
    if not isinstance(data, list):
        raise TypeError(f"expected a list of samples, got {type(data).__name__}")
    samples: list[LocationSample] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise TypeError(f"expected a sample object, got {type(entry).__name__}")
        samples.append(LocationSample.from_dict(entry))
    return samples
