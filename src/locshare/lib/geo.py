"""Distance and display helpers for location histories."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from locshare.models.location import LocationSample

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters on a sphere of radius 6371 km.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    # Rounding can push a just past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def distance_between(a: LocationSample, b: LocationSample) -> float:
    """Haversine distance in meters between two samples."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def cumulative_distance(history: Sequence[LocationSample]) -> float:
    """Total path length of a history in meters.

    Args:
        history: Samples in chronological order.

    Returns:
        Sum of the distances between consecutive samples; 0 for fewer than two.
    """
    total = 0.0
    for i in range(1, len(history)):
        total += distance_between(history[i - 1], history[i])
    return total


def format_relative_age(now_ms: int, then_ms: int) -> str:
    """Format elapsed time like ``"3m 12s ago"``.

    A timestamp in the future (viewer clock behind the producer's) reads as
    ``"0s ago"``.

    Args:
        now_ms: Current time in epoch milliseconds.
        then_ms: Past time in epoch milliseconds.

    Returns:
        Relative age string.
    """
    elapsed = max(0, now_ms - then_ms)
    minutes = elapsed // 60_000
    seconds = (elapsed % 60_000) // 1000
    if minutes > 0:
        return f"{minutes}m {seconds}s ago"
    return f"{seconds}s ago"


def format_coordinate(coord: float, is_latitude: bool) -> str:
    """Format a coordinate with six decimals and a hemisphere letter.

    Args:
        coord: Latitude or longitude in degrees.
        is_latitude: Use N/S when True, E/W otherwise.

    Returns:
        Formatted coordinate, e.g. ``"40.712800° N"``.
    """
    if is_latitude:
        direction = "N" if coord >= 0 else "S"
    else:
        direction = "E" if coord >= 0 else "W"
    return f"{abs(coord):.6f}° {direction}"


def format_speed(speed_mps: float | None) -> str | None:
    """Format a speed in km/h, or None when unknown or zero."""
    if not speed_mps:
        return None
    return f"{speed_mps * 3.6:.1f} km/h"


def format_accuracy(accuracy_m: float) -> str:
    return f"±{accuracy_m:.1f}m"


def format_distance(meters: float) -> str:
    return f"{meters:.1f}m"


def recent_history(
    history: Sequence[LocationSample],
    count: int,
    exclude_current: bool = False,
) -> list[LocationSample]:
    """Take the most recent samples of a history.

    Args:
        history: Samples in chronological order.
        count: Maximum number of samples to return.
        exclude_current: Drop the last sample (the current location) first.

    Returns:
        Up to ``count`` samples, oldest first.
    """
    samples = list(history[:-1] if exclude_current else history)
    if count <= 0:
        return []
    return samples[-count:]
