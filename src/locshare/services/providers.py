"""Location providers that do not need a device.

``ReplayLocationProvider`` plays back a recorded track, one fix per request.
Recurring updates are pulled by whoever owns the provider calling ``tick()``
on its own cadence.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import Path

from locshare.errors import LocationUnavailableError
from locshare.models.location import LocationSample, now_ms

logger = logging.getLogger("locshare.providers")

REQUIRED_COLUMNS = ("latitude", "longitude")


def _parse_optional(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)


def load_track_csv(csv_path: str | Path) -> list[LocationSample]:
    """Load a recorded track from CSV.

    Columns ``latitude`` and ``longitude`` are required; ``accuracy``,
    ``timestamp``, ``speed`` and ``heading`` are optional. Rows that fail to
    parse are skipped.

    Args:
        csv_path: Path to the CSV file.

    Returns:
        Samples in file order.

    Raises:
        ValueError: If a required column is missing.
    """
    p = Path(csv_path)
    samples: list[LocationSample] = []
    skipped = 0

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        missing = [c for c in REQUIRED_COLUMNS if c not in fieldnames]
        if missing:
            raise ValueError(f"{p}: missing required column(s): {', '.join(missing)}")

        for row in reader:
            try:
                timestamp = row.get("timestamp") or ""
                samples.append(
                    LocationSample(
                        latitude=float(row["latitude"]),
                        longitude=float(row["longitude"]),
                        accuracy=_parse_optional(row.get("accuracy")) or 0.0,
                        timestamp=int(timestamp) if timestamp.strip() else 0,
                        speed=_parse_optional(row.get("speed")),
                        heading=_parse_optional(row.get("heading")),
                    )
                )
            except (TypeError, ValueError):
                skipped += 1

    if skipped:
        logger.warning("Skipped %d unparseable row(s) in %s", skipped, p)
    return samples


class ReplayLocationProvider:
    """Serves samples from a pre-recorded track."""

    def __init__(
        self,
        samples: Iterable[LocationSample],
        clock: Callable[[], int] = now_ms,
        restamp: bool = True,
    ) -> None:
        """Initialize the provider.

        Args:
            samples: Track to play back, in order.
            clock: Returns the current time in epoch milliseconds.
            restamp: Replace each sample's timestamp with the delivery time.
        """
        self._samples = list(samples)
        self._position = 0
        self.clock = clock
        self.restamp = restamp
        self._watchers: dict[
            int,
            tuple[Callable[[LocationSample], None], Callable[[LocationUnavailableError], None]],
        ] = {}
        self._next_handle = 1

    @property
    def remaining(self) -> int:
        """Number of samples not yet delivered."""
        return len(self._samples) - self._position

    def get_current_location(self) -> LocationSample:
        """Deliver the next recorded sample.

        Returns:
            Next sample, restamped if configured.

        Raises:
            LocationUnavailableError: If the track is exhausted.
        """
        if self._position >= len(self._samples):
            raise LocationUnavailableError("Recorded track exhausted")
        sample = self._samples[self._position]
        self._position += 1
        if self.restamp:
            sample = replace(sample, timestamp=self.clock())
        return sample

    def watch_location(
        self,
        on_sample: Callable[[LocationSample], None],
        on_error: Callable[[LocationUnavailableError], None],
    ) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._watchers[handle] = (on_sample, on_error)
        return handle

    def cancel(self, handle: int) -> None:
        self._watchers.pop(handle, None)

    @property
    def watching(self) -> bool:
        return bool(self._watchers)

    def tick(self) -> None:
        """Deliver one sample to every active watch subscription."""
        for handle, (on_sample, on_error) in list(self._watchers.items()):
            # A callback earlier in this tick may have cancelled this one
            if handle not in self._watchers:
                continue
            try:
                sample = self.get_current_location()
            except LocationUnavailableError as e:
                on_error(e)
            else:
                on_sample(sample)
