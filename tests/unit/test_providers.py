"""Tests for location providers."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from locshare.errors import LocationUnavailableError
from locshare.models.location import LocationSample
from locshare.services.providers import ReplayLocationProvider, load_track_csv


def _sample(i: int) -> LocationSample:
    return LocationSample(latitude=float(i), longitude=0.0, accuracy=1.0, timestamp=i)


@pytest.mark.ai_generated
class TestLoadTrackCsv:
    """Tests for reading recorded tracks."""

    def test_loads_all_columns(self, route_csv: Path) -> None:
        """Test that every column is parsed and blanks become None."""
        samples = load_track_csv(route_csv)

        assert len(samples) == 3
        first = samples[0]
        assert first.latitude == pytest.approx(40.7128)
        assert first.longitude == pytest.approx(-74.006)
        assert first.accuracy == 5.0
        assert first.timestamp == 1_700_000_000_000
        assert first.speed == 1.5
        assert first.heading == 90.0
        assert samples[1].speed is None
        assert samples[1].heading is None

    def test_minimal_columns(self, tmp_path: Path) -> None:
        """Test a file with only latitude and longitude."""
        path = tmp_path / "min.csv"
        path.write_text("latitude,longitude\n1.5,2.5\n")

        samples = load_track_csv(path)

        assert samples == [LocationSample(latitude=1.5, longitude=2.5, accuracy=0.0, timestamp=0)]

    def test_missing_required_column(self, tmp_path: Path) -> None:
        """Test that a file without longitude is rejected."""
        path = tmp_path / "bad.csv"
        path.write_text("latitude,accuracy\n1.0,2.0\n")

        with pytest.raises(ValueError, match="longitude"):
            load_track_csv(path)

    def test_bad_rows_skipped(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Test that unparseable rows are skipped with a warning."""
        path = tmp_path / "mixed.csv"
        path.write_text("latitude,longitude,accuracy\n1.0,2.0,3.0\nnorth,2.0,3.0\n4.0,5.0,-1\n6.0,7.0,\n")

        with caplog.at_level("WARNING", logger="locshare.providers"):
            samples = load_track_csv(path)

        assert [s.latitude for s in samples] == [1.0, 6.0]
        assert "Skipped 2" in caplog.text


@pytest.mark.ai_generated
class TestReplayLocationProvider:
    """Tests for the replay provider."""

    def test_current_location_in_order(self) -> None:
        """Test that samples are served in order until exhausted."""
        provider = ReplayLocationProvider([_sample(1), _sample(2)], restamp=False)

        assert provider.get_current_location() == _sample(1)
        assert provider.remaining == 1
        assert provider.get_current_location() == _sample(2)
        with pytest.raises(LocationUnavailableError, match="exhausted"):
            provider.get_current_location()

    def test_restamp(self, clock: Callable[[], int]) -> None:
        """Test that restamping replaces the timestamp with the clock."""
        provider = ReplayLocationProvider([_sample(1)], clock=clock)

        sample = provider.get_current_location()

        assert sample.timestamp == 1_700_000_001_000
        assert sample.latitude == 1.0

    def test_tick_delivers_to_watchers(self) -> None:
        """Test that tick feeds each active subscription."""
        provider = ReplayLocationProvider([_sample(1), _sample(2)], restamp=False)
        received: list[LocationSample] = []
        handle = provider.watch_location(received.append, lambda e: None)

        assert handle == 1
        assert provider.watching
        provider.tick()
        provider.cancel(handle)
        provider.tick()

        assert received == [_sample(1)]
        assert not provider.watching
        assert provider.remaining == 1

    def test_tick_reports_exhaustion(self) -> None:
        """Test that an exhausted track calls the error callback."""
        provider = ReplayLocationProvider([], restamp=False)
        errors: list[LocationUnavailableError] = []
        provider.watch_location(lambda s: None, errors.append)

        provider.tick()

        assert len(errors) == 1
        assert str(errors[0]) == "Recorded track exhausted"

    def test_cancel_unknown_handle(self) -> None:
        """Test that cancelling twice is harmless."""
        provider = ReplayLocationProvider([])
        handle = provider.watch_location(lambda s: None, lambda e: None)

        provider.cancel(handle)
        provider.cancel(handle)

        assert not provider.watching
