"""Tracking lifecycle service for locshare.

Drives one tracking session: acquires samples from a location provider,
appends them to the session history, persists both stores and hands out the
share link.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from locshare.errors import ClipboardUnavailableError, LocationUnavailableError
from locshare.models.location import LocationSample, now_ms
from locshare.models.session import (
    HistoryStore,
    SessionStore,
    TrackingSession,
    generate_session_id,
)
from locshare.models.shortlink import ShortLinkDirectory

logger = logging.getLogger("locshare.tracker")

DEFAULT_BASE_URL = "http://127.0.0.1:8080"


class LocationProvider(Protocol):
    """Source of location samples.

    ``get_current_location`` raises ``LocationUnavailableError`` on failure.
    ``watch_location`` registers callbacks fired for every later fix until
    the returned handle is cancelled.
    """

    def get_current_location(self) -> LocationSample: ...

    def watch_location(
        self,
        on_sample: Callable[[LocationSample], None],
        on_error: Callable[[LocationUnavailableError], None],
    ) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class ClipboardWriter(Protocol):
    """Writes text to a clipboard, raising ``ClipboardUnavailableError``."""

    def write_text(self, text: str) -> None: ...


class TrackerState(Enum):
    """Lifecycle states of a session controller."""

    IDLE = "idle"
    TRACKING = "tracking"


def default_session_name(created_at: int) -> str:
    """Default display name for a session created at the given time."""
    return f"Location Session {datetime.fromtimestamp(created_at / 1000).strftime('%Y-%m-%d')}"


def build_viewer_url(base_url: str, session_id: str) -> str:
    """URL of the live map page for a session."""
    return f"{base_url.rstrip('/')}/map/{session_id}"


def build_short_url(base_url: str, short_code: str) -> str:
    """Public URL for a short code."""
    return f"{base_url.rstrip('/')}/s/{short_code}"


def clear_stored_history(history: HistoryStore, sessions: SessionStore, session_id: str) -> bool:
    """Clear a stored session's history without driving it.

    Args:
        history: History store.
        sessions: Session store.
        session_id: Session to clear.

    Returns:
        True if the session existed.
    """
    session = sessions.load(session_id)
    if session is None:
        return False
    session.clear()
    history.clear(session_id)
    sessions.upsert(session)
    logger.info("Cleared history for session %s", session_id)
    return True


class SessionController:
    """State machine over a single tracking session."""

    def __init__(
        self,
        session: TrackingSession,
        provider: LocationProvider,
        history: HistoryStore,
        sessions: SessionStore,
        links: ShortLinkDirectory,
        base_url: str = DEFAULT_BASE_URL,
        on_sample: Callable[[LocationSample], None] | None = None,
        on_error: Callable[[LocationUnavailableError], None] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            session: Session to drive. Its stored state is not reloaded.
            provider: Location source.
            history: Store for the raw history log.
            sessions: Store for session records.
            links: Short link directory used when sharing starts.
            base_url: Origin used to build viewer and share URLs.
            on_sample: Called after each sample is stored.
            on_error: Called when the watch reports a failure.
        """
        self.session = session
        self.provider = provider
        self.history = history
        self.sessions = sessions
        self.links = links
        self.base_url = base_url
        self.on_sample = on_sample
        self.on_error = on_error

        self.state = TrackerState.IDLE
        self.share_code: str | None = None
        self.last_error: str | None = None
        self._watch_handle: Any = None

    @classmethod
    def create(
        cls,
        provider: LocationProvider,
        history: HistoryStore,
        sessions: SessionStore,
        links: ShortLinkDirectory,
        name: str | None = None,
        session_id: str | None = None,
        clock: Callable[[], int] = now_ms,
        **kwargs: Any,
    ) -> SessionController:
        """Create a controller for a brand-new session.

        Args:
            provider: Location source.
            history: History store.
            sessions: Session store.
            links: Short link directory.
            name: Session name (defaults to "Location Session <date>").
            session_id: Session id (generated when omitted).
            clock: Returns the current time in epoch milliseconds.
            **kwargs: Passed through to the constructor.

        Returns:
            SessionController in the IDLE state.
        """
        created_at = clock()
        session = TrackingSession(
            id=session_id or generate_session_id(),
            name=name or default_session_name(created_at),
            created_at=created_at,
        )
        return cls(session, provider, history, sessions, links, **kwargs)

    @classmethod
    def resume(
        cls,
        session_id: str,
        provider: LocationProvider,
        history: HistoryStore,
        sessions: SessionStore,
        links: ShortLinkDirectory,
        **kwargs: Any,
    ) -> SessionController | None:
        """Create a controller continuing a stored session.

        Args:
            session_id: Id of the stored session.
            provider: Location source.
            history: History store.
            sessions: Session store.
            links: Short link directory.
            **kwargs: Passed through to the constructor.

        Returns:
            SessionController in the IDLE state, or None if the session is unknown.
        """
        session = sessions.load(session_id)
        if session is None:
            return None
        session.is_active = False
        return cls(session, provider, history, sessions, links, **kwargs)

    @property
    def is_tracking(self) -> bool:
        return self.state is TrackerState.TRACKING

    @property
    def viewer_url(self) -> str:
        return build_viewer_url(self.base_url, self.session.id)

    @property
    def share_url(self) -> str | None:
        if self.share_code is None:
            return None
        return build_short_url(self.base_url, self.share_code)

    def _persist(self) -> None:
        self.session.is_active = self.is_tracking
        self.history.save(self.session.id, self.session.location_history)
        self.sessions.upsert(self.session)

    def _record(self, sample: LocationSample) -> None:
        self.session.append(sample)
        self._persist()
        logger.debug(
            "Session %s sample %d: %.6f, %.6f",
            self.session.id,
            len(self.session.location_history),
            sample.latitude,
            sample.longitude,
        )
        if self.on_sample is not None:
            self.on_sample(sample)

    def _halt(self, error: LocationUnavailableError) -> None:
        if self._watch_handle is not None:
            self.provider.cancel(self._watch_handle)
            self._watch_handle = None
        self.state = TrackerState.IDLE
        self.last_error = f"Error getting location: {error}"
        self._persist()
        logger.warning("Tracking stopped for session %s: %s", self.session.id, error)

    def start(self) -> None:
        """Begin tracking.

        Takes one sample immediately, creates the share link on the first
        start, then subscribes to the provider's recurring updates. Does
        nothing while already tracking.

        Raises:
            LocationUnavailableError: If the first sample cannot be acquired.
                The controller is left IDLE with its history untouched.
        """
        if self.is_tracking:
            return

        self.last_error = None
        self.state = TrackerState.TRACKING
        try:
            sample = self.provider.get_current_location()
        except LocationUnavailableError as e:
            self._halt(e)
            raise

        self._record(sample)

        if self.share_code is None:
            self.share_code = self.links.create(self.viewer_url, self.session.id)

        self._watch_handle = self.provider.watch_location(self._on_watch_sample, self._on_watch_error)
        logger.info("Started tracking session %s", self.session.id)

    def stop(self) -> None:
        """Stop tracking. Recorded history is kept."""
        if self._watch_handle is not None:
            self.provider.cancel(self._watch_handle)
            self._watch_handle = None
        was_tracking = self.is_tracking
        self.state = TrackerState.IDLE
        self._persist()
        if was_tracking:
            logger.info(
                "Stopped tracking session %s after %d samples",
                self.session.id,
                len(self.session.location_history),
            )

    def clear_history(self) -> None:
        """Drop all recorded samples and the current location."""
        self.session.clear()
        self._persist()
        logger.info("Cleared history for session %s", self.session.id)

    def copy_share_link(self, clipboard: ClipboardWriter) -> bool:
        """Copy the share link to a clipboard.

        Args:
            clipboard: Clipboard to write to.

        Returns:
            True if a link was written, False if there is none or the
            clipboard failed.
        """
        url = self.share_url
        if url is None:
            return False
        try:
            clipboard.write_text(url)
        except ClipboardUnavailableError as e:
            logger.error("Failed to copy link: %s", e)
            return False
        return True

    def _on_watch_sample(self, sample: LocationSample) -> None:
        # Acquisitions already in flight when stop() ran are still recorded
        self._record(sample)

    def _on_watch_error(self, error: LocationUnavailableError) -> None:
        self._halt(error)
        if self.on_error is not None:
            self.on_error(error)
