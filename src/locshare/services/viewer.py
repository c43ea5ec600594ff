"""Viewer-side services for locshare.

Resolves short codes to sessions, polls a session for changes and derives the
figures a live map page shows.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from locshare.errors import NotFoundError
from locshare.lib.geo import (
    cumulative_distance,
    format_accuracy,
    format_coordinate,
    format_distance,
    format_relative_age,
    format_speed,
    recent_history,
)
from locshare.models.location import now_ms
from locshare.models.session import SessionStore, TrackingSession
from locshare.models.shortlink import ShortLink, ShortLinkDirectory

logger = logging.getLogger("locshare.viewer")

DEFAULT_REFRESH_INTERVAL = 5.0
RECENT_SAMPLES = 5
TRAIL_SAMPLES = 10

STATUS_OK = "ok"
STATUS_LINK_NOT_FOUND = "link_not_found"
STATUS_SESSION_NOT_FOUND = "session_not_found"


@dataclass(frozen=True)
class Resolution:
    """Outcome of following a short code to its session."""

    status: str
    link: ShortLink | None = None
    session: TrackingSession | None = None

    @property
    def found(self) -> bool:
        return self.status == STATUS_OK


def resolve_short_code(
    links: ShortLinkDirectory,
    sessions: SessionStore,
    code: str,
) -> Resolution:
    """Follow a short code to the session it views.

    A click is recorded whenever the code itself resolves, even if the
    session it points to is gone.

    Args:
        links: Short link directory.
        sessions: Session store.
        code: Short code from the public URL.

    Returns:
        Resolution with status ok, link_not_found or session_not_found.
    """
    link = links.resolve(code)
    if link is None:
        logger.info("Short code %s not found", code)
        return Resolution(status=STATUS_LINK_NOT_FOUND)

    links.record_click(code)
    session = sessions.load(link.session_id)
    if session is None:
        return Resolution(status=STATUS_SESSION_NOT_FOUND, link=link)
    return Resolution(status=STATUS_OK, link=link, session=session)


def require_session(sessions: SessionStore, session_id: str) -> TrackingSession:
    """Load a session for display, raising when it is unknown.

    Raises:
        NotFoundError: If the session is absent or unreadable.
    """
    session = sessions.load(session_id)
    if session is None:
        raise NotFoundError(f"Session not found: {session_id}")
    return session


def session_view(session: TrackingSession) -> dict[str, Any]:
    """Payload handed to a map renderer.

    Args:
        session: Session to render.

    Returns:
        Dictionary with currentLocation, locationHistory and isLive.
    """
    return {
        "currentLocation": session.current_location.to_dict() if session.current_location else None,
        "locationHistory": [s.to_dict() for s in session.location_history],
        "isLive": session.is_active,
    }


def session_stats(session: TrackingSession, now: int | None = None) -> dict[str, Any]:
    """Compute the figures shown next to a live map.

    Args:
        session: Session to summarize.
        now: Current time in epoch milliseconds (defaults to the wall clock).

    Returns:
        Dictionary of raw and formatted statistics.
    """
    now = now_ms() if now is None else now
    distance = cumulative_distance(session.location_history)
    stats: dict[str, Any] = {
        "id": session.id,
        "name": session.name,
        "is_live": session.is_active,
        "created_at": session.created_at,
        "points": len(session.location_history),
        "total_distance_m": distance,
        "total_distance": format_distance(distance),
        "current": None,
        "last_update": None,
        "recent": [s.to_dict() for s in recent_history(session.location_history, RECENT_SAMPLES)],
        "trail": [
            s.to_dict()
            for s in recent_history(session.location_history, TRAIL_SAMPLES, exclude_current=True)
        ],
    }

    current = session.current_location
    if current is not None:
        stats["current"] = {
            "latitude": format_coordinate(current.latitude, is_latitude=True),
            "longitude": format_coordinate(current.longitude, is_latitude=False),
            "accuracy": format_accuracy(current.accuracy),
            "speed": format_speed(current.speed),
        }
        stats["last_update"] = format_relative_age(now, current.timestamp)
    return stats


def format_session_stats(stats: dict[str, Any]) -> str:
    """Render session statistics as text.

    Args:
        stats: Output of ``session_stats``.

    Returns:
        Multi-line human-readable summary.
    """
    lines = [
        f"Session: {stats['name']} ({stats['id']})",
        f"Status: {'LIVE' if stats['is_live'] else 'Offline'}",
        f"Points: {stats['points']}",
        f"Distance: {stats['total_distance']}",
    ]
    current = stats.get("current")
    if current:
        lines.append(f"Position: {current['latitude']}, {current['longitude']}")
        lines.append(f"Accuracy: {current['accuracy']}")
        if current.get("speed"):
            lines.append(f"Speed: {current['speed']}")
        lines.append(f"Last update: {stats['last_update']}")
    else:
        lines.append("Position: waiting for first location")
    return "\n".join(lines)


class SessionWatcher:
    """Polls a stored session and reports when it changes.

    The producer never learns about watchers; each ``poll()`` re-reads the
    store and compares it with the previous snapshot.
    """

    def __init__(self, sessions: SessionStore, session_id: str) -> None:
        self.sessions = sessions
        self.session_id = session_id
        self._callbacks: list[Callable[[TrackingSession | None], None]] = []
        self._last: dict[str, Any] | None = None
        self._polled = False

    def on_change(self, callback: Callable[[TrackingSession | None], None]) -> None:
        """Register a callback fired with the new session (None once it is gone)."""
        self._callbacks.append(callback)

    def poll(self) -> TrackingSession | None:
        """Re-read the session and notify callbacks if it changed.

        Returns:
            The session as currently stored, or None if absent.
        """
        session = self.sessions.load(self.session_id)
        snapshot = session.to_dict() if session is not None else None
        if not self._polled or snapshot != self._last:
            self._polled = True
            self._last = snapshot
            for callback in self._callbacks:
                callback(session)
        return session
