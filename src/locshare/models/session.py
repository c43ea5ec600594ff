"""Tracking session model and storage operations.

Handles the per-session location history and the session record, plus the
``active_sessions`` directory used to enumerate known sessions.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Any

from locshare.errors import StorageCorruptError
from locshare.lib.store import Store, read_json, write_json
from locshare.models.location import LocationSample, now_ms, samples_from_list

logger = logging.getLogger("locshare.session")

SCHEMA_VERSION = 1

HISTORY_KEY_PREFIX = "location-tracker-"
SESSION_KEY_PREFIX = "location_session_"
SESSION_DIRECTORY_KEY = "active_sessions"

_ID_ALPHABET = string.digits + string.ascii_lowercase
SESSION_ID_LENGTH = 13


def generate_session_id(length: int = SESSION_ID_LENGTH) -> str:
    """Generate a random base-36 session identifier.

    Args:
        length: Number of characters.

    Returns:
        New session id.
    """
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def get_history_key(tracking_id: str) -> str:
    """Get the store key holding a tracking id's history."""
    return f"{HISTORY_KEY_PREFIX}{tracking_id}"


def get_session_key(session_id: str) -> str:
    """Get the store key holding a session record."""
    return f"{SESSION_KEY_PREFIX}{session_id}"


@dataclass
class TrackingSession:
    """One continuous act of producing location samples."""

    id: str
    name: str
    is_active: bool = False
    current_location: LocationSample | None = None
    location_history: list[LocationSample] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)

    def append(self, sample: LocationSample) -> None:
        """Append a sample and make it the current location.

        Args:
            sample: Newly acquired sample.
        """
        self.location_history.append(sample)
        self.current_location = sample

    def clear(self) -> None:
        """Drop all samples and the current location."""
        self.location_history = []
        self.current_location = None

    @property
    def last_update(self) -> int | None:
        """Timestamp of the current location, if any."""
        return self.current_location.timestamp if self.current_location else None

    def summary(self) -> SessionSummary:
        """Directory entry for this session."""
        return SessionSummary(id=self.id, name=self.name, is_active=self.is_active)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation.
        """
        return {
            "schemaVersion": SCHEMA_VERSION,
            "id": self.id,
            "name": self.name,
            "isActive": self.is_active,
            "currentLocation": self.current_location.to_dict() if self.current_location else None,
            "locationHistory": [s.to_dict() for s in self.location_history],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackingSession:
        """Create from dictionary.

        Records without ``schemaVersion`` are read as version 1.

        Args:
            data: Dictionary with session data.

        Returns:
            TrackingSession instance.

        Raises:
            ValueError: If the schema version is unsupported or a field is invalid.
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
        """
        version = data.get("schemaVersion", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"unsupported schema version {version!r}")

        current = data.get("currentLocation")
        if current and not isinstance(current, dict):
            raise TypeError(f"currentLocation must be an object, got {type(current).__name__}")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            is_active=bool(data.get("isActive", False)),
            current_location=LocationSample.from_dict(current) if current else None,
            location_history=samples_from_list(data.get("locationHistory", [])),
            created_at=int(data.get("createdAt", 0)),
        )


@dataclass(frozen=True)
class SessionSummary:
    """Entry in the directory of known sessions."""

    id: str
    name: str
    is_active: bool

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "isActive": self.is_active}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSummary:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            is_active=bool(data.get("isActive", False)),
        )


class HistoryStore:
    """Append-only location log per tracking id.

    ``save`` replaces the whole history; callers appending must read first
    (``append`` does this for them).
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def save(self, tracking_id: str, history: list[LocationSample]) -> None:
        """Replace the stored history.

        Args:
            tracking_id: Tracking/session id.
            history: Complete history to store.
        """
        write_json(self.store, get_history_key(tracking_id), [s.to_dict() for s in history])

    def load(self, tracking_id: str) -> list[LocationSample]:
        """Load the stored history.

        Args:
            tracking_id: Tracking/session id.

        Returns:
            Stored samples, or an empty list if absent or malformed.
        """
        key = get_history_key(tracking_id)
        data = read_json(self.store, key)
        if data is None:
            return []
        try:
            return samples_from_list(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("%s", StorageCorruptError(key, str(e)))
            return []

    def append(self, tracking_id: str, sample: LocationSample) -> list[LocationSample]:
        """Append one sample to the stored history.

        Args:
            tracking_id: Tracking/session id.
            sample: Sample to append.

        Returns:
            The history as stored after the append.
        """
        history = self.load(tracking_id)
        history.append(sample)
        self.save(tracking_id, history)
        return history

    def clear(self, tracking_id: str) -> None:
        """Store an empty history for a tracking id."""
        self.save(tracking_id, [])


class SessionStore:
    """Session records keyed by session id, plus the session directory."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def upsert(self, session: TrackingSession) -> None:
        """Persist a session record and refresh its directory entry.

        Args:
            session: Session to store. Replaces any prior record.
        """
        write_json(self.store, get_session_key(session.id), session.to_dict())

        summaries = self.list_sessions()
        entry = session.summary()
        for i, existing in enumerate(summaries):
            if existing.id == session.id:
                summaries[i] = entry
                break
        else:
            summaries.append(entry)
        write_json(self.store, SESSION_DIRECTORY_KEY, [s.to_dict() for s in summaries])
        logger.debug("Stored session %s (%d samples)", session.id, len(session.location_history))

    def load(self, session_id: str) -> TrackingSession | None:
        """Load a session record.

        Args:
            session_id: Session id.

        Returns:
            TrackingSession, or None if absent or malformed.
        """
        key = get_session_key(session_id)
        data = read_json(self.store, key)
        if data is None:
            return None
        try:
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            return TrackingSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("%s", StorageCorruptError(key, str(e)))
            return None

    def list_sessions(self) -> list[SessionSummary]:
        """List directory entries for known sessions.

        Returns:
            Session summaries; malformed entries are skipped.
        """
        data = read_json(self.store, SESSION_DIRECTORY_KEY)
        if not isinstance(data, list):
            return []
        summaries: list[SessionSummary] = []
        for entry in data:
            try:
                summaries.append(SessionSummary.from_dict(entry))
            except (KeyError, TypeError, AttributeError):
                logger.warning("Skipping malformed entry in %s: %r", SESSION_DIRECTORY_KEY, entry)
        return summaries
