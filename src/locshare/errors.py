"""Error types for locshare."""

from __future__ import annotations


class LocshareError(Exception):
    """Base class for locshare errors."""


class LocationUnavailableError(LocshareError):
    """Location could not be acquired (permission denied, timeout, unsupported)."""


class NotFoundError(LocshareError):
    """A session, history or short code does not exist."""


class StorageCorruptError(LocshareError):
    """A persisted value could not be decoded.

    Never leaves the stores: callers see the value as absent.
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Malformed value under {key!r}: {reason}")
        self.key = key
        self.reason = reason


class ClipboardUnavailableError(LocshareError):
    """The clipboard could not be written."""
