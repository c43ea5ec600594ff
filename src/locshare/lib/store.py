"""Key/value storage for locshare records.

Every component receives a ``Store`` instead of touching files directly. A
write always replaces the whole value under one key; there are no
transactions spanning several keys.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

from locshare.errors import StorageCorruptError

logger = logging.getLogger("locshare.store")

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


def is_valid_key(key: str) -> bool:
    """Whether a key (or key component) can be stored by every store."""
    return bool(_SAFE_KEY.match(key))


class Store(Protocol):
    """Minimal key/value interface shared by all stores.

    ``get`` may raise ``StorageCorruptError`` for a value it cannot read.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dictionary-backed store, mostly for tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore:
    """Store that keeps one JSON file per key inside a directory."""

    suffix = ".json"

    def __init__(self, directory: Path) -> None:
        """Initialize the store.

        Args:
            directory: Directory holding the key files. Created if missing.
        """
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        """Get the file backing a key.

        Args:
            key: Store key.

        Returns:
            Path to the key's file.

        Raises:
            ValueError: If the key contains characters unsafe for a filename.
        """
        if not is_valid_key(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.directory / f"{key}{self.suffix}"

    def get(self, key: str) -> str | None:
        """Read the value stored under a key.

        Raises:
            StorageCorruptError: If the file is not valid UTF-8.
        """
        # No value can exist under a key that is not a valid filename
        if not is_valid_key(key):
            return None
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise StorageCorruptError(key, str(e)) from e

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        # Write to a sibling temp file first so readers never see a partial value
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        if is_valid_key(key):
            self.path_for(key).unlink(missing_ok=True)


def decode_json(key: str, raw: str) -> Any:
    """Parse a stored JSON value.

    Args:
        key: Key the value was read from (for error reporting).
        raw: Stored text.

    Returns:
        Parsed JSON value.

    Raises:
        StorageCorruptError: If the text is not valid JSON.
    """
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise StorageCorruptError(key, str(e)) from e


def read_json(store: Store, key: str) -> Any | None:
    """Read and parse a JSON value, treating malformed data as absent.

    Args:
        store: Store to read from.
        key: Key to read.

    Returns:
        Parsed value, or None if missing or malformed.
    """
    try:
        raw = store.get(key)
        if raw is None:
            return None
        return decode_json(key, raw)
    except StorageCorruptError as e:
        logger.warning("%s", e)
        return None


def write_json(store: Store, key: str, value: Any) -> None:
    """Serialize a value as JSON and store it under a key.

    Args:
        store: Store to write to.
        key: Key to write.
        value: JSON-serializable value.
    """
    store.set(key, json.dumps(value, indent=2, ensure_ascii=False))
