"""Short link model and directory.

Maps short public codes to session-viewing links and counts resolutions.
Each link lives under its own key and ``short_url_index`` lists the live codes
in creation order. The two are written separately, so readers tolerate an
index entry without a record.
"""

from __future__ import annotations

import logging
import random
import string
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from locshare.errors import StorageCorruptError
from locshare.lib.store import Store, read_json, write_json
from locshare.models.location import now_ms

logger = logging.getLogger("locshare.links")

SCHEMA_VERSION = 1

SHORT_CODE_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
SHORT_CODE_LENGTH = 6
# Shorter codes leave too small a space for collision retries to terminate
MIN_CODE_LENGTH = 4

LINK_KEY_PREFIX = "short_url_"
LINK_INDEX_KEY = "short_url_index"


def get_link_key(short_code: str) -> str:
    """Get the store key holding a short link record."""
    return f"{LINK_KEY_PREFIX}{short_code}"


@dataclass(frozen=True)
class ShortLink:
    """A short code pointing at a session-viewing URL."""

    short_code: str
    original_url: str
    session_id: str
    created_at: int
    clicks: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation.
        """
        return {
            "schemaVersion": SCHEMA_VERSION,
            "shortCode": self.short_code,
            "originalUrl": self.original_url,
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "clicks": self.clicks,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShortLink:
        """Create from dictionary.

        Args:
            data: Dictionary with link data.

        Returns:
            ShortLink instance.

        Raises:
            ValueError: If the schema version is unsupported or clicks is negative.
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
        """
        version = data.get("schemaVersion", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"unsupported schema version {version!r}")
        clicks = int(data.get("clicks", 0))
        if clicks < 0:
            raise ValueError(f"negative click count {clicks}")
        return cls(
            short_code=str(data["shortCode"]),
            original_url=str(data["originalUrl"]),
            session_id=str(data["sessionId"]),
            created_at=int(data["createdAt"]),
            clicks=clicks,
        )


class ShortLinkDirectory:
    """Creates, resolves and counts clicks on short links."""

    def __init__(
        self,
        store: Store,
        rng: random.Random | None = None,
        code_length: int = SHORT_CODE_LENGTH,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the directory.

        Args:
            store: Backing store.
            rng: Random source for codes (defaults to the OS source).
            code_length: Length of generated codes.
            clock: Returns the current time in epoch milliseconds.

        Raises:
            ValueError: If code_length is below MIN_CODE_LENGTH.
        """
        if code_length < MIN_CODE_LENGTH:
            raise ValueError(f"code_length must be at least {MIN_CODE_LENGTH}, got {code_length}")
        self.store = store
        self.rng = rng if rng is not None else random.SystemRandom()
        self.code_length = code_length
        self.clock = clock

    def generate_code(self) -> str:
        """Draw one random code, without checking for collisions."""
        return "".join(self.rng.choice(SHORT_CODE_ALPHABET) for _ in range(self.code_length))

    def _load_index(self) -> list[str]:
        data = read_json(self.store, LINK_INDEX_KEY)
        if not isinstance(data, list):
            if data is not None:
                logger.warning("%s", StorageCorruptError(LINK_INDEX_KEY, "index is not a list"))
            return []
        return [code for code in data if isinstance(code, str)]

    def _record_exists(self, code: str) -> bool:
        try:
            return self.store.get(get_link_key(code)) is not None
        except StorageCorruptError:
            # An unreadable record still occupies its code
            return True

    def _save_index(self, index: list[str]) -> None:
        write_json(self.store, LINK_INDEX_KEY, index)

    def _save_link(self, link: ShortLink) -> None:
        write_json(self.store, get_link_key(link.short_code), link.to_dict())

    def create(self, target: str, session_id: str) -> str:
        """Create a short link for a target URL.

        Draws codes until one is neither in the index nor already stored.

        Args:
            target: URL the code stands for.
            session_id: Session the link views.

        Returns:
            The new short code.
        """
        index = self._load_index()
        taken = set(index)
        code = self.generate_code()
        while code in taken or self._record_exists(code):
            logger.debug("Short code collision on %s, drawing again", code)
            code = self.generate_code()

        link = ShortLink(
            short_code=code,
            original_url=target,
            session_id=session_id,
            created_at=self.clock(),
        )
        self._save_link(link)
        index.append(code)
        self._save_index(index)
        logger.info("Created short link %s for session %s", code, session_id)
        return code

    def resolve(self, code: str) -> ShortLink | None:
        """Look up a short code.

        Args:
            code: Short code.

        Returns:
            The link, or None if unknown or malformed.
        """
        key = get_link_key(code)
        data = read_json(self.store, key)
        if data is None:
            return None
        try:
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            return ShortLink.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("%s", StorageCorruptError(key, str(e)))
            return None

    def record_click(self, code: str) -> None:
        """Count one resolution of a code. Unknown codes are ignored.

        Args:
            code: Short code.
        """
        link = self.resolve(code)
        if link is None:
            logger.debug("Ignoring click on unknown code %s", code)
            return
        self._save_link(replace(link, clicks=link.clicks + 1))

    def list_links(self) -> list[ShortLink]:
        """List links in index order, skipping codes that no longer resolve.

        Returns:
            Resolvable links.
        """
        links: list[ShortLink] = []
        for code in self._load_index():
            link = self.resolve(code)
            if link is not None:
                links.append(link)
        return links

    def delete(self, code: str) -> None:
        """Remove a link and strike its code from the index.

        Args:
            code: Short code. Unknown codes are a no-op.
        """
        self.store.delete(get_link_key(code))
        index = self._load_index()
        if code in index:
            self._save_index([c for c in index if c != code])
            logger.info("Deleted short link %s", code)


def link_stats(links: list[ShortLink]) -> dict[str, Any]:
    """Summarize click counts over a set of links.

    Args:
        links: Links to summarize.

    Returns:
        Dictionary with total_links, total_clicks and average_clicks.
    """
    total_clicks = sum(link.clicks for link in links)
    average = round(total_clicks / len(links), 1) if links else 0
    return {
        "total_links": len(links),
        "total_clicks": total_clicks,
        "average_clicks": average,
    }


def sort_newest_first(links: list[ShortLink]) -> list[ShortLink]:
    """Order links by creation time, newest first."""
    return sorted(links, key=lambda link: link.created_at, reverse=True)
