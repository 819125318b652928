"""Client-side persisted state: a small JSON key/value store and its caches.

Everything here is a best-effort cache.  Read failures fall back to empty
values and write failures are logged, never raised to the caller.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from .models import Bookmark, CatalogueEntry, ChatMessage, Role

logger = logging.getLogger(__name__)

CHAT_HISTORY_KEY = "chatHistory"
FAVICON_KEY = "faviconCache"
BOOKMARKS_KEY = "bookmarkedApis"
FAVICON_SERVICE = "https://www.google.com/s2/favicons?domain={host}&sz=64"


class LocalStore:
    """JSON-file backed key/value store, the desktop stand-in for localStorage."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            logger.warning("Could not persist %s: %s", self.path, exc)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._read())


class TranscriptCache:
    """Chat transcript snapshot, valid only for the workspace it was taken with."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def save(self, workspace_fingerprint: str, messages: Sequence[ChatMessage]) -> None:
        self._store.set(CHAT_HISTORY_KEY, {
            "workspace": workspace_fingerprint,
            "messages": [
                m.model_dump(mode="json") for m in messages if m.role is not Role.thinking
            ],
        })

    def load(self, workspace_fingerprint: str) -> list[ChatMessage]:
        """Cached messages, or [] (and the entry dropped) on a fingerprint mismatch."""
        snapshot = self._store.get(CHAT_HISTORY_KEY)
        if not isinstance(snapshot, dict):
            return []
        if snapshot.get("workspace") != workspace_fingerprint:
            self.clear()
            return []
        try:
            return [ChatMessage.model_validate(m) for m in snapshot.get("messages", [])]
        except ValidationError as exc:
            logger.warning("Discarding malformed transcript cache: %s", exc)
            self.clear()
            return []

    def clear(self) -> None:
        self._store.delete(CHAT_HISTORY_KEY)


class FaviconCache:
    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def favicon_url(self, url: str) -> str | None:
        host = urlparse(url).hostname
        if not host:
            return None
        cache = self._store.get(FAVICON_KEY, {})
        if not isinstance(cache, dict):
            cache = {}
        if host not in cache:
            cache[host] = FAVICON_SERVICE.format(host=host)
            self._store.set(FAVICON_KEY, cache)
        return cache[host]


class BookmarkStore:
    """Bookmarked catalogue entries, unique by name, in insertion order."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def bookmarks(self) -> list[Bookmark]:
        raw = self._store.get(BOOKMARKS_KEY, [])
        bookmarks = []
        for item in raw if isinstance(raw, list) else []:
            try:
                bookmarks.append(Bookmark.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed bookmark %r", item)
        return bookmarks

    def _save(self, bookmarks: list[Bookmark]) -> None:
        self._store.set(BOOKMARKS_KEY, [b.model_dump() for b in bookmarks])

    def contains(self, name: str) -> bool:
        return any(b.name == name for b in self.bookmarks())

    def add(self, entry: CatalogueEntry) -> bool:
        bookmarks = self.bookmarks()
        if any(b.name == entry.name for b in bookmarks):
            return False
        bookmarks.append(Bookmark.from_entry(entry))
        self._save(bookmarks)
        return True

    def remove(self, name: str) -> bool:
        bookmarks = self.bookmarks()
        kept = [b for b in bookmarks if b.name != name]
        if len(kept) == len(bookmarks):
            return False
        self._save(kept)
        return True

    def toggle(self, entry: CatalogueEntry) -> bool:
        """Flip the bookmark; returns True when the entry is now bookmarked."""
        if self.remove(entry.name):
            return False
        return self.add(entry)
