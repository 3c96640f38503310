"""Optional key/value accelerator for compiled templates."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

_CACHE_VERSION = 1


class TemplateCache:
    """In-memory cache with per-entry TTL and optional JSON persistence.

    Losing or clearing the cache only costs recompilation; entries that fail to
    load are ignored.
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._dirty = False
        if self._path is not None:
            self._load(self._path)

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at = entry.get("expires_at")
            if isinstance(expires_at, (int, float)) and expires_at <= self._clock():
                self._entries.pop(key, None)
                self._dirty = True
                return None
            return entry.get("value")

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._entries[key] = {"value": value, "expires_at": expires_at}
            self._dirty = True

    def delete(self, key: str) -> None:
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self._dirty = True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._dirty = True

    def __len__(self) -> int:
        return len(self._entries)

    def persist(self) -> None:
        if not self._dirty or self._path is None:
            return
        with self._lock:
            now = self._clock()
            live = {
                key: entry
                for key, entry in self._entries.items()
                if not isinstance(entry.get("expires_at"), (int, float))
                or entry["expires_at"] > now
            }
            payload = {"version": _CACHE_VERSION, "entries": live}
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
            )
            self._dirty = False

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return
        if not isinstance(data, dict) or data.get("version") != _CACHE_VERSION:
            return
        entries = data.get("entries")
        if not isinstance(entries, dict):
            return
        self._entries = {
            key: raw
            for key, raw in entries.items()
            if isinstance(key, str) and isinstance(raw, dict) and "value" in raw
        }
        self._dirty = False


__all__ = ["TemplateCache"]
