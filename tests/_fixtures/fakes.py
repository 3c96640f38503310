"""Recording fakes for collaborator interfaces."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Mapping, Optional


class RecordingReasoner:
    """Reasoning fake that records calls and returns canned text."""

    def __init__(
        self,
        response: str = "",
        *,
        error: Exception | None = None,
        available: bool = True,
        block: threading.Event | None = None,
    ) -> None:
        self.response = response
        self.error = error
        self._available = available
        self._block = block
        self.calls: List[Dict[str, Any]] = []

    def available(self) -> bool:
        return self._available

    def reason(self, context: Any, instructions: Optional[str]) -> str:
        self.calls.append({"context": context, "instructions": instructions})
        if self._block is not None:
            self._block.wait(5)
        if self.error is not None:
            raise self.error
        return self.response


class RecordingBridge:
    """Context bridge fake returning extra raw fields."""

    def __init__(self, extra: Mapping[str, Any] | None = None, *, error: Exception | None = None) -> None:
        self.extra = dict(extra or {})
        self.error = error
        self.calls: List[Mapping[str, Any]] = []

    def extract(self, raw: Mapping[str, Any]) -> Mapping[str, Any]:
        self.calls.append(raw)
        if self.error is not None:
            raise self.error
        return self.extra


class DictAccelerator:
    """In-memory accelerator recording get/set traffic."""

    def __init__(self) -> None:
        self.values: Dict[str, Any] = {}
        self.gets: List[str] = []
        self.sets: List[tuple] = []
        self.persisted = 0

    def get(self, key: str) -> Any:
        self.gets.append(key)
        return self.values.get(key)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.sets.append((key, ttl))
        self.values[key] = value

    def persist(self) -> None:
        self.persisted += 1


__all__ = ["DictAccelerator", "RecordingBridge", "RecordingReasoner"]
