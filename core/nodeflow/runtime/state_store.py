"""
Global State Store - Session-lifetime key/value storage for stateful nodes.

STATE nodes read and write values under user-chosen state ids, and the
SEND_DATA / RECEIVE_DATA pair exchanges values through reserved channel keys.
The store outlives individual runs: a host keeps one instance per session and
hands it to every run it starts.

There is no locking. A run is a single logical thread of control, and hosts
that overlap runs sharing one store must serialize them themselves.
"""

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "__channel_"


@dataclass
class StateChange:
    """Record of a state change."""

    key: str
    old_value: Any
    new_value: Any
    timestamp: float = field(default_factory=time.time)


class GlobalStateStore:
    """
    Key/value store shared by every run of a session.

    Example:
        store = GlobalStateStore()
        store.set("hp", 12)
        store.get("hp")                   # 12
        store.send("damage", 4)
        store.receive("damage")           # 4
    """

    def __init__(self, initial: dict[str, Any] | None = None, max_history: int = 1000):
        self._values: dict[str, Any] = dict(initial or {})
        self._change_history: list[StateChange] = []
        self._max_history = max_history

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._values

    def set(self, key: str, value: Any) -> None:
        old_value = self._values.get(key)
        self._values[key] = value
        self._record_change(key, old_value, value)
        logger.debug(f"State '{key}' set to {value!r}")

    def delete(self, key: str) -> bool:
        if key not in self._values:
            return False
        old_value = self._values.pop(key)
        self._record_change(key, old_value, None)
        return True

    def clear(self) -> None:
        """Drop every entry. Called when the owning session is torn down."""
        self._values.clear()
        self._change_history.clear()

    # === CHANNELS ===

    @staticmethod
    def channel_key(channel_name: str) -> str:
        return f"{CHANNEL_PREFIX}{channel_name}"

    def send(self, channel_name: str, value: Any) -> None:
        self.set(self.channel_key(channel_name), value)

    def receive(self, channel_name: str) -> Any:
        return self.get(self.channel_key(channel_name))

    # === INSPECTION ===

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)

    def get_recent_changes(self, limit: int = 10) -> list[StateChange]:
        return self._change_history[-limit:]

    def _record_change(self, key: str, old_value: Any, new_value: Any) -> None:
        self._change_history.append(StateChange(key=key, old_value=old_value, new_value=new_value))
        if len(self._change_history) > self._max_history:
            self._change_history = self._change_history[-self._max_history :]

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)
