"""
Window registry for the desktop reader.

Tracks open reader windows (reading view, notes, search, AI chat, ...),
which one is active, and a bounded per-window history of every mutation.

History is stored as one ring buffer per window id so the cap of 100
entries applies per window; each entry also carries a global sequence
number so the merged history keeps insertion order.

Usage:
    wm = WindowManager()
    win = wm.create_window(WindowType.READING, "Dune", {"book_id": "b1"})
    wm.update_window_state(win.window_id, WindowState.MAXIMIZED)
    wm.get_window_history(win.window_id)
"""

import itertools
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger("mindvault.windows")

DEFAULT_HISTORY_LIMIT = 100


class WindowType(Enum):
    READING = "reading"
    NOTES = "notes"
    HIGHLIGHTS = "highlights"
    SEARCH = "search"
    SETTINGS = "settings"
    AI_CHAT = "ai_chat"


class WindowState(Enum):
    NORMAL = "normal"
    MINIMIZED = "minimized"
    MAXIMIZED = "maximized"
    FULLSCREEN = "fullscreen"
    HIDDEN = "hidden"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Dataclasses ─────────────────────────────────────────────────────

@dataclass
class WindowPosition:
    x: int = 100
    y: int = 100
    z_index: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "z_index": self.z_index}


@dataclass
class WindowSize:
    width: int = 800
    height: int = 600
    min_width: int = 400
    min_height: int = 300
    max_width: int = 1920
    max_height: int = 1080

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "min_width": self.min_width,
            "min_height": self.min_height,
            "max_width": self.max_width,
            "max_height": self.max_height,
        }


@dataclass
class Window:
    window_id: str
    window_type: WindowType
    title: str
    content: dict[str, Any] = field(default_factory=dict)
    position: WindowPosition = field(default_factory=WindowPosition)
    size: WindowSize = field(default_factory=WindowSize)
    state: WindowState = WindowState.NORMAL
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_id": self.window_id,
            "type": self.window_type.value,
            "title": self.title,
            "content": dict(self.content),
            "position": self.position.to_dict(),
            "size": self.size.to_dict(),
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class WindowHistoryEntry:
    window_id: str
    action: str      # created | closed | activated | moved | resized | state_changed
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_id": self.window_id,
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
            "data": dict(self.data),
        }


# ── WindowManager ───────────────────────────────────────────────────

class WindowManager:
    """Open windows, the active window, and per-window history.

    Args:
        history_limit:        Max history entries kept per window id.
        multi_window_enabled: Whether more than one window may be open.
        window_sync:          Whether windows follow each other's reading
                              position (carried for the UI layer).
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        multi_window_enabled: bool = True,
        window_sync: bool = True,
    ):
        self.history_limit = history_limit
        self.multi_window_enabled = multi_window_enabled
        self.window_sync = window_sync
        self._windows: dict[str, Window] = {}
        self._active: str | None = None
        self._history: dict[str, deque[WindowHistoryEntry]] = {}
        self._sequence = itertools.count()

    # ── Lifecycle ───────────────────────────────────────────────────

    def create_window(
        self,
        window_type: WindowType | str,
        title: str,
        content: dict[str, Any] | None = None,
        position: dict[str, Any] | None = None,
        size: dict[str, Any] | None = None,
    ) -> Window:
        """Open a window and make it active.

        ``position`` and ``size`` are partial dicts layered over the
        defaults (100,100 at z 1; 800x600 within 400x300..1920x1080).
        """
        window_type = WindowType(window_type) if not isinstance(window_type, WindowType) else window_type
        window = Window(
            window_id=uuid.uuid4().hex,
            window_type=window_type,
            title=title,
            content=dict(content or {}),
            position=replace(WindowPosition(), **(position or {})),
            size=replace(WindowSize(), **(size or {})),
        )
        self._windows[window.window_id] = window
        self._active = window.window_id
        self._record(window.window_id, "created", {"type": window_type.value, "title": title})
        logger.info("Created window: %s (%s)", window.window_id, window_type.value)
        return window

    def close_window(self, window_id: str) -> bool:
        """Close a window. Unknown ids are ignored (returns False).

        Closing the active window promotes the oldest remaining window.
        """
        window = self._windows.pop(window_id, None)
        if window is None:
            return False
        if self._active == window_id:
            self._active = next(iter(self._windows), None)
        self._record(window_id, "closed", {"title": window.title})
        logger.info("Closed window: %s", window_id)
        return True

    # ── Queries ─────────────────────────────────────────────────────

    def get_window(self, window_id: str) -> Window | None:
        return self._windows.get(window_id)

    def get_windows(self) -> list[Window]:
        return list(self._windows.values())

    def get_active_window(self) -> Window | None:
        if self._active is None:
            return None
        return self._windows.get(self._active)

    # ── Mutations ───────────────────────────────────────────────────

    def set_active_window(self, window_id: str) -> bool:
        window = self._windows.get(window_id)
        if window is None:
            return False
        self._active = window_id
        self._record(window_id, "activated", {"title": window.title})
        logger.debug("Active window: %s", window_id)
        return True

    def update_window_position(self, window_id: str, **position: Any) -> bool:
        window = self._windows.get(window_id)
        if window is None:
            return False
        window.position = replace(window.position, **position)
        window.updated_at = _utcnow()
        self._record(window_id, "moved", {"position": dict(position)})
        return True

    def update_window_size(self, window_id: str, **size: Any) -> bool:
        window = self._windows.get(window_id)
        if window is None:
            return False
        window.size = replace(window.size, **size)
        window.updated_at = _utcnow()
        self._record(window_id, "resized", {"size": dict(size)})
        return True

    def update_window_state(self, window_id: str, state: WindowState | str) -> bool:
        window = self._windows.get(window_id)
        if window is None:
            return False
        window.state = WindowState(state) if not isinstance(state, WindowState) else state
        window.updated_at = _utcnow()
        self._record(window_id, "state_changed", {"state": window.state.value})
        return True

    # ── History ─────────────────────────────────────────────────────

    def get_window_history(self, window_id: str | None = None) -> list[WindowHistoryEntry]:
        """History for one window, or the merged history of all windows
        in the order it was recorded."""
        if window_id is not None:
            return list(self._history.get(window_id, ()))
        merged = [entry for entries in self._history.values() for entry in entries]
        merged.sort(key=lambda e: e.sequence)
        return merged

    def _record(self, window_id: str, action: str, data: dict[str, Any]) -> None:
        entries = self._history.get(window_id)
        if entries is None:
            entries = self._history[window_id] = deque(maxlen=self.history_limit)
        entries.append(WindowHistoryEntry(
            window_id=window_id,
            action=action,
            timestamp=_utcnow(),
            data=data,
            sequence=next(self._sequence),
        ))
