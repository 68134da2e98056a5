"""
Mobile facade: touch gestures, responsive layout, offline storage and
battery optimisation for the phone/tablet reader.

Every registry here (gestures, breakpoints, layouts, component configs,
offline data) is a plain keyed map owned by its manager instance, with
last-write-wins updates.

Usage:
    gestures = TouchGestureManager()
    gestures.classify_touch(touch_count=1, duration_ms=120)   # → TAP

    responsive = ResponsiveManager(screen_size=(390, 844))
    responsive.is_mobile()                                     # → True

    offline = OfflineManager()
    offline.add_to_queue(OfflineAction.create("save_note", {...}))
    await offline.sync_data()
"""

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from mindvault.metrics import Platform
from mindvault.resources import (
    DEFAULT_BATTERY_LEVEL,
    Instrumentation,
    NullInstrumentation,
    PowerMode,
)

logger = logging.getLogger("mindvault.mobile")

TAP_MAX_MS = 300
LONG_PRESS_MIN_MS = 500
DEFAULT_SCREEN_SIZE = (1024, 768)
DEFAULT_MAX_RETRIES = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Gestures ────────────────────────────────────────────────────────

class GestureType(Enum):
    TAP = "tap"
    DOUBLE_TAP = "double_tap"
    LONG_PRESS = "long_press"
    SWIPE = "swipe"
    PINCH = "pinch"
    ROTATE = "rotate"
    PAN = "pan"
    CUSTOM = "custom"


@dataclass
class CustomAction:
    gesture: str
    action: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"gesture": self.gesture, "action": self.action, "parameters": dict(self.parameters)}


@dataclass
class GesturePattern:
    pattern_type: str                       # sequence | simultaneous | timed
    gestures: list[str] = field(default_factory=list)
    min_duration: float | None = None
    max_duration: float | None = None
    interval: float | None = None
    threshold: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.pattern_type,
            "gestures": list(self.gestures),
            "timing": {
                "min_duration": self.min_duration,
                "max_duration": self.max_duration,
                "interval": self.interval,
            },
            "threshold": self.threshold,
        }


@dataclass
class TouchGesture:
    gesture_id: str
    gesture_type: GestureType
    platform: Platform = Platform.MOBILE
    enabled: bool = True
    sensitivity: float = 0.5
    custom_actions: list[CustomAction] = field(default_factory=list)
    pattern: GesturePattern | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.gesture_id,
            "type": self.gesture_type.value,
            "platform": self.platform.value,
            "enabled": self.enabled,
            "sensitivity": self.sensitivity,
            "custom_actions": [a.to_dict() for a in self.custom_actions],
            "pattern": self.pattern.to_dict() if self.pattern else None,
        }


def default_gestures() -> list[TouchGesture]:
    return [
        TouchGesture(
            "swipe_next", GestureType.SWIPE,
            custom_actions=[CustomAction("swipe_left", "navigate_next")],
        ),
        TouchGesture(
            "swipe_prev", GestureType.SWIPE,
            custom_actions=[CustomAction("swipe_right", "navigate_previous")],
        ),
        TouchGesture(
            "long_press_highlight", GestureType.LONG_PRESS, sensitivity=0.7,
            custom_actions=[CustomAction("long_press", "start_highlight", {"duration": 500})],
        ),
    ]


def classify_touch(touch_count: int, duration_ms: float) -> GestureType | None:
    """Classify a finished touch sequence.

    One touch shorter than 300 ms is a tap, one touch longer than 500 ms
    is a long press, two touches are a pinch.  Anything else is None.
    """
    if touch_count == 1 and duration_ms < TAP_MAX_MS:
        return GestureType.TAP
    if touch_count == 1 and duration_ms > LONG_PRESS_MIN_MS:
        return GestureType.LONG_PRESS
    if touch_count == 2:
        return GestureType.PINCH
    return None


class TouchGestureManager:
    """Gesture registry plus the set of targets with recognition active."""

    def __init__(self):
        self._gestures: dict[str, TouchGesture] = {}
        self._active_targets: set[str] = set()
        for gesture in default_gestures():
            self.register_gesture(gesture)

    def register_gesture(self, gesture: TouchGesture) -> None:
        self._gestures[gesture.gesture_id] = gesture
        logger.debug("Registered gesture: %s", gesture.gesture_id)

    def unregister_gesture(self, gesture_id: str) -> bool:
        if self._gestures.pop(gesture_id, None) is None:
            return False
        logger.debug("Unregistered gesture: %s", gesture_id)
        return True

    def get_gesture(self, gesture_id: str) -> TouchGesture | None:
        return self._gestures.get(gesture_id)

    def get_gestures(self) -> list[TouchGesture]:
        return list(self._gestures.values())

    def update_gesture(self, gesture_id: str, **updates: Any) -> bool:
        gesture = self._gestures.get(gesture_id)
        if gesture is None:
            return False
        for key, value in updates.items():
            if not hasattr(gesture, key):
                raise ValueError(f"Unknown gesture field: {key}")
            setattr(gesture, key, value)
        logger.debug("Updated gesture: %s", gesture_id)
        return True

    def create_custom_gesture(
        self,
        name: str,
        pattern: GesturePattern,
        action: str,
        parameters: dict[str, Any] | None = None,
    ) -> TouchGesture:
        gesture = TouchGesture(
            gesture_id=uuid.uuid4().hex,
            gesture_type=GestureType.CUSTOM,
            custom_actions=[CustomAction(name, action, dict(parameters or {}))],
            pattern=pattern,
        )
        self.register_gesture(gesture)
        return gesture

    def start_gesture_recognition(self, target: str) -> bool:
        """Begin recognising gestures on ``target``. False if already active."""
        if target in self._active_targets:
            return False
        self._active_targets.add(target)
        logger.info("Started gesture recognition for %s", target)
        return True

    def stop_gesture_recognition(self, target: str) -> bool:
        if target not in self._active_targets:
            return False
        self._active_targets.discard(target)
        logger.info("Stopped gesture recognition for %s", target)
        return True

    def get_active_targets(self) -> list[str]:
        return sorted(self._active_targets)

    classify_touch = staticmethod(classify_touch)


# ── Keyboard shortcuts and accessibility ────────────────────────────

@dataclass
class KeyboardShortcut:
    shortcut_id: str
    key: str
    action: str
    modifiers: list[str] = field(default_factory=list)     # any one of these must be held
    platforms: set[Platform] = field(default_factory=lambda: {Platform.WEB, Platform.DESKTOP})
    enabled: bool = True
    description: str = ""
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.shortcut_id,
            "key": self.key,
            "modifiers": list(self.modifiers),
            "action": self.action,
            "platform": sorted(p.value for p in self.platforms),
            "enabled": self.enabled,
            "description": self.description,
            "category": self.category,
        }


def default_keyboard_shortcuts() -> list[KeyboardShortcut]:
    return [
        KeyboardShortcut("next_page", "ArrowRight", "navigate_next",
                         description="Go to next page", category="navigation"),
        KeyboardShortcut("prev_page", "ArrowLeft", "navigate_previous",
                         description="Go to previous page", category="navigation"),
        KeyboardShortcut("search", "f", "open_search", ["ctrl", "cmd"],
                         description="Open search", category="search"),
        KeyboardShortcut("new_note", "n", "create_note", ["ctrl", "cmd"],
                         description="Create new note", category="notes"),
        KeyboardShortcut("toggle_highlight", "h", "toggle_highlight", ["ctrl", "cmd"],
                         description="Toggle highlight mode", category="highlighting"),
    ]


class KeyboardShortcutManager:
    """Shortcut registry keyed by id, with key-press lookup."""

    def __init__(self):
        self._shortcuts: dict[str, KeyboardShortcut] = {}
        for shortcut in default_keyboard_shortcuts():
            self.register_shortcut(shortcut)

    def register_shortcut(self, shortcut: KeyboardShortcut) -> None:
        self._shortcuts[shortcut.shortcut_id] = shortcut
        logger.debug("Registered shortcut: %s", shortcut.shortcut_id)

    def unregister_shortcut(self, shortcut_id: str) -> bool:
        return self._shortcuts.pop(shortcut_id, None) is not None

    def get_shortcut(self, shortcut_id: str) -> KeyboardShortcut | None:
        return self._shortcuts.get(shortcut_id)

    def get_shortcuts(self, platform: Platform | None = None) -> list[KeyboardShortcut]:
        shortcuts = list(self._shortcuts.values())
        if platform is not None:
            shortcuts = [s for s in shortcuts if platform in s.platforms]
        return shortcuts

    def set_enabled(self, shortcut_id: str, enabled: bool) -> bool:
        shortcut = self._shortcuts.get(shortcut_id)
        if shortcut is None:
            return False
        shortcut.enabled = enabled
        return True

    def resolve(
        self,
        key: str,
        held: list[str] | tuple[str, ...] = (),
        platform: Platform = Platform.DESKTOP,
    ) -> str | None:
        """Action bound to ``key`` with the ``held`` modifiers, or None.

        A shortcut with modifiers matches when any one of them is held;
        one without modifiers matches only when none are held.
        """
        held_set = {m.lower() for m in held}
        for shortcut in self._shortcuts.values():
            if not shortcut.enabled or platform not in shortcut.platforms:
                continue
            if shortcut.key.lower() != key.lower():
                continue
            if shortcut.modifiers:
                if held_set & {m.lower() for m in shortcut.modifiers}:
                    return shortcut.action
            elif not held_set:
                return shortcut.action
        return None


@dataclass
class AccessibilityConfig:
    enabled: bool = True
    screen_reader: bool = False
    high_contrast: bool = False
    large_text: bool = False
    reduced_motion: bool = False
    keyboard_navigation: bool = True
    focus_indicators: bool = True
    color_blind_support: bool = False

    def update(self, **changes: bool) -> None:
        """Raises ValueError on an unknown setting; nothing is applied then."""
        unknown = [k for k in changes if k not in self.__dataclass_fields__]
        if unknown:
            raise ValueError(f"Unknown accessibility setting: {', '.join(unknown)}")
        for key, value in changes.items():
            setattr(self, key, bool(value))

    def to_dict(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


# ── Responsive layout ───────────────────────────────────────────────

@dataclass
class Breakpoint:
    name: str
    min_width: int
    max_width: int | None = None
    platforms: list[Platform] = field(default_factory=list)

    def matches(self, width: int) -> bool:
        return width >= self.min_width and (self.max_width is None or width <= self.max_width)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "min_width": self.min_width,
            "max_width": self.max_width,
            "platforms": [p.value for p in self.platforms],
        }


@dataclass
class LayoutConfig:
    breakpoint: str
    columns: int
    spacing: int
    font_size: int
    line_height: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "breakpoint": self.breakpoint,
            "columns": self.columns,
            "spacing": self.spacing,
            "font_size": self.font_size,
            "line_height": self.line_height,
        }


@dataclass
class ComponentConfig:
    name: str
    breakpoint: str
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "breakpoint": self.breakpoint, "properties": dict(self.properties)}


def default_breakpoints() -> list[Breakpoint]:
    return [
        Breakpoint("mobile", 0, 767, [Platform.MOBILE]),
        Breakpoint("tablet", 768, 1023, [Platform.TABLET, Platform.MOBILE]),
        Breakpoint("desktop", 1024, None, [Platform.DESKTOP, Platform.WEB]),
    ]


def default_layouts() -> list[LayoutConfig]:
    return [
        LayoutConfig("mobile", columns=1, spacing=16, font_size=16, line_height=1.5),
        LayoutConfig("tablet", columns=2, spacing=24, font_size=18, line_height=1.6),
        LayoutConfig("desktop", columns=3, spacing=32, font_size=20, line_height=1.7),
    ]


class ResponsiveManager:
    """Breakpoints, layouts and per-breakpoint component configuration.

    The current breakpoint is the first registered breakpoint (insertion
    order) whose width range contains the screen width.  It is recomputed
    whenever breakpoints or the screen size change.
    """

    def __init__(self, screen_size: tuple[int, int] = DEFAULT_SCREEN_SIZE):
        self._width, self._height = screen_size
        self._breakpoints: dict[str, Breakpoint] = {}
        self._layouts: dict[str, LayoutConfig] = {}
        self._components: dict[str, dict[str, ComponentConfig]] = {}
        self._current: Breakpoint | None = None

        for bp in default_breakpoints():
            self._breakpoints[bp.name] = bp
        for layout in default_layouts():
            self._layouts[layout.breakpoint] = layout
        self._detect_breakpoint()

    # ── Breakpoints ─────────────────────────────────────────────────

    def add_breakpoint(self, breakpoint: Breakpoint) -> None:
        self._breakpoints[breakpoint.name] = breakpoint
        self._detect_breakpoint()
        logger.debug("Added breakpoint: %s", breakpoint.name)

    def remove_breakpoint(self, name: str) -> bool:
        if self._breakpoints.pop(name, None) is None:
            return False
        self._detect_breakpoint()
        logger.debug("Removed breakpoint: %s", name)
        return True

    def get_breakpoints(self) -> list[Breakpoint]:
        return list(self._breakpoints.values())

    def get_current_breakpoint(self) -> Breakpoint | None:
        return self._current

    def _detect_breakpoint(self) -> None:
        self._current = next(
            (bp for bp in self._breakpoints.values() if bp.matches(self._width)),
            None,
        )

    # ── Layouts and components ──────────────────────────────────────

    def set_layout(self, breakpoint: str, layout: LayoutConfig) -> None:
        self._layouts[breakpoint] = layout

    def get_layout(self, breakpoint: str) -> LayoutConfig | None:
        return self._layouts.get(breakpoint)

    def get_current_layout(self) -> LayoutConfig | None:
        if self._current is None:
            return None
        return self.get_layout(self._current.name)

    def set_component_config(self, component: str, breakpoint: str, config: ComponentConfig) -> None:
        self._components.setdefault(component, {})[breakpoint] = config

    def get_component_config(self, component: str, breakpoint: str) -> ComponentConfig | None:
        return self._components.get(component, {}).get(breakpoint)

    # ── Screen ──────────────────────────────────────────────────────

    def set_screen_size(self, width: int, height: int) -> None:
        self._width, self._height = width, height
        self._detect_breakpoint()

    def get_screen_size(self) -> tuple[int, int]:
        return (self._width, self._height)

    def get_orientation(self) -> str:
        return "landscape" if self._width > self._height else "portrait"

    def is_mobile(self) -> bool:
        return self._current_has(Platform.MOBILE)

    def is_tablet(self) -> bool:
        return self._current_has(Platform.TABLET)

    def is_desktop(self) -> bool:
        return self._current_has(Platform.DESKTOP)

    def _current_has(self, platform: Platform) -> bool:
        return self._current is not None and platform in self._current.platforms


# ── Offline storage and queue ───────────────────────────────────────

@dataclass
class OfflineAction:
    """An operation queued while offline."""

    action_id: str
    action_type: str
    data: Any
    timestamp: datetime = field(default_factory=_utcnow)
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    priority: int = 0

    @property
    def short_id(self) -> str:
        return self.action_id[:8]

    @classmethod
    def create(cls, action_type: str, data: Any, **kwargs: Any) -> "OfflineAction":
        return cls(action_id=uuid.uuid4().hex, action_type=action_type, data=data, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "type": self.action_type,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "priority": self.priority,
        }


@dataclass
class SyncResult:
    success: bool
    synced_items: int = 0
    failed_items: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "synced_items": self.synced_items,
            "failed_items": self.failed_items,
            "errors": list(self.errors),
        }


QueueHandler = Callable[[Any], Awaitable[None] | None]


class OfflineManager:
    """In-memory key/value store and an offline action queue.

    ``sync_data`` does not transmit anything: with sync enabled it drains
    the queue through the registered handlers and reports success.
    """

    def __init__(self, default_max_retries: int = DEFAULT_MAX_RETRIES):
        self.default_max_retries = default_max_retries
        self._storage: dict[str, Any] = {}
        self._queue: list[OfflineAction] = []
        self._handlers: dict[str, QueueHandler] = {}
        self._sync_enabled = True
        self._processing = False

    # ── Key/value storage ───────────────────────────────────────────

    async def store_data(self, key: str, data: Any) -> None:
        self._storage[key] = data
        logger.debug("Stored data for key: %s", key)

    async def get_data(self, key: str) -> Any | None:
        return self._storage.get(key)

    async def remove_data(self, key: str) -> None:
        self._storage.pop(key, None)

    async def clear_all_data(self) -> None:
        self._storage.clear()
        logger.info("Cleared all offline data")

    # ── Sync ────────────────────────────────────────────────────────

    def enable_sync(self) -> None:
        self._sync_enabled = True
        logger.info("Sync enabled")

    def disable_sync(self) -> None:
        self._sync_enabled = False
        logger.info("Sync disabled")

    def is_sync_enabled(self) -> bool:
        return self._sync_enabled

    async def sync_data(self) -> SyncResult:
        if not self._sync_enabled:
            return SyncResult(success=False, errors=["Sync is disabled"])

        await self.process_queue()
        result = SyncResult(success=True, synced_items=len(self._storage))
        logger.info("Sync completed: %d synced, %d failed", result.synced_items, result.failed_items)
        return result

    # ── Queue ───────────────────────────────────────────────────────

    def set_handlers(self, **handlers: QueueHandler) -> None:
        """Register handlers per action type, e.g. ``save_note=push_note``.

        Handlers may be sync or async; they receive the action's data.
        """
        self._handlers.update(handlers)

    def add_to_queue(self, action: OfflineAction) -> None:
        self._queue.append(action)
        logger.debug("Added action to queue: %s", action.action_type)

    def queue_action(self, action_type: str, data: Any, priority: int = 0) -> OfflineAction:
        """Create and enqueue an action with this manager's retry budget."""
        action = OfflineAction.create(
            action_type, data, max_retries=self.default_max_retries, priority=priority,
        )
        self.add_to_queue(action)
        return action

    def get_queue(self) -> list[OfflineAction]:
        return list(self._queue)

    def get_queue_size(self) -> int:
        return len(self._queue)

    def clear_queue(self) -> None:
        self._queue.clear()
        logger.info("Cleared offline action queue")

    async def process_queue(self) -> int:
        """Drain the queue. Returns the number of actions processed.

        A failing action goes back on the queue until it has been retried
        ``max_retries`` times, then it is dropped.
        """
        if self._processing or not self._queue:
            return 0

        self._processing = True
        processed = 0
        try:
            while self._queue:
                action = self._queue.pop(0)
                try:
                    await self._execute(action)
                    processed += 1
                except Exception as e:
                    if action.retry_count < action.max_retries:
                        action.retry_count += 1
                        self._queue.append(action)
                        logger.warning(
                            "Queued action %s (%s) failed, retry %d/%d: %s",
                            action.short_id, action.action_type,
                            action.retry_count, action.max_retries, e,
                        )
                    else:
                        logger.error(
                            "Dropping queued action %s (%s) after %d retries: %s",
                            action.short_id, action.action_type, action.max_retries, e,
                        )
        finally:
            self._processing = False

        logger.info("Processed %d queued action(s)", processed)
        return processed

    async def _execute(self, action: OfflineAction) -> None:
        handler = self._handlers.get(action.action_type)
        if handler is None:
            logger.debug("No handler for action type '%s', marking processed", action.action_type)
            return
        result = handler(action.data)
        if inspect.isawaitable(result):
            await result


# ── Battery ─────────────────────────────────────────────────────────

class BatteryOptimizer:
    """Battery readings and power-mode switching for mobile builds."""

    def __init__(self, instrumentation: Instrumentation | None = None):
        self._inst = instrumentation if instrumentation is not None else NullInstrumentation()
        self._power_mode = PowerMode.BALANCED
        self._saver_enabled = False
        self._saved_mode: PowerMode | None = None

    async def get_battery_level(self) -> float:
        reading = self._inst.battery()
        return DEFAULT_BATTERY_LEVEL if reading is None else reading.percent

    async def is_charging(self) -> bool:
        reading = self._inst.battery()
        return True if reading is None else reading.plugged

    async def get_battery_time_remaining(self) -> int | None:
        reading = self._inst.battery()
        if reading is None or reading.plugged:
            return None
        return reading.secs_left

    def set_power_mode(self, mode: PowerMode | str) -> None:
        self._power_mode = PowerMode(mode) if not isinstance(mode, PowerMode) else mode
        logger.info("Power mode: %s", self._power_mode.value)

    def get_power_mode(self) -> PowerMode:
        return self._power_mode

    def enable_battery_saver(self) -> None:
        self._saver_enabled = True
        self.optimize_for_battery()
        logger.info("Battery saver enabled")

    def disable_battery_saver(self) -> None:
        self._saver_enabled = False
        self.restore_performance()
        logger.info("Battery saver disabled")

    def is_battery_saver_enabled(self) -> bool:
        return self._saver_enabled

    def optimize_for_battery(self) -> None:
        if self._power_mode != PowerMode.POWER_SAVER:
            self._saved_mode = self._power_mode
        self._power_mode = PowerMode.POWER_SAVER

    def restore_performance(self) -> None:
        self._power_mode = self._saved_mode or PowerMode.BALANCED
        self._saved_mode = None


# ── Facade ──────────────────────────────────────────────────────────

class MobileFacade:
    """Bundles the mobile managers and input settings for callers that want them all."""

    def __init__(
        self,
        instrumentation: Instrumentation | None = None,
        screen_size: tuple[int, int] = DEFAULT_SCREEN_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.gestures = TouchGestureManager()
        self.responsive = ResponsiveManager(screen_size)
        self.offline = OfflineManager(default_max_retries=max_retries)
        self.battery = BatteryOptimizer(instrumentation)
        self.keyboard = KeyboardShortcutManager()
        self.accessibility = AccessibilityConfig()

    def get_status(self) -> dict[str, Any]:
        current = self.responsive.get_current_breakpoint()
        return {
            "gestures": len(self.gestures.get_gestures()),
            "shortcuts": len(self.keyboard.get_shortcuts()),
            "accessibility": self.accessibility.to_dict(),
            "breakpoint": current.name if current else None,
            "orientation": self.responsive.get_orientation(),
            "queue_size": self.offline.get_queue_size(),
            "sync_enabled": self.offline.is_sync_enabled(),
            "power_mode": self.battery.get_power_mode().value,
            "battery_saver": self.battery.is_battery_saver_enabled(),
        }
