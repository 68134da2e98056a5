"""
Mind Vault settings.

Three layers, later ones winning: the built-in ``_DEFAULTS`` below,
``config/settings.toml``, then ``MINDVAULT_*`` environment variables.
Sections are read with attribute access; a process-wide instance is
available from ``get_config()``.

Usage:
    from mindvault.config import get_config

    settings = get_config()
    settings.monitor.poll_interval          # 1.0
    settings.performance.get("platform")    # "auto"
    settings.reload()                       # {"monitor.poll_interval": {"old": 1.0, "new": 2.0}}
"""

import copy
import logging
import os
import threading
import tomllib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger("mindvault.config")

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.toml"

_MB = 1024 * 1024

# ── Built-in defaults (used for anything settings.toml leaves out) ──

_DEFAULTS: dict[str, Any] = {
    "performance": {
        "enable_metrics": True,
        "enable_hardware_acceleration": True,
        "enable_memory_optimization": True,
        "enable_battery_optimization": True,
        "max_memory_usage": 500 * _MB,
        "max_cpu_usage": 80.0,
        "max_battery_drain": 5.0,
        "platform": "auto",
    },
    "monitor": {
        "poll_interval": 1.0,
        "recent_window": 10,
        "use_platform_instrumentation": True,
    },
    "windows": {
        "history_limit": 100,
        "multi_window_enabled": True,
        "window_sync": True,
    },
    "file_system": {
        "supported_formats": [".epub", ".mobi", ".pdf", ".txt", ".md"],
    },
    "offline": {
        "default_max_retries": 3,
    },
    "responsive": {
        "screen_width": 1024,
        "screen_height": 768,
    },
    "api": {
        "host": "127.0.0.1",
        "port": 8765,
        "api_key": "",
    },
    "logging": {
        "level": "info",
    },
}

# env var → (section, key).  The value is cast to the type of the default.
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MINDVAULT_ENABLE_METRICS": ("performance", "enable_metrics"),
    "MINDVAULT_MAX_MEMORY_USAGE": ("performance", "max_memory_usage"),
    "MINDVAULT_MAX_CPU_USAGE": ("performance", "max_cpu_usage"),
    "MINDVAULT_PLATFORM": ("performance", "platform"),
    "MINDVAULT_POLL_INTERVAL": ("monitor", "poll_interval"),
    "MINDVAULT_WINDOW_HISTORY_LIMIT": ("windows", "history_limit"),
    "MINDVAULT_API_HOST": ("api", "host"),
    "MINDVAULT_API_PORT": ("api", "port"),
    "MINDVAULT_API_KEY": ("api", "api_key"),
    "MINDVAULT_LOG_LEVEL": ("logging", "level"),
}


def _cast_like(default: Any, raw: str) -> Any:
    """Convert an env string to the type of ``default``. Raises ValueError."""
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


# ── Sections ────────────────────────────────────────────────────────

class ConfigSection:
    """Read-only attribute view of one settings table.

        section = ConfigSection({"poll_interval": 1.0, "limits": {"max": 3}})
        section.poll_interval    # 1.0
        section.limits.max       # 3 (nested tables are sections too)
    """

    __slots__ = ("_values",)

    def __init__(self, values: dict[str, Any]):
        self._values = values

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            value = self._values[name]
        except KeyError:
            raise AttributeError(
                f"No setting '{name}' (have: {', '.join(sorted(self._values))})"
            ) from None
        return ConfigSection(value) if isinstance(value, dict) else value

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)

    def __repr__(self) -> str:
        return f"ConfigSection({self._values!r})"


# ── VaultConfig ─────────────────────────────────────────────────────

class VaultConfig:
    """Layered settings for one process.

    ``config.<section>`` returns a ConfigSection; an unknown section
    raises AttributeError.

    Args:
        config_path: TOML file to read. Defaults to config/settings.toml
                     at the project root. A missing or unreadable file is
                     logged and the defaults are used.
    """

    def __init__(self, config_path: str | Path | None = None):
        self.config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
        self.last_loaded = ""
        self._lock = threading.Lock()
        self._settings: dict[str, Any] = self._read_layers()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        settings = self.__dict__.get("_settings", {})
        if name not in settings:
            raise AttributeError(
                f"No config section '{name}' (have: {', '.join(sorted(settings))})"
            )
        value = settings[name]
        return ConfigSection(value) if isinstance(value, dict) else value

    def _read_layers(self) -> dict[str, Any]:
        settings = copy.deepcopy(_DEFAULTS)
        _merge_into(settings, self._read_file())
        self._apply_env(settings)
        self.last_loaded = datetime.now(timezone.utc).isoformat()
        return settings

    def _read_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            logger.warning("Config file not found at %s, using built-in defaults", self.config_path)
            return {}
        try:
            with self.config_path.open("rb") as fh:
                data = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("Could not parse %s (%s), using built-in defaults", self.config_path, e)
            return {}
        logger.info("Settings loaded from %s", self.config_path)
        return data

    @staticmethod
    def _apply_env(settings: dict[str, Any]) -> None:
        for env_var, (section, key) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            default = _DEFAULTS[section][key]
            try:
                settings.setdefault(section, {})[key] = _cast_like(default, raw)
            except ValueError as e:
                logger.warning("Invalid env override %s=%r ignored: %s", env_var, raw, e)
                continue
            logger.info("Env override applied: %s", env_var)

    def reload(self) -> dict[str, dict[str, Any]]:
        """Re-read every layer and return what changed, keyed by dotted path.

        Components that copied a value at construction time (the window
        history limit, supported import formats) keep the old value until
        they are rebuilt.
        """
        with self._lock:
            before = self._settings
            self._settings = self._read_layers()
            changes = diff_settings(before, self._settings)
        logger.info("Settings reloaded: %d change(s)", len(changes))
        return changes

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._settings)


# ── Process-wide instance ───────────────────────────────────────────

_shared: VaultConfig | None = None
_shared_lock = threading.Lock()


def get_config(config_path: str | Path | None = None) -> VaultConfig:
    """The process-wide VaultConfig, created on first use.

    ``config_path`` only matters on the first call.
    """
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = VaultConfig(config_path)
        return _shared


# ── Helpers ─────────────────────────────────────────────────────────

def _merge_into(target: dict[str, Any], overlay: dict[str, Any]) -> None:
    for key, value in overlay.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)


def _flatten(tree: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in tree.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{path}."))
        else:
            flat[path] = value
    return flat


def diff_settings(old: dict[str, Any], new: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """``{"section.key": {"old": ..., "new": ...}}`` for every leaf that differs."""
    before, after = _flatten(old), _flatten(new)
    return {
        path: {"old": before.get(path), "new": after.get(path)}
        for path in sorted(before.keys() | after.keys())
        if before.get(path) != after.get(path)
    }
