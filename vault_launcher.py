#!/usr/bin/env python3
"""Mind Vault Launcher: boots the performance core and serves the REST API.

- Logging setup from config (logging.level)
- Pre-flight checks (warn-only, never block startup)
- Monitor, file-system and mobile managers built from settings
- Boot time tracking
- uvicorn with the app's lifespan driving the polling task

Run directly:
    python3 vault_launcher.py
"""

import logging
import time
from datetime import datetime, timezone

# Record boot start time before any heavy imports
BOOT_START = time.monotonic()
BOOT_TIME = datetime.now(timezone.utc)

logger = logging.getLogger("mindvault.launcher")


def setup_logging(level: str = "info"):
    """Configure root logger for startup messages."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_preflight(config):
    """Quick pre-flight checks. Warn on failure, never block startup."""
    checks = []

    for section in ["performance", "monitor", "windows", "api"]:
        ok = hasattr(config, section)
        checks.append(("config." + section, ok))

    interval = config.monitor.poll_interval
    checks.append(("monitor.poll_interval > 0", interval > 0))

    try:
        import psutil
        psutil.virtual_memory()
        checks.append(("psutil", True))
    except Exception:
        checks.append(("psutil", False))

    passed = sum(1 for _, ok in checks if ok)
    logger.info("Pre-flight: %d/%d checks passed", passed, len(checks))
    for name, ok in checks:
        if not ok:
            logger.warning("Pre-flight FAILED: %s", name)


def build_app(config):
    """Construct the managers from settings and wrap them in the API app."""
    from interfaces.api.app import create_app
    from mindvault.collaborators import InMemoryNoteStore
    from mindvault.file_system import FileSystemManager
    from mindvault.mobile import MobileFacade
    from mindvault.performance import PerformanceConfig, create_performance_monitor
    from mindvault.windows import WindowManager

    monitor = create_performance_monitor(PerformanceConfig.from_settings(config))
    file_system = FileSystemManager(
        window_manager=WindowManager(
            history_limit=config.windows.history_limit,
            multi_window_enabled=config.windows.multi_window_enabled,
            window_sync=config.windows.window_sync,
        ),
        note_store=InMemoryNoteStore(),
        supported_formats=config.file_system.supported_formats,
    )
    mobile = MobileFacade(
        screen_size=(config.responsive.screen_width, config.responsive.screen_height),
        max_retries=config.offline.default_max_retries,
    )
    return create_app(monitor, file_system, mobile, config=config)


def main():
    """Entry point: runs the boot sequence then starts uvicorn."""
    from mindvault.config import get_config
    config = get_config()

    setup_logging(config.logging.level)
    logger.info("=" * 60)
    logger.info("Mind Vault Launcher starting")
    logger.info("=" * 60)

    run_preflight(config)
    app = build_app(config)
    app.state.boot_time = BOOT_TIME.isoformat()
    app.state.boot_duration = round(time.monotonic() - BOOT_START, 2)
    logger.info("Boot completed in %.2fs", app.state.boot_duration)

    # Start uvicorn (blocks until shutdown; SIGINT/SIGTERM trigger lifespan shutdown)
    import uvicorn
    host = config.api.host
    port = config.api.port
    logger.info("Starting uvicorn on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info", access_log=False)


if __name__ == "__main__":
    main()
