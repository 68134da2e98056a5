"""
FastAPI application factory for the Mind Vault REST API.

The monitor, file-system facade and mobile managers are built by the
caller and exposed on ``app.state`` so the router can reach them without
module globals.  The lifespan starts the polling task on startup and
cancels it on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mindvault.config import VaultConfig, get_config
from mindvault.file_system import FileSystemManager
from mindvault.mobile import MobileFacade
from mindvault.performance import PerformanceMonitor

logger = logging.getLogger("mindvault.api")


def create_app(
    monitor: PerformanceMonitor,
    file_system: FileSystemManager | None = None,
    mobile: MobileFacade | None = None,
    config: VaultConfig | None = None,
    start_monitoring: bool = True,
) -> FastAPI:
    """Build the app around already-constructed managers."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Mind Vault API starting up")
        if start_monitoring:
            monitor.start_monitoring()
        yield
        monitor.stop_monitoring()
        logger.info("Mind Vault API shutting down")

    app = FastAPI(title="Mind Vault", lifespan=lifespan)

    app.state.config = config if config is not None else get_config()
    app.state.monitor = monitor
    app.state.file_system = file_system if file_system is not None else FileSystemManager()
    app.state.mobile = mobile if mobile is not None else MobileFacade()

    from interfaces.api.routes import router as api_router
    app.include_router(api_router)

    return app
