"""
Mind Vault REST API: /api/v1/

Versioned endpoints over the performance monitor, window registry,
file-system facade and mobile managers.  Shared state is read from
``request.app.state`` (see ``interfaces.api.app.create_app``).

Auth: optional API key via ``X-API-Key`` header.  Set ``api.api_key`` in
config/settings.toml or the ``MINDVAULT_API_KEY`` env var.  Empty key =
open access.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from pydantic import BaseModel

from mindvault.file_system import UnsupportedFormatError
from mindvault.metrics import Platform
from mindvault.strategies import OptimizationStrategy

logger = logging.getLogger("mindvault.api")

# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Depends(_api_key_header),
):
    """Check X-API-Key against the configured key.

    If the configured key is empty (default), auth is disabled and all
    requests are allowed through.  When a key is set, requests without
    a matching header receive 403.
    """
    configured_key: str = request.app.state.config.api.api_key
    if not configured_key:
        return  # open access
    if api_key != configured_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

router = APIRouter(
    prefix="/api/v1",
    dependencies=[Depends(verify_api_key)],
)


# ---------------------------------------------------------------------------
# Pydantic request models
# ---------------------------------------------------------------------------

class MetricSubmit(BaseModel):
    type: str
    duration: float
    context: dict[str, Any] = {}


class StrategySubmit(BaseModel):
    id: str
    name: str = ""
    type: str
    platform: list[str] = []
    conditions: list[dict[str, Any]] = []
    actions: list[dict[str, Any]] = []
    priority: int = 0
    enabled: bool = True


class WindowCreate(BaseModel):
    type: str
    title: str
    content: dict[str, Any] = {}
    position: Optional[dict[str, int]] = None
    size: Optional[dict[str, int]] = None


class EbookImport(BaseModel):
    path: str


class ExportRequest(BaseModel):
    data: Any
    path: str
    format: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

# -- Performance -------------------------------------------------------------

@router.get("/performance/status")
async def get_performance_status(request: Request):
    """Return the monitor's summary status."""
    monitor = request.app.state.monitor
    return {"status": monitor.get_status()}


@router.get("/performance/snapshot")
async def get_performance_snapshot(request: Request):
    """Return resource snapshots, stats and recent activity."""
    monitor = request.app.state.monitor
    return {"performance": monitor.to_broadcast_dict()}


@router.get("/performance/metrics")
async def list_metrics(request: Request, type: Optional[str] = None, limit: int = 100):
    """Return recorded metrics, newest first."""
    monitor = request.app.state.monitor
    try:
        metrics = monitor.get_metrics(type, limit)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown metric type '{type}'")
    return {"metrics": [m.to_dict() for m in metrics]}


@router.post("/performance/metrics")
async def record_metric(body: MetricSubmit, request: Request):
    """Record a measured operation."""
    monitor = request.app.state.monitor
    try:
        metric_id = monitor.record_metric(body.type, body.duration, body.context)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown metric type '{body.type}'")
    return {"ok": True, "metric_id": metric_id}


@router.delete("/performance/metrics")
async def clear_metrics(request: Request, older_than_hours: float = 24):
    """Delete metrics older than the given age (0 clears everything)."""
    monitor = request.app.state.monitor
    removed = monitor.clear_old_metrics(older_than_hours)
    return {"ok": True, "removed": removed}


@router.get("/performance/stats")
async def get_stats(request: Request, type: Optional[str] = None):
    """Return aggregate duration, memory and CPU statistics."""
    monitor = request.app.state.monitor
    try:
        stats = monitor.get_performance_stats(type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown metric type '{type}'")
    return {"stats": stats.to_dict()}


@router.get("/performance/config")
async def get_performance_config(request: Request):
    monitor = request.app.state.monitor
    return {"config": monitor.get_config().to_dict()}


@router.post("/performance/config")
async def update_performance_config(body: dict[str, Any], request: Request):
    """Merge option changes (camelCase or snake_case keys)."""
    monitor = request.app.state.monitor
    try:
        monitor.update_config(**body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "config": monitor.get_config().to_dict()}


# -- Strategies --------------------------------------------------------------

@router.get("/performance/strategies")
async def list_strategies(request: Request):
    monitor = request.app.state.monitor
    return {"strategies": [s.to_dict() for s in monitor.get_optimization_strategies()]}


@router.post("/performance/strategies")
async def add_strategy(body: StrategySubmit, request: Request):
    """Add or replace an optimization strategy. 400 on unknown enum values."""
    monitor = request.app.state.monitor
    try:
        strategy = OptimizationStrategy.from_dict(body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    monitor.add_optimization_strategy(strategy)
    return {"ok": True, "strategy": strategy.to_dict()}


@router.delete("/performance/strategies/{strategy_id}")
async def remove_strategy(strategy_id: str, request: Request):
    monitor = request.app.state.monitor
    if not monitor.remove_optimization_strategy(strategy_id):
        raise HTTPException(status_code=404, detail=f"Strategy '{strategy_id}' not found")
    return {"ok": True}


# -- Windows -----------------------------------------------------------------

@router.get("/windows")
async def list_windows(request: Request):
    windows = request.app.state.file_system.windows
    active = windows.get_active_window()
    return {
        "windows": [w.to_dict() for w in windows.get_windows()],
        "active_window": active.window_id if active else None,
    }


@router.post("/windows")
async def create_window(body: WindowCreate, request: Request):
    windows = request.app.state.file_system.windows
    try:
        window = windows.create_window(
            body.type, body.title, body.content, body.position, body.size,
        )
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "window": window.to_dict()}


@router.delete("/windows/{window_id}")
async def close_window(window_id: str, request: Request):
    windows = request.app.state.file_system.windows
    if not windows.close_window(window_id):
        raise HTTPException(status_code=404, detail=f"Window '{window_id}' not found")
    return {"ok": True}


@router.post("/windows/{window_id}/activate")
async def activate_window(window_id: str, request: Request):
    windows = request.app.state.file_system.windows
    if not windows.set_active_window(window_id):
        raise HTTPException(status_code=404, detail=f"Window '{window_id}' not found")
    return {"ok": True}


@router.get("/windows/{window_id}/history")
async def window_history(window_id: str, request: Request):
    """History survives the window being closed."""
    windows = request.app.state.file_system.windows
    return {"history": [h.to_dict() for h in windows.get_window_history(window_id)]}


# -- Ebooks & export ---------------------------------------------------------

@router.post("/ebooks/import")
async def import_ebook(body: EbookImport, request: Request):
    """Import an ebook. Unsupported formats come back as success=false."""
    fs = request.app.state.file_system
    result = await fs.import_ebook(body.path)
    return {"result": result.to_dict()}


@router.post("/export")
async def export_data(body: ExportRequest, request: Request):
    fs = request.app.state.file_system
    try:
        size = await fs.export_data(body.data, body.path, body.format)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "bytes": size}


# -- Mobile ------------------------------------------------------------------

@router.get("/mobile/status")
async def mobile_status(request: Request):
    mobile = request.app.state.mobile
    return {"mobile": mobile.get_status()}


@router.get("/mobile/shortcuts")
async def list_shortcuts(request: Request, platform: Optional[str] = None):
    mobile = request.app.state.mobile
    try:
        wanted = Platform(platform) if platform else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown platform '{platform}'")
    return {"shortcuts": [s.to_dict() for s in mobile.keyboard.get_shortcuts(wanted)]}


@router.post("/mobile/accessibility")
async def update_accessibility(body: dict[str, bool], request: Request):
    """Toggle accessibility settings (snake_case keys)."""
    mobile = request.app.state.mobile
    try:
        mobile.accessibility.update(**body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "accessibility": mobile.accessibility.to_dict()}
