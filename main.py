import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import psutil
import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from config.app_config import AppConfig
from memwatch.cache_manager import CacheManager
from memwatch.dependencies import (
    cleanup_services,
    get_cache_manager,
    get_config_cached,
    get_memory_optimizer,
    get_performance_monitor,
)
from memwatch.error_messages import get_user_message
from memwatch.exceptions import MemwatchError, ValidationError
from memwatch.logging_setup import setup_app_logging
from memwatch.memory_optimizer import MemoryOptimizer
from memwatch.performance_monitor import PerformanceMiddleware, RequestPerformanceMonitor, empty_aggregated_stats
from memwatch.polling import ReportPoller

# --- Global Configuration
app_config = get_config_cached()
logging.basicConfig(level=app_config.log_level.upper(), format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

TIME_RANGES = {
    "1h": 1,
    "24h": 24,
    "7d": 168,
    "30d": 720,
}

# --- Lifespan manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_app_logging(level=app_config.log_level, log_dir=app_config.logs_dir)
    logger.info("Memwatch Server Starting...")

    # Initialize services via DI - triggers singleton creation
    optimizer = get_memory_optimizer()
    get_cache_manager()
    get_performance_monitor()

    if app_config.monitoring_enabled:
        await optimizer.start(app_config.sampling_interval)
    logger.info("Services initialized successfully.")
    yield

    # --- Shutdown logic
    logger.info("Shutting down Memwatch...")
    await optimizer.stop()
    cleanup_services()

# --- FastAPI app setup
app = FastAPI(title="Memwatch Performance Monitor", version="1.0.0", lifespan=lifespan)
app.add_middleware(PerformanceMiddleware, monitor_provider=get_performance_monitor)

# Rate limiting configuration
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"error": get_user_message("rate_limited")})

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": exc.message, "context": exc.context})

@app.exception_handler(MemwatchError)
async def memwatch_error_handler(request: Request, exc: MemwatchError):
    logger.error(f"Memwatch error on {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"error": exc.message, "context": exc.context})

@app.exception_handler(MemoryError)
@app.exception_handler(RecursionError)
async def memory_error_handler(request: Request, exc: Exception):
    try:
        get_memory_optimizer().handle_memory_error(exc)
    except Exception as e:
        logger.error(f"Emergency cleanup after {type(exc).__name__} failed: {e}")
    return JSONResponse(status_code=503, content={"error": get_user_message("memory_pressure")})

# --- Admin guard
def require_admin(
    x_admin_token: Optional[str] = Header(None),
    config: AppConfig = Depends(get_config_cached)
):
    if config.admin_token and x_admin_token != config.admin_token:
        raise HTTPException(status_code=401, detail=get_user_message("unauthorized"))

# --- Section gathering with fallback shapes
def empty_memory_report() -> Dict[str, Any]:
    return {
        "current": None,
        "history": [],
        "leaks": [],
        "components": [],
        "recommendations": [],
        "summary": {"status": "unknown", "total_leaks": 0, "risk_score": 0, "efficiency": "unknown"},
        "registry_counts": {},
    }

def empty_cache_performance() -> Dict[str, Any]:
    return {"hit_rate": 0, "is_cache_available": False, "total_requests": 0, "recommendations": []}

def empty_cache_stats() -> Dict[str, Any]:
    return {
        "entries": 0, "max_entries": 0, "hits": 0, "misses": 0, "sets": 0,
        "evictions": 0, "expirations": 0, "hit_rate": 0.0, "backend": "unavailable",
    }

def gather_section(name: str, producer: Callable[[], Any], fallback: Callable[[], Any], errors: List[Dict[str, str]]):
    try:
        return producer()
    except Exception as e:
        logger.error(f"Performance section '{name}' failed: {e}", exc_info=True)
        errors.append({"section": name, "error": str(e)})
        return fallback()

def get_system_info() -> Dict[str, Any]:
    memory = psutil.virtual_memory()
    return {
        "memory_total_mb": memory.total / 1024 / 1024,
        "memory_available_mb": memory.available / 1024 / 1024,
        "memory_percent": memory.percent,
        "cpu_count": psutil.cpu_count(),
        "cpu_percent": psutil.cpu_percent(interval=None),
    }

# --- API endpoints
@app.get("/health", status_code=200)
async def health_check():
    return {"status": "ok"}

@app.get("/api/admin/performance", dependencies=[Depends(require_admin)])
async def admin_performance(
    time_range: str = Query("24h", alias="timeRange"),
    optimizer: MemoryOptimizer = Depends(get_memory_optimizer),
    monitor: RequestPerformanceMonitor = Depends(get_performance_monitor),
    cache: CacheManager = Depends(get_cache_manager),
    config: AppConfig = Depends(get_config_cached)
):
    """Memory report, request statistics and cache statistics in one payload"""
    if time_range not in TIME_RANGES:
        raise ValidationError(get_user_message("invalid_time_range", value=time_range), context={"timeRange": time_range})
    hours = TIME_RANGES[time_range]
    errors: List[Dict[str, str]] = []

    payload = {
        "time_range": time_range,
        "memory": gather_section(
            "memory", lambda: optimizer.get_report().to_dict(max_leaks=config.max_leaks_displayed),
            empty_memory_report, errors),
        "requests": gather_section(
            "requests", lambda: monitor.get_aggregated_stats(hours), empty_aggregated_stats, errors),
        "cache_performance": gather_section(
            "cache_performance", monitor.get_cache_performance, empty_cache_performance, errors),
        "slow_endpoints": gather_section("slow_endpoints", monitor.get_slow_endpoints, list, errors),
        "cache_stats": gather_section("cache_stats", cache.get_stats, empty_cache_stats, errors),
        "system": gather_section("system", get_system_info, dict, errors),
        "generated_at": time.time(),
        "errors": errors,
    }
    return payload

@app.get("/api/admin/memory/report", dependencies=[Depends(require_admin)])
async def admin_memory_report(optimizer: MemoryOptimizer = Depends(get_memory_optimizer)):
    try:
        return optimizer.get_report().to_dict()
    except Exception as e:
        logger.error(f"Memory report failed: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": get_user_message("report_failed")})

class OptimizeRequest(BaseModel):
    action: str

@app.post("/api/admin/performance/optimize", dependencies=[Depends(require_admin)])
@limiter.limit("10/minute")
async def admin_optimize(
    request: Request,
    body: OptimizeRequest,
    optimizer: MemoryOptimizer = Depends(get_memory_optimizer),
    cache: CacheManager = Depends(get_cache_manager)
):
    """Trigger an optimization action on demand"""
    action = body.action
    logger.info(f"Admin optimization requested: {action}")

    if action == "run_memory_check":
        result = optimizer.tick()
        details = {
            "sampled": result.sample is not None,
            "findings": len(result.findings),
            "actions": [{"name": a.name, "succeeded": a.succeeded} for a in result.actions],
        }
    elif action == "force_collection":
        details = {"method": optimizer.policy.force_garbage_collection()}
    elif action == "clear_cache":
        details = {"cleared": cache.clear()}
    elif action == "purge_expired_cache":
        details = {
            "http_cache_expired": cache.cleanup_expired(),
            "tracked_cache_expired": optimizer.policy.cleanup_expired_cache(),
        }
    else:
        raise ValidationError(get_user_message("unknown_action", action=action), context={"action": action})

    return {"success": True, "action": action, "details": details}

@app.websocket("/ws/memory")
async def memory_websocket(websocket: WebSocket):
    """
    Live memory dashboard feed - pushes the report on the poll interval and
    forwards memory warning broadcasts as they happen
    """
    config = get_config_cached()
    if config.admin_token and websocket.query_params.get("token") != config.admin_token:
        await websocket.close(code=1008, reason=get_user_message("unauthorized"))
        return

    await websocket.accept()
    optimizer = get_memory_optimizer()
    loop = asyncio.get_running_loop()
    warnings: asyncio.Queue = asyncio.Queue()

    def on_memory_warning(sample):
        message = {"type": "memory_warning", "current": sample.to_dict() if sample else None}
        # Ticks may run in a worker thread
        loop.call_soon_threadsafe(warnings.put_nowait, message)

    async def send_report(report):
        await websocket.send_json({
            "type": "memory_report",
            "report": report.to_dict(max_leaks=config.max_leaks_displayed),
        })

    async def forward_warnings():
        while True:
            message = await warnings.get()
            await websocket.send_json(message)

    unsubscribe = optimizer.notifications.subscribe(on_memory_warning)
    poller = ReportPoller(optimizer.get_report, send_report, interval=config.report_poll_interval)
    poller.start()
    forward_task = asyncio.create_task(forward_warnings())
    logger.info("Memory dashboard WebSocket connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": get_user_message("invalid_message")})
                continue
            action = message.get("action")

            if action == "ping":
                await websocket.send_json({"type": "pong"})
            elif action == "report":
                await poller.poll_once()
            else:
                await websocket.send_json({"type": "error", "message": get_user_message("unknown_action", action=action)})
    except WebSocketDisconnect:
        logger.info("Memory dashboard WebSocket disconnected")
    finally:
        unsubscribe()
        await poller.stop()
        forward_task.cancel()
        try:
            await forward_task
        except asyncio.CancelledError:
            pass

if __name__ == "__main__":
    uvicorn.run(
        app="main:app",
        host=app_config.host,
        port=app_config.port,
        reload=False,
        log_level=app_config.log_level.lower()
    )
