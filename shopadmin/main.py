"""
Shop Admin Inventory API

- Inventory reads, reservations and adjustments under /api/inventory
- Reservation expiry sweeper with heartbeat metrics
- Health endpoint with DB ping, cache backend, ledger stats and sweeper heartbeat
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from shopadmin.api.routes import inventory
from shopadmin.core.cache import build_inventory_cache
from shopadmin.core.config import settings
from shopadmin.core.database import ping_database
from shopadmin.core.error_handler import shopadmin_error_handler
from shopadmin.core.exceptions import ShopAdminError
from shopadmin.core.feature_flags import variant_label_flag
from shopadmin.core.rate_limit import limiter, rate_limit_exceeded_handler
from shopadmin.core.redis_client import close_redis, redis_health
from shopadmin.services import stock_cleanup
from shopadmin.services.inventory_service import InventoryService

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Background task references
_sweeper_task: Optional[asyncio.Task] = None
_sweeper_heartbeat: dict = {
    "last_run": None,
    "last_success": None,
    "records_processed": 0,
    "errors": 0,
}


# ============== RESERVATION EXPIRY SWEEPER ==============

async def run_reservation_sweep():
    """Run one expiry sweep and update heartbeat metrics."""
    _sweeper_heartbeat["last_run"] = datetime.now(timezone.utc).isoformat()

    stats = await stock_cleanup.release_expired_reservations()
    if stats.get("errors"):
        _sweeper_heartbeat["errors"] += stats["errors"]
        return

    _sweeper_heartbeat["last_success"] = datetime.now(timezone.utc).isoformat()
    _sweeper_heartbeat["records_processed"] += stats.get("reservations_expired", 0)


async def reservation_sweep_scheduler():
    """Run the expiry sweep at the configured interval until cancelled."""
    interval_seconds = settings.RESERVATION_SWEEP_INTERVAL_MINUTES * 60
    logger.info(
        f"Reservation sweeper started (interval: {settings.RESERVATION_SWEEP_INTERVAL_MINUTES} minutes)"
    )

    while True:
        try:
            await run_reservation_sweep()
        except Exception as e:
            _sweeper_heartbeat["errors"] += 1
            logger.error(f"Reservation sweeper error: {e}")

        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the inventory service and start the expiry sweeper."""
    global _sweeper_task

    cache = await build_inventory_cache()
    service = InventoryService(cache=cache, flag_gate=variant_label_flag)
    app.state.inventory_service = service
    stock_cleanup.configure(service)

    logger.info(
        f"Inventory service ready: reservations={'ENABLED' if service.reservations_enabled else 'DISABLED'} "
        f"cache={cache.backend_name} addressing={variant_label_flag.addressing_mode().value}"
    )

    if settings.RESERVATION_SWEEP_ENABLED and service.reservations_enabled:
        _sweeper_task = asyncio.create_task(reservation_sweep_scheduler())
        logger.info("Reservation sweeper ENABLED")
    else:
        logger.info("Reservation sweeper DISABLED via config")

    yield

    if _sweeper_task and not _sweeper_task.done():
        _sweeper_task.cancel()
        try:
            await _sweeper_task
        except asyncio.CancelledError:
            logger.info("Reservation sweeper cancelled")
    _sweeper_task = None

    await close_redis()


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    description="""
## Inventory stock resolution

Variants are addressed by legacy variant id or, with `USE_VARIANT_LABEL`
enabled, by human-readable label. Reads are cached per addressing shape;
every mutation invalidates both shapes.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check and monitoring endpoints"},
        {"name": "Inventory", "description": "Availability, reservations and adjustments"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(ShopAdminError, shopadmin_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(inventory.router, prefix="/api/inventory", tags=["Inventory"])


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with DB ping, cache backend, reservation ledger stats and
    sweeper heartbeat.
    Returns 503 if the database is unreachable.
    """
    service = getattr(app.state, "inventory_service", None)
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": service.cache.get_stats() if service and service.cache else {"backend": "none"},
        "redis": await redis_health(),
        "reservations_enabled": bool(service and service.reservations_enabled),
        "reservation_sweeper": _sweeper_heartbeat,
        "variant_addressing": variant_label_flag.addressing_mode().value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        await ping_database()
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}: {str(e)[:100]}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    if service and service.ledger:
        try:
            health_status["reservations"] = await service.ledger.get_stats()
        except Exception as e:
            logger.warning(f"[HEALTH] Reservation stats unavailable: {e}")
            health_status["reservations"] = {"error": type(e).__name__}
            health_status["status"] = "degraded"

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shopadmin.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
