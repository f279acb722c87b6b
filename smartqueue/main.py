"""
FastAPI Application Entry Point

SmartQueue Canteen System - Queue & Token State Engine
Supports both in-memory/mock backends (development) and SQL/Gemini (production).

Endpoints:
    - POST /api/canteens: Register a canteen
    - POST /api/scan/resolve: Resolve a scanned QR payload
    - POST /api/canteens/{id}/tokens: Place an order
    - POST /api/tokens/{id}/ready|complete|cancel: Kitchen transitions
    - GET /api/canteens/{id}/stats: Dashboard statistics
    - GET /api/events: Server-sent queue-updated stream
    - GET /health: System health check

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

import redis
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from smartqueue.core.config import get_settings, setup_logging
from smartqueue.core.exceptions import (
    InvalidTransitionError,
    TokenNotFoundError,
    UnknownCanteenError,
)
from smartqueue.events import (
    ChangeSignal,
    QueueEventStream,
    RedisChangePublisher,
    RedisChangeRelay,
)
from smartqueue.menu import MENU_ITEMS
from smartqueue.models import TokenStatus
from smartqueue.schemas import (
    CanteenCreate,
    CanteenQrResponse,
    CanteenResponse,
    ErrorResponse,
    HealthResponse,
    HourlyTrafficPoint,
    InsightsResponse,
    MenuItemResponse,
    PositionResponse,
    QueueResponse,
    ScanResolveRequest,
    ScanResolveResponse,
    StatsResponse,
    TokenCreate,
    TokenResponse,
    TransitionRequest,
)
from smartqueue.services import (
    CanteenRegistry,
    QueueEngine,
    StatisticsAggregator,
    WaitTimeEstimator,
)
from smartqueue.services.predictor import get_predictor, reset_predictor
from smartqueue.store import create_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Wire the store, signal, predictor and services for this process.
    """
    config = get_settings()

    logger.info("=" * 60)
    logger.info(f"🚀 Starting {config.app_name}")
    logger.info(f"   Version: {config.app_version}")
    logger.info(f"   Environment: {config.env_mode.value}")
    logger.info(f"   Debug: {config.debug}")
    logger.info("=" * 60)

    store = create_store(config)
    await store.open()
    logger.info(f"✅ Token Store: {store.provider_name}")

    signal = ChangeSignal()
    publisher: Optional[RedisChangePublisher] = None
    if config.publish_changes:
        publisher = RedisChangePublisher(config.redis_url, config.change_channel)
        signal.subscribe(publisher)
        logger.info(f"✅ Publishing changes to Redis channel {config.change_channel}")

    predictor = get_predictor()
    estimator = WaitTimeEstimator(
        predictor,
        timeout=config.predictor_timeout_seconds,
        default_prep_minutes=config.default_prep_minutes,
    )
    logger.info(f"✅ Predictor: {estimator.provider_name}")

    refresh_dispatcher = None
    if config.use_celery_refinement:
        if config.use_sql_store:
            from smartqueue.tasks import refine_token_estimate
            refresh_dispatcher = refine_token_estimate.delay
            logger.info("✅ Estimate refinement: Celery worker")
        else:
            logger.warning("⚠️ Celery refinement needs the SQL store; refining in-process")

    relay: Optional[RedisChangeRelay] = None
    if config.publish_changes or refresh_dispatcher is not None:
        relay = RedisChangeRelay(config.redis_url, config.change_channel, signal, publisher)
        relay.start()
        logger.info("✅ Change relay started")

    engine = QueueEngine(
        store,
        signal,
        estimator,
        settings=config,
        refresh_dispatcher=refresh_dispatcher,
    )

    app.state.settings = config
    app.state.store = store
    app.state.signal = signal
    app.state.estimator = estimator
    app.state.registry = CanteenRegistry(store, signal, base_url=config.app_base_url)
    app.state.engine = engine
    app.state.stats = StatisticsAggregator(
        store,
        business_hours=config.business_hours,
        default_peak_window=config.default_peak_window,
    )

    if config.use_real_services:
        missing = config.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    if relay is not None:
        await relay.close()
    await engine.close()
    await signal.drain()
    if publisher is not None:
        await publisher.close()
    if predictor is not None:
        await predictor.close()
        reset_predictor()
    await store.close()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Walk-up canteen queue with sequential tokens, kitchen transitions, "
        "wait-time estimates and live dashboard statistics."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_registry(request: Request) -> CanteenRegistry:
    return request.app.state.registry


def get_engine(request: Request) -> QueueEngine:
    return request.app.state.engine


def get_stats(request: Request) -> StatisticsAggregator:
    return request.app.state.stats


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root(canteenId: Optional[str] = None) -> dict[str, Any]:
    """API root with navigation links. QR codes land here with ``canteenId``."""
    body: dict[str, Any] = {
        "message": f"🍛 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }
    if canteenId:
        body["canteen_id"] = canteenId
        body["order_url"] = f"/api/canteens/{canteenId}/tokens"
    return body


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(request: Request) -> HealthResponse:
    """Verify all system components are operational."""
    config = request.app.state.settings

    # Check store
    store_status = "healthy"
    try:
        await request.app.state.store.health_check()
    except Exception as e:
        store_status = f"unhealthy: {str(e)}"
        logger.error(f"Store health check failed: {e}")

    # Check Redis (only when something depends on it)
    redis_status = "not configured"
    if config.publish_changes or config.use_celery_refinement:
        redis_status = "healthy"
        try:
            r = redis.Redis.from_url(config.redis_url, socket_timeout=2)
            r.ping()
            r.close()
        except Exception as e:
            redis_status = f"unhealthy: {str(e)}"
            logger.error(f"Redis health check failed: {e}")

    # Check predictor
    estimator: WaitTimeEstimator = request.app.state.estimator
    predictor_status = "not configured"
    if estimator.predictor is not None:
        healthy = await estimator.predictor.health_check()
        predictor_status = "healthy" if healthy else "unhealthy"

    statuses = [store_status, redis_status, predictor_status]
    overall = "operational" if all(
        s in ("healthy", "not configured") for s in statuses
    ) else "degraded"

    return HealthResponse(
        status=overall,
        store=store_status,
        redis=redis_status,
        predictor=predictor_status,
        timestamp=datetime.now(),
    )


@app.get("/api/menu", response_model=list[MenuItemResponse], tags=["Menu"])
async def list_menu() -> list[MenuItemResponse]:
    return [MenuItemResponse(**item.to_dict()) for item in MENU_ITEMS]


# =============================================================================
# CANTEEN ENDPOINTS
# =============================================================================

@app.post(
    "/api/canteens",
    response_model=CanteenResponse,
    status_code=201,
    responses={422: {"model": ErrorResponse}},
    tags=["Canteens"],
    summary="Register Canteen",
)
async def register_canteen(
    data: CanteenCreate,
    registry: CanteenRegistry = Depends(get_registry),
) -> CanteenResponse:
    canteen = await registry.register(data.name, data.campus)
    return CanteenResponse.model_validate(canteen)


@app.get("/api/canteens", response_model=list[CanteenResponse], tags=["Canteens"])
async def list_canteens(
    registry: CanteenRegistry = Depends(get_registry),
) -> list[CanteenResponse]:
    return [CanteenResponse.model_validate(c) for c in await registry.list_all()]


@app.get(
    "/api/canteens/{canteen_id}",
    response_model=CanteenResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Canteens"],
)
async def get_canteen(
    canteen_id: str,
    registry: CanteenRegistry = Depends(get_registry),
) -> CanteenResponse:
    return CanteenResponse.model_validate(await registry.require(canteen_id))


@app.get(
    "/api/canteens/{canteen_id}/qr",
    response_model=CanteenQrResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Canteens"],
    summary="QR Code Payload",
)
async def get_canteen_qr(
    canteen_id: str,
    registry: CanteenRegistry = Depends(get_registry),
) -> CanteenQrResponse:
    canteen = await registry.require(canteen_id)
    return CanteenQrResponse(canteen_id=canteen.id, payload=registry.scan_payload(canteen.id))


@app.post(
    "/api/scan/resolve",
    response_model=ScanResolveResponse,
    tags=["Canteens"],
    summary="Resolve Scanned QR Payload",
)
async def resolve_scan(
    data: ScanResolveRequest,
    registry: CanteenRegistry = Depends(get_registry),
) -> ScanResolveResponse:
    canteen_id = await registry.resolve_scan_payload(data.payload)
    return ScanResolveResponse(resolved=canteen_id is not None, canteen_id=canteen_id)


# =============================================================================
# TOKEN ENDPOINTS
# =============================================================================

@app.post(
    "/api/canteens/{canteen_id}/tokens",
    response_model=TokenResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}},
    tags=["Tokens"],
    summary="Place Order",
)
async def create_token(
    canteen_id: str,
    data: TokenCreate,
    engine: QueueEngine = Depends(get_engine),
) -> TokenResponse:
    """
    Place an order and receive a token.

    The returned estimate is a placeholder; the refined estimate follows
    on the next queue-updated event.
    """
    token = await engine.create_token(canteen_id, data.food_item)
    return TokenResponse.model_validate(token)


@app.get(
    "/api/canteens/{canteen_id}/queue",
    response_model=QueueResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Tokens"],
)
async def get_queue(
    canteen_id: str,
    include_ready: bool = Query(True, description="Include READY tokens (kitchen view)"),
    registry: CanteenRegistry = Depends(get_registry),
    engine: QueueEngine = Depends(get_engine),
) -> QueueResponse:
    await registry.require(canteen_id)
    if include_ready:
        tokens = await engine.active_queue(canteen_id)
    else:
        tokens = await engine.waiting_queue(canteen_id)

    return QueueResponse(
        canteen_id=canteen_id,
        waiting=sum(1 for t in tokens if t.status == TokenStatus.WAITING),
        tokens=[TokenResponse.model_validate(t) for t in tokens],
    )


@app.get(
    "/api/tokens/{token_id}",
    response_model=TokenResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Tokens"],
)
async def get_token(
    token_id: str,
    engine: QueueEngine = Depends(get_engine),
) -> TokenResponse:
    return TokenResponse.model_validate(await engine.get_token(token_id))


@app.get(
    "/api/canteens/{canteen_id}/tokens/{token_id}/position",
    response_model=PositionResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Tokens"],
)
async def get_position(
    canteen_id: str,
    token_id: str,
    registry: CanteenRegistry = Depends(get_registry),
    engine: QueueEngine = Depends(get_engine),
) -> PositionResponse:
    """1-based position among waiting tokens; 0 once the token is no longer waiting."""
    await registry.require(canteen_id)
    token = await engine.store.get(token_id)
    return PositionResponse(
        token_id=token_id,
        position=await engine.queue_position(canteen_id, token_id),
        status=token.status if token else None,
    )


@app.post(
    "/api/tokens/{token_id}/ready",
    response_model=TokenResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Kitchen"],
)
async def mark_ready(
    token_id: str,
    engine: QueueEngine = Depends(get_engine),
) -> TokenResponse:
    return TokenResponse.model_validate(await engine.mark_ready(token_id))


@app.post(
    "/api/tokens/{token_id}/complete",
    response_model=TokenResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Kitchen"],
)
async def complete_order(
    token_id: str,
    data: Optional[TransitionRequest] = None,
    engine: QueueEngine = Depends(get_engine),
) -> TokenResponse:
    reasoning = data.reasoning if data else None
    return TokenResponse.model_validate(await engine.complete_order(token_id, reasoning))


@app.post(
    "/api/tokens/{token_id}/cancel",
    response_model=TokenResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Kitchen"],
)
async def cancel_order(
    token_id: str,
    data: Optional[TransitionRequest] = None,
    engine: QueueEngine = Depends(get_engine),
) -> TokenResponse:
    reasoning = data.reasoning if data else None
    return TokenResponse.model_validate(await engine.cancel_order(token_id, reasoning))


# =============================================================================
# DASHBOARD ENDPOINTS
# =============================================================================

@app.get(
    "/api/canteens/{canteen_id}/stats",
    response_model=StatsResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Dashboard"],
)
async def canteen_stats(
    canteen_id: str,
    registry: CanteenRegistry = Depends(get_registry),
    stats: StatisticsAggregator = Depends(get_stats),
) -> StatsResponse:
    await registry.require(canteen_id)
    return StatsResponse(**(await stats.get_stats(canteen_id)).to_dict())


@app.get(
    "/api/canteens/{canteen_id}/traffic",
    response_model=list[HourlyTrafficPoint],
    responses={404: {"model": ErrorResponse}},
    tags=["Dashboard"],
)
async def canteen_traffic(
    canteen_id: str,
    registry: CanteenRegistry = Depends(get_registry),
    stats: StatisticsAggregator = Depends(get_stats),
) -> list[HourlyTrafficPoint]:
    await registry.require(canteen_id)
    return [
        HourlyTrafficPoint(hour=p.hour, label=p.label, orders=p.orders)
        for p in await stats.hourly_traffic(canteen_id)
    ]


@app.get(
    "/api/canteens/{canteen_id}/insights",
    response_model=InsightsResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Dashboard"],
)
async def canteen_insights(
    canteen_id: str,
    request: Request,
    registry: CanteenRegistry = Depends(get_registry),
    stats: StatisticsAggregator = Depends(get_stats),
) -> InsightsResponse:
    await registry.require(canteen_id)
    estimator: WaitTimeEstimator = request.app.state.estimator
    snapshot = (await stats.get_stats(canteen_id)).snapshot()
    return InsightsResponse(
        provider=estimator.provider_name,
        text=await estimator.summarize(snapshot),
    )


# =============================================================================
# LIVE UPDATES
# =============================================================================

async def _sse_generator(request: Request, stream: QueueEventStream) -> AsyncIterator[str]:
    """Relay queue-updated events; clients re-fetch on each one."""
    try:
        yield "retry: 3000\n\n"
        while True:
            if await request.is_disconnected():
                break
            event = await stream.next_event(timeout=SSE_KEEPALIVE_SECONDS)
            if event is None:
                yield ": keepalive\n\n"
            else:
                yield f"event: {event}\ndata: {{}}\n\n"
    finally:
        stream.close()


@app.get("/api/events", tags=["Live"], summary="Queue Update Stream")
async def queue_events(request: Request) -> StreamingResponse:
    stream = QueueEventStream(request.app.state.signal)
    return StreamingResponse(
        _sse_generator(request, stream),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=str(exc)).model_dump(),
    )


@app.exception_handler(UnknownCanteenError)
async def unknown_canteen_handler(request: Request, exc: UnknownCanteenError) -> JSONResponse:
    return _error(404, "Unknown Canteen", exc)


@app.exception_handler(TokenNotFoundError)
async def token_not_found_handler(request: Request, exc: TokenNotFoundError) -> JSONResponse:
    return _error(404, "Token Not Found", exc)


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    logger.info(f"Rejected transition: {exc}")
    return _error(409, "Invalid Transition", exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(400, "Bad Request", exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "smartqueue.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
