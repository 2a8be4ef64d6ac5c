"""FastAPI application factory."""

from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from tiered_router.logging import get_logger
from tiered_router.router import TieredRouter

logger = get_logger(__name__)

VERSION = "0.1.0"


class RouteRequest(BaseModel):
    """Request model for the route endpoint."""

    text: str = Field(..., max_length=20000)


class RouteResponse(BaseModel):
    """Response model for the route endpoint."""

    tier: str
    intent: str
    confidence: float
    params: dict[str, str] = {}
    reason: str
    model: Optional[str] = None
    latency_ms: int
    source: str


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    version: str
    components: dict[str, str]


class RefreshResponse(BaseModel):
    signatures: int


def _router(request: Request) -> TieredRouter:
    return request.app.state.router


def _configure_lifecycle_events(app: FastAPI) -> None:
    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info("Starting up tiered router API")
        app.state.router.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        logger.info("Shutting down tiered router API")
        await app.state.router.close()


def _configure_route_endpoint(app: FastAPI) -> None:
    @app.post("/route", response_model=RouteResponse)
    async def route_message(body: RouteRequest, request: Request) -> RouteResponse:
        try:
            decision = await _router(request).route(body.text)
        except Exception as e:
            logger.error(f"Error routing message: {e}")
            raise HTTPException(status_code=500, detail=f"Error routing message: {e}") from e
        return RouteResponse(**decision.to_dict())


def _configure_health_endpoint(app: FastAPI) -> None:
    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        router = _router(request)
        available = await router.availability.is_available()
        components = {
            "router": "enabled" if router.settings.ROUTER_ENABLED else "disabled",
            "backend": "available" if available else "unavailable",
            "model": router.settings.OLLAMA_MODEL,
        }
        # API tier still works without the local backend
        status = "healthy" if available else "degraded"
        return HealthResponse(status=status, version=VERSION, components=components)


def _configure_stats_endpoint(app: FastAPI) -> None:
    @app.get("/stats")
    async def get_stats(request: Request) -> dict[str, Any]:
        return _router(request).stats()


def _configure_signatures_endpoint(app: FastAPI) -> None:
    @app.post("/signatures/refresh", response_model=RefreshResponse)
    async def refresh_signatures(request: Request) -> RefreshResponse:
        registry = _router(request).registry
        registry.invalidate()
        return RefreshResponse(signatures=len(registry.snapshot()))


def create_app(router: Optional[TieredRouter] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        router: Router instance to serve; a default one is built when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Tiered Router",
        description="Routes each message to the deterministic, local or API tier",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.router = router if router is not None else TieredRouter()

    _configure_lifecycle_events(app)
    _configure_route_endpoint(app)
    _configure_health_endpoint(app)
    _configure_stats_endpoint(app)
    _configure_signatures_endpoint(app)

    return app
