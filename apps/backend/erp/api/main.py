"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Build the FastAPI application (create_app) with metadata
  - Configure middleware (body limit, request context, CORS)
  - Mount auth routes and the procedure transport under /v1
  - Expose health, readiness and Prometheus metrics endpoints

Collaborators:
  - FastAPI: ASGI web framework
  - RequestContextMiddleware / BodyLimitMiddleware (crosscutting.middleware)
  - api.rpc_routes / api.auth_routes
  - infrastructure.db.pool: pool lifecycle (skipped in test env)

Notes:
  - Middleware order matters: BodyLimit → RequestContext → CORS → routes
  - /healthz and /readyz follow Kubernetes health check conventions
  - /metrics can require setup:view (METRICS_REQUIRE_AUTH=true)
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from ..application.registry import ProcedureRegistry
from ..container import get_registry, get_store
from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import forbidden, unauthenticated
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import BodyLimitMiddleware, RequestContextMiddleware
from ..domain.permissions import Permission
from ..domain.repositories import Store
from ..identity.principal import Principal
from ..infrastructure.db.pool import close_pool, init_pool
from .auth_routes import get_principal
from .auth_routes import router as auth_router
from .exception_handlers import register_exception_handlers
from .rpc_routes import router as rpc_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Settings are validated on first access."""
    settings = get_settings()
    uses_pool = not settings.is_test()

    if uses_pool:
        init_pool(
            database_url=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    try:
        logger.info(
            "ERP API starting up",
            extra={
                "app_env": settings.app_env,
                "procedures": len(get_registry()),
                "db_pool_min": settings.db_pool_min_size,
                "db_pool_max": settings.db_pool_max_size,
            },
        )
        yield
    finally:
        if uses_pool:
            close_pool()
        logger.info("ERP API shutting down")


def _store_status(store: Store) -> str:
    try:
        with store.transaction():
            pass
        return "connected"
    except Exception as e:
        logger.warning("Health check: store unavailable", extra={"error": str(e)})
        return "disconnected"


def require_metrics_access(
    principal: Principal | None = Depends(get_principal),
) -> None:
    if not get_settings().metrics_require_auth:
        return
    if principal is None:
        raise unauthenticated()
    if not principal.has_permission(Permission.SETUP_VIEW):
        raise forbidden()


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="ERP API",
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "rpc", "description": "Permission-gated procedures"},
            {"name": "auth", "description": "User authentication (JWT)"},
        ],
    )

    # Middleware order (bottom = first to execute)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-Id"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(BodyLimitMiddleware, max_bytes=settings.max_body_bytes)

    app.include_router(rpc_router, prefix="/v1")
    app.include_router(auth_router)
    register_exception_handlers(app)

    @app.get("/healthz")
    def healthz(request: Request, store: Store = Depends(get_store)):
        """Liveness + store connectivity."""
        db_status = _store_status(store)
        return {
            "ok": db_status == "connected",
            "db": db_status,
            "request_id": getattr(request.state, "request_id", None),
        }

    @app.get("/readyz")
    def readyz(
        request: Request,
        store: Store = Depends(get_store),
        registry: ProcedureRegistry = Depends(get_registry),
    ):
        """Readiness: store reachable and procedures registered."""
        db_status = _store_status(store)
        procedures = len(registry)
        return {
            "ok": db_status == "connected" and procedures > 0,
            "db": db_status,
            "procedures": procedures,
            "request_id": getattr(request.state, "request_id", None),
        }

    @app.get("/metrics")
    def metrics(_auth: None = Depends(require_metrics_access)):
        """Prometheus text format metrics."""
        body, content_type = get_metrics_response()
        return Response(content=body, media_type=content_type)

    return app


app = create_app()
