from typing import Callable, Optional
from fastapi import Depends, FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.context import AccessContext, build_context_from_settings
from app.core.errors import (
    AccessDeniedError,
    ConfigurationError,
    IntegrityError,
    ObjectNotFoundError,
    StorageError,
)
from app.features.acl.routes import router as object_router
from app.features.audit.dependencies import record_break_glass
from app.features.audit.middleware import AuditTrailMiddleware
from app.features.audit.routes import router as audit_router
from app.features.consent.routes import router as consent_router
from app.features.permissions.routes import router as permission_router
from app.features.users.dependencies import get_authorization_header
from app.utils import get_logger


log = get_logger(__name__)

VERSION = "0.1.0"


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


def _report(request: Request, exc: Exception) -> None:
    access: Optional[AccessContext] = getattr(request.app.state, "access", None)
    if access is not None:
        access.error_sink.capture(exc, {"path": request.url.path, "method": request.method})


def create_app(context_factory: Callable[[], AccessContext] = build_context_from_settings) -> FastAPI:
    """
    Build the API application.

    The access context is created by `context_factory` on startup, so a
    misconfigured deployment fails before serving traffic.
    """
    log.info("Initializing server")
    app = FastAPI(
        title="Aorta Access Core",
        description="Access control, consent and tamper-evident audit for organ/tissue traceability",
        version=VERSION,
        docs_url="/docs" if config.ENABLE_DOCS else None,
        redoc_url="/redoc" if config.ENABLE_DOCS else None,
        openapi_url="/openapi.json" if config.ENABLE_DOCS else None,
        dependencies=[Depends(record_break_glass)],
    )
    limiter = Limiter(key_func=get_authorization_header, default_limits=[config.RATE_LIMIT_DEFAULT])
    app.state.limiter = limiter

    # Added first so it runs innermost: the audit entry sees the final status code
    app.add_middleware(AuditTrailMiddleware)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

    if config.ENABLE_DOCS:
        log.warning("Docs enabled")
    if config.ALLOW_ORIGIN:
        log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
        origins = [config.ALLOW_ORIGIN]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        errors = dict()
        for error in exc.errors():
            if "loc" not in error or "msg" not in error:
                continue
            key = error["loc"][-1]
            if key == "__root__":
                key = "root"
            errors[key] = error["msg"]
        log.info("Request validation error %s", errors)
        return JSONResponse(status_code=400, content=jsonable_encoder(errors))

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
        return JSONResponse({"error": "You are going too fast"}, status_code=429)

    @app.exception_handler(AccessDeniedError)
    async def access_denied_handler(_request: Request, exc: AccessDeniedError):
        reason = exc.reason
        return JSONResponse(
            status_code=reason.status_code,
            content={"error": exc.decision.detail or reason.message, "code": reason.code},
        )

    @app.exception_handler(ObjectNotFoundError)
    async def not_found_handler(_request: Request, exc: ObjectNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc), "code": "NOT_FOUND"})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        log.error(f"Storage unavailable on {request.method} {request.url.path}: {exc}")
        _report(request, exc)
        return JSONResponse(
            status_code=503,
            content={"error": "Storage unavailable", "code": "STORAGE_UNAVAILABLE"},
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        log.error(f"Integrity failure on {request.method} {request.url.path}: {exc}")
        _report(request, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Data integrity check failed", "code": "INTEGRITY_ERROR"},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        log.error(f"Configuration error on {request.method} {request.url.path}: {exc}")
        _report(request, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Service misconfigured", "code": "CONFIGURATION_ERROR"},
        )

    @app.on_event("startup")
    async def startup():
        """Build the access context and initialize the database."""
        log.info("Initializing database...")
        access = context_factory()
        await access.init_db()
        app.state.access = access
        log.info("Database initialized successfully")

    @app.on_event("shutdown")
    async def shutdown():
        access: Optional[AccessContext] = getattr(app.state, "access", None)
        if access is not None:
            await access.close()

    @app.get("/")
    async def root():
        """Root endpoint - API health check."""
        return {
            "message": "Aorta Access Core API",
            "version": VERSION,
            "status": "online",
            "docs": "/docs" if config.ENABLE_DOCS else None,
            "authentication": {
                "info": "Protected endpoints require Bearer session token in Authorization header",
                "protected_endpoints": ["/objects/*", "/audit/*", "/consents/*", "/permissions/check"],
                "public_endpoints": ["/", "/health", "/permissions/roles"],
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    # Include routers
    app.include_router(object_router, prefix="/objects", tags=["objects"])
    app.include_router(audit_router, prefix="/audit", tags=["audit"])
    app.include_router(consent_router, prefix="/consents", tags=["consents"])
    app.include_router(permission_router, prefix="/permissions", tags=["permissions"])

    return app


app = create_app()
