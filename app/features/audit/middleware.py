"""
Request audit trail.

Every mutating request leaves one audit entry, written after the handler
finishes and before the response reaches the client.
"""
import time
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.errors import StorageError
from app.features.audit.schemas import AuditEvent, Classification
from app.features.users.auth import verify_session_token
from app.utils import get_logger


log = get_logger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Column widths of audit_entries.action and audit_entries.resource
MAX_ACTION_LENGTH = 255
MAX_RESOURCE_LENGTH = 500


def _action_for(request: Request) -> str:
    # Route template, e.g. "PUT /objects/{object_ref:path}/acl"
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path
    return f"{request.method} {path}"[:MAX_ACTION_LENGTH]


def _classification_for(path: str) -> Classification:
    if "/api/" in path:
        return Classification.CONFIDENTIAL
    return Classification.INTERNAL


class AuditTrailMiddleware(BaseHTTPMiddleware):
    """
    Append an audit entry for each POST, PUT, PATCH and DELETE.

    If the entry cannot be written the handler's response is discarded and
    the client receives 503, so no mutation is acknowledged unaudited.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method not in MUTATING_METHODS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        access = getattr(request.app.state, "access", None)
        if access is None:
            log.error("Audit trail unavailable: access context not initialised")
            return _unavailable()

        actor = None
        authorization = request.headers.get("authorization", "")
        if authorization.lower().startswith("bearer "):
            actor = verify_session_token(authorization[7:], access.session_secret)

        try:
            await access.audit.append(
                AuditEvent(
                    action=_action_for(request),
                    actor_id=actor.identity if actor else "anonymous",
                    actor_role=actor.role.value if actor else None,
                    resource=request.url.path[:MAX_RESOURCE_LENGTH],
                    details={
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                        "query": dict(request.query_params),
                    },
                    client_ip=request.client.host if request.client else None,
                    user_agent=request.headers.get("user-agent"),
                    classification=_classification_for(request.url.path),
                )
            )
        except StorageError as e:
            log.error(f"Audit trail append failed for {request.method} {request.url.path}: {e}")
            access.error_sink.capture(e, {"path": request.url.path, "method": request.method})
            return _unavailable()

        return response


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "Audit log unavailable", "code": "STORAGE_UNAVAILABLE"},
    )
