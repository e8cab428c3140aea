import uuid

from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.cashdesk.core.context import TRACE_HEADER, RequestContext
from app.cashdesk.core.security import decode_token


def _bearer_claims(request: Request) -> dict:
    auth_header = request.headers.get("Authorization") or ""
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return {}
    try:
        return decode_token(token)
    except JWTError:
        # rejected later by the route dependency, logged here as anonymous
        return {}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Stamps every request with a trace id and the caller's establishment scope."""

    async def dispatch(self, request: Request, call_next):
        claims = _bearer_claims(request)
        context = RequestContext(
            trace_id=request.headers.get(TRACE_HEADER) or str(uuid.uuid4()),
            actor_id=claims.get("sub"),
            establishment_id=claims.get("tenant_id"),
            role=claims.get("role"),
        )
        request.state.context = context
        request.state.trace_id = context.trace_id

        response = await call_next(request)
        response.headers[TRACE_HEADER] = context.trace_id
        return response
