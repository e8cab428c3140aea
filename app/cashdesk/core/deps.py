from uuid import UUID

from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError as PydanticValidationError

from app.cashdesk.core.context import RequestContext
from app.cashdesk.core.error_catalog import AppError, ErrorCatalog
from app.cashdesk.core.security import TokenData, decode_token, oauth2_scheme
from app.cashdesk.services.actors import Actor, resolve_actor


def get_current_token_data(token: str | None = Depends(oauth2_scheme)) -> TokenData:
    if not token:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, PydanticValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def require_request_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    context = getattr(request.state, "context", None)
    if context is None or context.actor_id != token_data.sub:
        context = RequestContext(
            trace_id=getattr(request.state, "trace_id", ""),
            actor_id=token_data.sub,
            establishment_id=token_data.tenant_id,
            role=token_data.role,
        )
        request.state.context = context
    return context


def get_current_actor(token_data: TokenData = Depends(get_current_token_data)) -> Actor:
    return resolve_actor(actor_id=token_data.sub, role=token_data.role, username=token_data.username)


def resolve_establishment_id(token_data: TokenData, establishment_id: str | None = None) -> str:
    if not token_data.tenant_id:
        raise AppError(ErrorCatalog.TENANT_SCOPE_REQUIRED)
    if establishment_id and establishment_id != token_data.tenant_id:
        raise AppError(ErrorCatalog.CROSS_TENANT_ACCESS_DENIED)
    try:
        return str(UUID(token_data.tenant_id))
    except ValueError as exc:
        raise AppError(ErrorCatalog.TENANT_SCOPE_REQUIRED) from exc


__all__ = [
    "get_current_token_data",
    "get_current_actor",
    "require_request_context",
    "resolve_establishment_id",
]
