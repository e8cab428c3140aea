from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition("INVALID_TOKEN", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    PERMISSION_DENIED = ErrorDefinition(
        "PERMISSION_DENIED",
        "Permission denied",
        status.HTTP_403_FORBIDDEN,
    )
    TENANT_SCOPE_REQUIRED = ErrorDefinition(
        "TENANT_SCOPE_REQUIRED",
        "Tenant scope is required",
        status.HTTP_403_FORBIDDEN,
    )
    CROSS_TENANT_ACCESS_DENIED = ErrorDefinition(
        "CROSS_TENANT_ACCESS_DENIED",
        "Cross-tenant access denied",
        status.HTTP_403_FORBIDDEN,
    )
    CASH_SESSION_NOT_FOUND = ErrorDefinition(
        "CASH_SESSION_NOT_FOUND",
        "Cash session not found",
        status.HTTP_404_NOT_FOUND,
    )
    CASH_SESSION_ALREADY_OPEN = ErrorDefinition(
        "CASH_SESSION_ALREADY_OPEN",
        "Cash session already open",
        status.HTTP_409_CONFLICT,
    )
    INVALID_SESSION_STATE = ErrorDefinition(
        "INVALID_SESSION_STATE",
        "Operation not allowed for the current cash session status",
        status.HTTP_409_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)


class CashSessionError(AppError):
    """Recoverable engine error; the caller shows it to the operator and may retry."""

    definition: ErrorDefinition

    def __init__(self, message: str, **details):
        super().__init__(self.definition, details={"message": message, **details})

    @property
    def message(self) -> str:
        return self.details["message"]


class ValidationError(CashSessionError):
    definition = ErrorCatalog.VALIDATION_ERROR


class StateError(CashSessionError):
    definition = ErrorCatalog.INVALID_SESSION_STATE


class ConflictError(CashSessionError):
    definition = ErrorCatalog.CASH_SESSION_ALREADY_OPEN


class AuthorizationError(CashSessionError):
    definition = ErrorCatalog.PERMISSION_DENIED


class NotFoundError(CashSessionError):
    definition = ErrorCatalog.CASH_SESSION_NOT_FOUND
