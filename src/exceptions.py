"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class BusinessRuleException(AppException):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------

RESOLUTION_FAILED_MESSAGE = "Authentication required"


class TenantResolutionException(UnauthorizedException):
    """A request could not be tied to an active tenant.

    Every subclass renders the same code and message so that callers cannot
    tell a missing token from an unknown or suspended tenant. The concrete
    reason stays on ``reason`` for logging only.
    """

    reason: str = "unresolved"

    def __init__(self, message: str = RESOLUTION_FAILED_MESSAGE, details: list[dict] | None = None) -> None:
        super().__init__(RESOLUTION_FAILED_MESSAGE, details)
        self.internal_message = message


class UnauthenticatedException(TenantResolutionException):
    reason = "unauthenticated"


class TenantNotFoundException(TenantResolutionException):
    reason = "tenant_not_found"


class TenantSuspendedException(TenantResolutionException):
    reason = "tenant_suspended"


class BindingFailedException(AppException):
    """The storage session could not be scoped to a tenant. Fatal to the unit of work."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, internal_message: str) -> None:
        super().__init__("An unexpected error occurred.")
        self.internal_message = internal_message


class CrossTenantViolationException(AppException):
    """A write or read targeted rows outside the bound tenant.

    ``context`` carries actor, bound tenant, attempted tenant and row for the
    log record; the rendered message never mentions them.
    """

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, internal_message: str, context: dict | None = None) -> None:
        super().__init__("Operation not permitted")
        self.internal_message = internal_message
        self.context = context or {}


class AuditImmutableException(CrossTenantViolationException):
    pass


class AuditWriteFailedException(AppException):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, internal_message: str) -> None:
        super().__init__("An unexpected error occurred.")
        self.internal_message = internal_message


class ElevationDeniedException(ForbiddenException):
    pass
