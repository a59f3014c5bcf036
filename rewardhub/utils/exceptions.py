"""
Domain exceptions for RewardHub.

Each carries a code and an HTTP status; the app-level handler renders them
with utils.errors.error_from_exception, so services raise and views stay
free of response plumbing.
"""
from .errors import ErrorCode


class RewardHubError(Exception):
    """Base exception for all RewardHub business logic errors."""

    status_code = 400

    def __init__(self, message: str, code=ErrorCode.INVALID_REQUEST):
        self.message = message
        self.code = code.value if isinstance(code, ErrorCode) else code
        super().__init__(message)


class NotFoundError(RewardHubError):
    """Tenant-scoped lookup missed. Code is <RESOURCE>_NOT_FOUND, e.g. VOUCHER_NOT_FOUND."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_NOT_FOUND")


class ValidationError(RewardHubError):
    """Bad request field. Code is INVALID_<FIELD>, or VALIDATION_ERROR without a field."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else ErrorCode.VALIDATION_ERROR
        super().__init__(message, code)


class LimitExceededError(RewardHubError):
    """Enrollment cap or allocation quantity reached."""

    status_code = 409

    def __init__(self, resource: str, limit: int, current: int):
        self.limit = limit
        self.current = current
        message = f"{resource} limit exceeded. Limit: {limit}, Current: {current}"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_LIMIT_EXCEEDED")


class StateConflictError(RewardHubError):
    """Enrollment, voucher or installation is in the wrong state for the operation."""

    status_code = 409

    def __init__(self, message: str, code=ErrorCode.STATE_CONFLICT):
        super().__init__(message, code)


class InsufficientPointsError(StateConflictError):
    """Points balance below the amount being spent."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient points: {available} available, {requested} requested",
            ErrorCode.INSUFFICIENT_POINTS,
        )


class DuplicateTransactionError(StateConflictError):
    """A points transaction already exists for this order reference."""

    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(
            f"Points already recorded for order {reference_id}",
            ErrorCode.DUPLICATE_TRANSACTION,
        )


class TokenInvalidError(RewardHubError):
    """Redemption token is unknown, already used, or expired."""

    REASONS = {
        'not_found': ("Invalid or unknown reward link", ErrorCode.TOKEN_NOT_FOUND, 404),
        'used': ("This reward has already been redeemed", ErrorCode.TOKEN_USED, 410),
        'expired': ("This reward link has expired", ErrorCode.TOKEN_EXPIRED, 410),
    }

    def __init__(self, reason: str):
        self.reason = reason
        message, code, status_code = self.REASONS.get(
            reason, ("Invalid reward link", ErrorCode.TOKEN_INVALID, 410)
        )
        super().__init__(message, code)
        self.status_code = status_code


class OAuthStateError(RewardHubError):
    """OAuth state missing its signature, tampered with, or issued for another shop."""

    def __init__(self, message: str = "Invalid state parameter"):
        super().__init__(message, ErrorCode.INVALID_OAUTH_STATE)


class ShopifyError(RewardHubError):
    """Shopify Admin API or token exchange failure."""

    status_code = 502

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, ErrorCode.SHOPIFY_ERROR)


class InstallError(RewardHubError):
    """Store installation could not be persisted."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.INSTALL_FAILED)


class AuthorizationError(RewardHubError):
    """Authenticated user reaching outside their tenant scope."""

    status_code = 403

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(message, ErrorCode.AUTHORIZATION_ERROR)


class ConfigurationError(RewardHubError):
    """Settings unfit for the selected environment; raised from create_app."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR)
