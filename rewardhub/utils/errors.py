"""
Error bodies for the RewardHub API.

Every failure leaves the app as:
{
    "error": {
        "message": "Reward link has expired",
        "code": "TOKEN_EXPIRED"
    }
}

Domain failures are raised as RewardHubError subclasses and rendered by
the app-level handler through error_from_exception. The small helpers
below cover the handful of early returns made directly from views and
decorators.
"""
import logging
from enum import Enum

from flask import jsonify

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable codes shared by the dashboard, storefront and checkout callers."""

    # Bearer tokens and Shopify signatures (401, 403)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"

    # Request bodies (400). Field errors use INVALID_<FIELD> instead.
    INVALID_REQUEST = "INVALID_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_SHOP_DOMAIN = "INVALID_SHOP_DOMAIN"
    INVALID_OAUTH_STATE = "INVALID_OAUTH_STATE"

    # Lookups (404). Model lookups use <RESOURCE>_NOT_FOUND.
    NOT_FOUND = "NOT_FOUND"

    # Enrollment, voucher and points state (409)
    STATE_CONFLICT = "STATE_CONFLICT"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"

    # Redemption links (404, 410)
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    TOKEN_USED = "TOKEN_USED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"

    # Shopify install and Admin API (500, 502)
    SHOPIFY_ERROR = "SHOPIFY_ERROR"
    INSTALL_FAILED = "INSTALL_FAILED"

    # Server (500)
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code=ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
) -> tuple:
    """
    JSON error body and status for Flask.

    code may be an ErrorCode or a derived string such as INVALID_PRIORITY.
    5xx responses are logged at error level, other statuses at warning.
    """
    code = code.value if isinstance(code, ErrorCode) else code
    if log_error:
        level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(level, f"API Error [{code}]: {message}")

    return jsonify({'error': {'message': message, 'code': code}}), status_code


def error_from_exception(error) -> tuple:
    """Render a RewardHubError. Client errors are logged only when they carry a field."""
    return error_response(
        error.message,
        error.code,
        error.status_code,
        log_error=error.status_code >= 500 or getattr(error, 'field', None) is not None,
    )


def bad_request(message: str, code=ErrorCode.INVALID_REQUEST) -> tuple:
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Authentication required", code=ErrorCode.AUTH_REQUIRED) -> tuple:
    return error_response(message, code, 401, log_error=False)


def forbidden(message: str = "Permission denied") -> tuple:
    return error_response(message, ErrorCode.PERMISSION_DENIED, 403, log_error=False)


def conflict(message: str, code=ErrorCode.STATE_CONFLICT) -> tuple:
    return error_response(message, code, 409, log_error=False)
