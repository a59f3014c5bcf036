"""
Utility modules for RewardHub.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    error_from_exception,
    bad_request,
    unauthorized,
    forbidden,
    conflict,
)
from .exceptions import (
    RewardHubError,
    NotFoundError,
    ValidationError,
    LimitExceededError,
    StateConflictError,
    InsufficientPointsError,
    DuplicateTransactionError,
    TokenInvalidError,
    OAuthStateError,
    ShopifyError,
    InstallError,
    AuthorizationError,
    ConfigurationError,
)
