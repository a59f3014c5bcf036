"""
Request-scoped authentication for the dashboard API.

A bearer JWT is decoded once per request in a before_request hook and the
resulting AuthContext is stored on flask.g. Endpoints declare the roles
they accept with @require_role.

Token claims:
- sub: user ID (string)
- role: one of UserRole
- client_id / brand_id: tenant scope, when the user has one
- exp / iat
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import wraps
from typing import Optional

import jwt
from flask import current_app, g, request

from ..models.client import UserRole
from ..utils.errors import ErrorCode, unauthorized, forbidden
from ..utils.exceptions import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'


@dataclass(frozen=True)
class AuthContext:
    """Who is making the request."""
    user_id: int
    role: UserRole
    client_id: Optional[int] = None
    brand_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def resolve_client_id(self, requested=None) -> int:
        """
        Client the request operates on.

        Client users are pinned to their own client; admins must name one.

        Raises:
            AuthorizationError: Client user asking for another client, or no client scope
            ValidationError: Admin without a client_id
        """
        if self.is_admin:
            if requested in (None, ''):
                raise ValidationError('client_id is required', 'client_id')
            try:
                return int(requested)
            except (TypeError, ValueError):
                raise ValidationError('client_id must be an integer', 'client_id')

        if self.client_id is None:
            raise AuthorizationError('No client scope for this user')

        if requested not in (None, '') and str(requested) != str(self.client_id):
            raise AuthorizationError('Cannot access another client')

        return self.client_id


def issue_auth_token(user, expires_in: timedelta = None) -> str:
    """Sign a bearer token for a User."""
    now = datetime.utcnow()
    expires_in = expires_in or timedelta(hours=current_app.config.get('JWT_EXPIRATION_HOURS', 12))
    payload = {
        'sub': str(user.id),
        'role': user.role,
        'client_id': user.client_id,
        'brand_id': user.brand_id,
        'iat': now,
        'exp': now + expires_in,
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm=JWT_ALGORITHM)


def decode_auth_token(token: str) -> Optional[AuthContext]:
    """
    Verify a bearer token.

    Returns:
        AuthContext, or None when the signature, expiry or role is invalid
    """
    if not token:
        return None

    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info('[Auth] Token expired')
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f'[Auth] Invalid token: {e}')
        return None

    role = UserRole.parse(payload.get('role'))
    if role is None:
        logger.warning(f"[Auth] Rejected token with unknown role {payload.get('role')!r}")
        return None

    try:
        user_id = int(payload['sub'])
    except (KeyError, TypeError, ValueError):
        logger.warning('[Auth] Token without a valid subject')
        return None

    return AuthContext(
        user_id=user_id,
        role=role,
        client_id=payload.get('client_id'),
        brand_id=payload.get('brand_id'),
    )


def load_auth_context() -> None:
    """before_request hook: decode the Authorization header into g.auth."""
    g.auth = None
    g.auth_error = None

    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return

    g.auth = decode_auth_token(auth_header.split(' ', 1)[1])
    if g.auth is None:
        g.auth_error = 'invalid_token'


def get_auth() -> Optional[AuthContext]:
    return g.get('auth')


def require_role(*roles: UserRole):
    """
    Decorator restricting an endpoint to the given roles.

    Usage:
        @require_role(UserRole.ADMIN, UserRole.CLIENT)
        def list_programs():
            client_id = g.auth.resolve_client_id(request.args.get('client_id'))
    """
    allowed = {UserRole(r) for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth = get_auth()
            if auth is None:
                if g.get('auth_error'):
                    return unauthorized('Invalid or expired token', ErrorCode.INVALID_TOKEN)
                return unauthorized()

            if auth.role not in allowed:
                return forbidden(f"Role '{auth.role.value}' cannot access this resource")

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def init_auth(app) -> None:
    app.before_request(load_auth_context)
