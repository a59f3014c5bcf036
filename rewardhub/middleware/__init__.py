"""
Middleware package for RewardHub.
"""
from .auth import AuthContext, init_auth, require_role, get_auth, issue_auth_token, decode_auth_token
from .shopify_hmac import verify_hmac, verify_webhook_hmac, require_webhook_hmac
