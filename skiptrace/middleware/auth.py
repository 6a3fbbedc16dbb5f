"""
JWT Authentication Middleware.

Validates Supabase JWT tokens from the Authorization header and extracts
the account id from the "sub" claim. There is no unauthenticated fallback:
every account-scoped endpoint needs a verified token.

Usage:
    @require_auth
    def my_endpoint():
        user_id = g.user_id  # Verified user ID from JWT
        ...
"""

import logging
from functools import wraps
from typing import Optional

import jwt
from flask import request, g

from skiptrace.errors import Unauthenticated
from skiptrace.utils.dependency_container import get_service

logger = logging.getLogger(__name__)

JWT_ALGORITHMS = ["HS256"]
JWT_AUDIENCE = "authenticated"


def verify_jwt(token: str, secret: str) -> Optional[dict]:
    """
    Verify a Supabase JWT and return the decoded payload.

    Returns None if verification fails.
    """
    if not secret:
        logger.warning("SUPABASE_JWT_SECRET is not set, JWT verification will fail")
        return None

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=JWT_ALGORITHMS,
            audience=JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        logger.debug("JWT expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"JWT validation failed: {e}")
        return None


def _extract_user_id_from_request() -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    settings = get_service('settings')
    payload = verify_jwt(auth_header[7:], settings.SUPABASE_JWT_SECRET)
    if not payload:
        return None

    user_id = payload.get("sub")
    if user_id:
        g.jwt_payload = payload
        g.user_email = payload.get("email")
    return user_id


def require_auth(f):
    """
    Decorator that requires a verified user identity.

    Sets g.user_id for downstream use; raises Unauthenticated (401) otherwise.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id = _extract_user_id_from_request()

        if not user_id:
            raise Unauthenticated()

        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated
