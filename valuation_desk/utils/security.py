"""
Security utilities for the Valuation Desk.

Password hashing, response security headers and the session-backed view
decorators used by the JSON API.
"""

import hashlib
import hmac
import secrets
from functools import wraps
from typing import Optional, Tuple

from flask import g, session

from valuation_desk.models.entities import USERS_KEY, User
from valuation_desk.services.access import PermissionDeniedError
from valuation_desk.utils.logging_config import log_security_event

PBKDF2_ITERATIONS = 100000
SESSION_USER_KEY = "user_id"


class AuthenticationRequiredError(Exception):
    """Raised when a view needs a signed-in user and there is none"""

    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required"):
        self.message = message
        super().__init__(self.message)


def hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    """
    Hash password with salt

    Args:
        password: Password to hash
        salt: Optional salt (will generate if not provided)

    Returns:
        Tuple of (hashed_password, salt)
    """
    if salt is None:
        salt = secrets.token_hex(32)

    hashed = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return hashed.hex(), salt


def verify_password(password: str, hashed_password: str, salt: str) -> bool:
    """
    Verify password against hash

    Returns:
        True if password matches, False otherwise
    """
    if not hashed_password or not salt:
        return False
    hashed = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return hmac.compare_digest(hashed.hex(), hashed_password)


def apply_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


def secure_headers(func):
    """Decorator to add security headers to response"""

    @wraps(func)
    def wrapper(*args, **kwargs):
        response = func(*args, **kwargs)

        if hasattr(response, "headers"):
            apply_security_headers(response)
        elif isinstance(response, tuple) and response and hasattr(response[0], "headers"):
            apply_security_headers(response[0])

        return response

    return wrapper


def reset_request_user() -> None:
    """Forget the user cached for the previous request"""
    g.pop("current_user", None)
    g.user_id = None


def sign_in(user: User) -> None:
    session.clear()
    session[SESSION_USER_KEY] = user.id
    session.permanent = True
    g.current_user = user
    g.user_id = user.id


def sign_out() -> None:
    session.pop(SESSION_USER_KEY, None)
    g.pop("current_user", None)
    g.user_id = None


def get_current_user() -> Optional[User]:
    """
    The signed-in user for this request, or None

    The user record is reloaded from the store so role changes and
    deactivation take effect immediately.
    """
    if "current_user" in g:
        return g.current_user

    from valuation_desk import get_store

    user = None
    user_id = session.get(SESSION_USER_KEY)
    if user_id:
        user = get_store().find(USERS_KEY, user_id)
        if user is not None and not user.is_active:
            user = None

    g.current_user = user
    g.user_id = user.id if user else None
    return user


def login_required(func):
    """Decorator for views that need a signed-in, active user"""

    @wraps(func)
    def wrapper(*args, **kwargs):
        if get_current_user() is None:
            raise AuthenticationRequiredError()
        return func(*args, **kwargs)

    return wrapper


def role_required(*roles: str):
    """Decorator restricting a view to the given roles"""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            user = get_current_user()
            if user is None:
                raise AuthenticationRequiredError()
            if user.role not in roles:
                log_security_event(
                    "role_denied", {"user_id": user.id, "role": user.role, "required_roles": list(roles)}
                )
                raise PermissionDeniedError(f"This action requires one of the roles: {', '.join(roles)}")
            return func(*args, **kwargs)

        return wrapper

    return decorator
