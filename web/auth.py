"""
Session authentication for the web app.
"""
from functools import wraps
from typing import Optional

from flask import session, redirect, url_for, request, g, flash

from db import User, Role, UserRepository
from services.auth_service import hash_password, verify_password
from web.helpers import run_async, request_ip
from utils.logger import get_logger
from utils.exceptions import AuthenticationException, PermissionDeniedException

logger = get_logger("web_auth")

__all__ = [
    "hash_password", "verify_password",
    "login_user", "logout_user", "current_user",
    "login_required", "roles_required"
]


def login_user(user: User):
    session.clear()
    session["user_id"] = user.id
    session.permanent = True


def logout_user():
    session.clear()
    g.pop("user", None)


def current_user() -> Optional[User]:
    """
    The signed-in user, read fresh from the database once per request so a
    role change or deletion applies immediately.
    """
    if "user" not in g:
        user_id = session.get("user_id")
        user = run_async(UserRepository.get_by_id(user_id)) if user_id else None
        if user_id and not user:
            session.clear()
        g.user = user
    return g.user


def _is_api_request() -> bool:
    return request.blueprint == "api" or request.path.startswith("/api/")


def login_required(f):
    """Decorator to require a signed-in user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_user() is None:
            if _is_api_request():
                raise AuthenticationException()
            flash("Silakan login terlebih dahulu.", "warning")
            return redirect(url_for("pages.login", next=request.path))
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles: Role):
    """Decorator to require one of `roles`; implies login_required."""
    allowed = {role.value if isinstance(role, Role) else role for role in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = current_user()
            if user is None:
                if _is_api_request():
                    raise AuthenticationException()
                return redirect(url_for("pages.login", next=request.path))
            if user.role.value not in allowed:
                logger.audit_security_event(
                    "PERMISSION_DENIED", user_id=user.id,
                    ip_address=request_ip(), path=request.path
                )
                if _is_api_request():
                    raise PermissionDeniedException()
                flash("Anda tidak memiliki akses ke halaman tersebut.", "error")
                return redirect(url_for("pages.dashboard"))
            return f(*args, **kwargs)
        return decorated_function
    return decorator
