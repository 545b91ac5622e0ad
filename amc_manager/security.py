"""
amc_manager/security.py

Access control helpers for the AMC Manager API.

Key rules:
- Clients are never trusted; all permission checks are server-side.
- Identity comes from an "Authorization: Bearer <jwt>" header only.
- Admin: full access, including user management.
- Manager: full CRUD on contracts and purchase orders.
- Viewer: read-only (no mutating requests), except explicit self-service actions.

This module also provides a global safety net:
- viewer_readonly_guard() blocks POST/PUT/PATCH/DELETE for viewers.
  Wired via app.before_request in the app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional

from flask import abort, request
from flask_login import current_user

from .extensions import db
from .models import User
from .tokens import identity_from_token

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Self-service endpoints any authenticated user may call with a mutating method
SELF_SERVICE_ENDPOINTS = {
    "auth.register",
    "auth.login",
    "auth.forgot_password",
    "auth.reset_password",
    "auth.change_password",
}


def _forbidden(message: str = "You do not have permission to perform this action."):
    abort(403, description=message)


def bearer_token_from_request(req) -> Optional[str]:
    """Extract the raw token from an Authorization: Bearer header."""
    header = (req.headers.get("Authorization") or "").strip()
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_user_from_request(req) -> Optional[User]:
    """
    Flask-Login request loader.

    Returns the active user named by a valid access token, otherwise None
    (Flask-Login then treats the request as anonymous). Tokens minted before
    the last password change carry a stale version and are rejected.
    """
    token = bearer_token_from_request(req)
    if not token:
        return None

    identity = identity_from_token(token)
    if identity is None:
        return None
    user_id, version = identity

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    if version != (user.token_version or 0):
        return None
    return user


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def is_manager_or_admin() -> bool:
    if not current_user.is_authenticated:
        return False
    can_manage = getattr(current_user, "can_manage", None)
    return bool(callable(can_manage) and can_manage())


def viewer_readonly_guard() -> None:
    """
    Global guard: viewers cannot mutate data.

    Blocks POST/PUT/PATCH/DELETE for users who are:
    - authenticated
    - NOT admin/manager
    Allow-list: SELF_SERVICE_ENDPOINTS.
    """
    if request.method not in MUTATING_METHODS:
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in SELF_SERVICE_ENDPOINTS:
        return None

    if not current_user.is_authenticated:
        return None

    if is_manager_or_admin():
        return None

    _forbidden("Viewers have read-only access.")


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            _forbidden("Administrator access required.")
        return view_func(*args, **kwargs)

    return wrapper


def manager_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: manager or admin."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_manager_or_admin():
            _forbidden("Manager access required.")
        return view_func(*args, **kwargs)

    return wrapper
