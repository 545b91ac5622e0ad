"""
Authentication Routes

Provides:
- POST /api/auth/register
- POST /api/auth/login
- POST /api/auth/forgot-password
- POST /api/auth/reset-password
- POST /api/auth/change-password
- GET  /api/auth/me

Rules:
- The first account of an empty system is the admin (bootstrap); later sign-ups are viewers.
- Only active users may log in.
- forgot-password never reveals whether an account exists.
- Reset tokens are single-use, time-limited and stored only as a SHA-256 digest.
- Resetting or changing a password revokes every previously issued access token.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...errors import ApiError, ConflictError
from ...extensions import db
from ...forms import (
    ChangePasswordForm,
    ForgotPasswordForm,
    LoginForm,
    RegisterForm,
    ResetPasswordForm,
    validate_form,
)
from ...mailer import send_password_reset_email
from ...models import ROLE_ADMIN, ROLE_VIEWER, User, utcnow
from ...tokens import create_access_token, generate_reset_token, hash_reset_token
from ...utils import get_json_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, password reset instructions have been sent."


def _normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def _token_response(user: User, status_code: int = 200):
    response = jsonify({"token": create_access_token(user.id, version=user.token_version or 0), "token_type": "bearer", "user": user.to_dict()})
    response.status_code = status_code
    return response


# ============================================================
# REGISTER
# ============================================================

@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Create an account.

    Bootstrap rule: if no user exists yet, the new account becomes admin.
    """
    form = validate_form(RegisterForm, get_json_body())
    email = _normalize_email(form.email.data)

    if User.query.filter_by(email=email).first():
        raise ConflictError("Email is already registered.", details={"email": ["Email is already registered."]})

    is_first_user = User.query.count() == 0

    user = User(
        name=form.name.data.strip(),
        email=email,
        role=ROLE_ADMIN if is_first_user else ROLE_VIEWER,
        is_active=True,
    )
    user.set_password(form.password.data)

    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email is already registered.", details={"email": ["Email is already registered."]})

    log_action(user, "CREATE", after=serialize_model(user), actor=user)
    db.session.commit()

    logger.info("Registered user %s (role=%s)", user.email, user.role)
    return _token_response(user, 201)


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user and issue an access token.

    - Credentials validated via bcrypt hash
    - Only active users may log in
    """
    form = validate_form(LoginForm, get_json_body())
    email = _normalize_email(form.email.data)

    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(form.password.data):
        logger.warning("Failed login for %s", email)
        raise ApiError("Invalid email or password.", 401)

    if not user.is_active:
        raise ApiError("Account is inactive.", 403)

    user.last_login_at = utcnow()
    db.session.commit()

    return _token_response(user)


# ============================================================
# FORGOT / RESET PASSWORD
# ============================================================

@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    """
    Start a password reset.

    Always answers 200 with the same message; only an existing active account
    gets a token and an e-mail.
    """
    form = validate_form(ForgotPasswordForm, get_json_body())
    email = _normalize_email(form.email.data)

    user = User.query.filter_by(email=email).first()
    if user and user.is_active:
        token = generate_reset_token()
        minutes = current_app.config.get("PASSWORD_RESET_EXPIRES_MINUTES", 60)

        user.reset_token_hash = hash_reset_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(minutes=minutes)
        db.session.commit()

        logger.info("Password reset requested for %s", user.email)
        if not send_password_reset_email(user, token):
            logger.warning("Password reset e-mail for %s was not delivered", user.email)

    return jsonify({"message": FORGOT_PASSWORD_MESSAGE})


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    """Complete a password reset with the token from the e-mail."""
    form = validate_form(ResetPasswordForm, get_json_body())
    token_hash = hash_reset_token(form.token.data.strip())

    user = User.query.filter_by(reset_token_hash=token_hash).first()
    if (
        not user
        or not user.is_active
        or not user.reset_token_expires_at
        or user.reset_token_expires_at < utcnow()
    ):
        raise ApiError("Invalid or expired reset token.", 400, {"token": ["Invalid or expired reset token."]})

    user.set_password(form.password.data)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    user.revoke_tokens()

    log_action(user, "PASSWORD_RESET", actor=user)
    db.session.commit()

    logger.info("Password reset completed for %s", user.email)
    return jsonify({"message": "Password has been reset. You can now log in."})


# ============================================================
# CURRENT USER
# ============================================================

@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    """Change the current user's password (requires the current one)."""
    form = validate_form(ChangePasswordForm, get_json_body())

    if not current_user.check_password(form.current_password.data):
        raise ApiError("Validation failed", 400, {"current_password": ["Current password is incorrect."]})

    user = current_user._get_current_object()
    user.set_password(form.new_password.data)
    user.revoke_tokens()
    log_action(user, "PASSWORD_CHANGE")
    db.session.commit()

    # Other sessions are signed out; this one continues with a fresh token
    return _token_response(user)


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    """Return the authenticated user."""
    return jsonify({"user": current_user.to_dict()})
