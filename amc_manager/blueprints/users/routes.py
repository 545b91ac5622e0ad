"""
User Management (Admin Only).

Rules enforced:
- Email is unique (case-insensitive, stored lower-cased).
- Admins cannot deactivate, delete or demote their own account (no lock-out).
- DELETE is a soft delete: the account is deactivated and keeps its history.
- Setting a new password revokes the user's outstanding access tokens.
- Clients are never trusted: everything is validated server-side.

Audit:
- CREATE / UPDATE / DEACTIVATE logged
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...errors import ApiError, ConflictError, ValidationError
from ...extensions import db
from ...forms import UserCreateForm, UserUpdateForm, validate_form
from ...models import ROLE_ADMIN, USER_ROLES, User
from ...security import admin_required
from ...utils import apply_sort, get_json_body, like_pattern, load_or_404, paginate_query, parse_bool


users_bp = Blueprint(
    "users",
    __name__,
    url_prefix="/api/users",
)

SORTABLE_FIELDS = ("name", "email", "role", "created_at", "last_login_at")


def _load_user(user_id: int) -> User:
    return load_or_404(User, user_id, "User")


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    q = User.query.filter(User.email == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def _duplicate_email() -> ConflictError:
    return ConflictError("Email is already registered.", details={"email": ["Email is already registered."]})


def _flush_or_conflict() -> None:
    """Flush; a unique-email race lost at the database becomes a 409."""
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate_email()


def _is_active_from_payload(payload: dict, default: bool) -> bool:
    """is_active must be a JSON boolean when present."""
    value = payload.get("is_active", default)
    if not isinstance(value, bool):
        raise ValidationError({"is_active": ["Must be true or false."]})
    return value


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@users_bp.route("", methods=["GET"])
@login_required
@admin_required
def list_users():
    """Admin view: list users with optional role / search / is_active filters."""
    q = User.query

    role = (request.args.get("role") or "").strip()
    if role:
        if role not in USER_ROLES:
            raise ApiError("Invalid query parameter.", 400, {"role": [f"Must be one of: {', '.join(USER_ROLES)}."]})
        q = q.filter(User.role == role)

    is_active = parse_bool(request.args.get("is_active"))
    if is_active is not None:
        q = q.filter(User.is_active.is_(is_active))

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = like_pattern(search)
        q = q.filter(or_(User.name.ilike(pattern, escape="\\"), User.email.ilike(pattern, escape="\\")))

    q = apply_sort(q, User, SORTABLE_FIELDS, default="email")
    return jsonify(paginate_query(q, User.to_dict))


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@users_bp.route("", methods=["POST"])
@login_required
@admin_required
def create_user():
    """
    Create a new system user.

    Required: name, email, password. Optional: role (default viewer), is_active (default true).
    """
    payload = get_json_body()
    form = validate_form(UserCreateForm, payload)
    is_active = _is_active_from_payload(payload, default=True)

    email = form.email.data.strip().lower()
    if _email_taken(email):
        raise _duplicate_email()

    user = User(
        name=form.name.data.strip(),
        email=email,
        role=form.role.data,
        is_active=is_active,
    )
    user.set_password(form.password.data)

    db.session.add(user)
    _flush_or_conflict()

    log_action(user, "CREATE", after=serialize_model(user))
    db.session.commit()

    return jsonify({"user": user.to_dict()}), 201


# ---------------------------------------------------------------------
# READ / EDIT USER
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>", methods=["GET"])
@login_required
@admin_required
def get_user(user_id: int):
    return jsonify({"user": _load_user(user_id).to_dict()})


@users_bp.route("/<int:user_id>", methods=["PUT"])
@login_required
@admin_required
def update_user(user_id: int):
    """
    Edit an existing user.

    Admin can:
    - rename / change email
    - change role
    - activate/deactivate
    - reset password (only when "password" is provided)
    """
    user = _load_user(user_id)
    payload = get_json_body()
    form = validate_form(UserUpdateForm, payload)
    is_active = _is_active_from_payload(payload, default=bool(user.is_active))

    if user.id == current_user.id:
        if form.role.data != ROLE_ADMIN:
            raise ApiError("You cannot remove your own administrator role.", 400, {"role": ["Cannot demote yourself."]})
        if not is_active:
            raise ApiError("You cannot deactivate your own account.", 400, {"is_active": ["Cannot deactivate yourself."]})

    email = form.email.data.strip().lower()
    if _email_taken(email, exclude_id=user.id):
        raise _duplicate_email()

    before_snapshot = serialize_model(user)

    user.name = form.name.data.strip()
    user.email = email
    user.role = form.role.data
    user.is_active = is_active

    if form.password.data:
        user.set_password(form.password.data)
        user.revoke_tokens()

    _flush_or_conflict()

    log_action(user, "UPDATE", before=before_snapshot, after=serialize_model(user))
    db.session.commit()

    return jsonify({"user": user.to_dict()})


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@login_required
@admin_required
def deactivate_user(user_id: int):
    """Soft delete: deactivate the account."""
    user = _load_user(user_id)

    if user.id == current_user.id:
        raise ApiError("You cannot deactivate your own account.", 400)

    before_snapshot = serialize_model(user)
    user.is_active = False
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    db.session.flush()

    log_action(user, "DEACTIVATE", before=before_snapshot, after=serialize_model(user))
    db.session.commit()

    return "", 204
