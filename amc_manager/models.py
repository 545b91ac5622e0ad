"""
AMC Manager – Domain Models

Entities:
- User (login account, role-based access)
- Contract (Annual Maintenance Contract)
- PurchaseOrder + POItem (PO header and its lines)
- AuditLog (who changed what)

Money is stored as Numeric(12, 2) and rounded half-up to cents.
Totals on a PurchaseOrder are always recomputed from its items server-side.

IMPORTANT:
- Clients are never trusted. Totals, statuses and ownership are set in routes/models,
  not taken from the payload.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

import bcrypt
from flask import current_app
from flask_login import UserMixin

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def _normalize_percent(rate: Decimal) -> Decimal:
    """
    Normalize percent value to fraction (clients may send percent or fraction):
    - If rate is 18   => 0.18
    - If rate is 0.18 => 0.18
    """
    if rate > Decimal("1"):
        return (rate / Decimal("100")).quantize(Decimal("0.0000001"))
    return rate.quantize(Decimal("0.0000001"))


def _display_percent(rate: Decimal) -> Decimal:
    """
    Display percent:
    - If stored as 18   => 18
    - If stored as 0.18 => 18
    """
    if rate <= Decimal("1") and rate != Decimal("0"):
        return (rate * Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _money_str(value) -> str | None:
    if value is None:
        return None
    return str(_money(_to_decimal(value)))


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def utcnow() -> datetime:
    """Naive UTC timestamp (DateTime columns store UTC without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Column scales. Inputs are rounded to these before any arithmetic so that
# stored values and computed totals always agree.
MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")
UNIT_PRICE_PLACES = Decimal("0.0001")
VAT_RATE_PLACES = Decimal("0.0001")

# Largest value a Numeric(12, 2) column holds
MAX_MONEY = Decimal("9999999999.99")


def round_to(value, places: Decimal) -> Decimal | None:
    """Round half-up to the given scale (None stays None)."""
    if value is None:
        return None
    return _to_decimal(value).quantize(places, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    """Any Numeric/None as a Decimal rounded half-up to cents."""
    return _money(_to_decimal(value))


def _amount_str(value, places: Decimal) -> str | None:
    """Two decimals unless the stored scale carries more significant digits."""
    if value is None:
        return None
    exact = round_to(value, places)
    cents = _money(exact)
    return str(cents) if cents == exact else str(exact.normalize())


def order_totals(line_totals: Iterable[Decimal], vat_rate) -> tuple[Decimal, Decimal, Decimal]:
    """(subtotal, vat_amount, grand_total) for the given line totals and VAT rate."""
    subtotal = _money(sum(line_totals, Decimal("0.00")))

    if not vat_rate:
        return subtotal, Decimal("0.00"), subtotal

    vat = _money(subtotal * _normalize_percent(_to_decimal(vat_rate)))
    return subtotal, vat, _money(subtotal + vat)


def line_total(quantity, unit_price) -> Decimal:
    if not quantity or not unit_price:
        return Decimal("0.00")
    return _money(_to_decimal(quantity) * _to_decimal(unit_price))


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_VIEWER = "viewer"
USER_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_VIEWER)


class User(UserMixin, db.Model):
    """System login user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_VIEWER, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Only the SHA-256 digest of a reset token is stored
    reset_token_hash = db.Column(db.String(64), nullable=True, index=True)
    reset_token_expires_at = db.Column(db.DateTime, nullable=True)

    last_login_at = db.Column(db.DateTime, nullable=True)

    # Embedded in access tokens as "ver"; bumping it revokes every issued token
    token_version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def set_password(self, password: str):
        # bcrypt only looks at the first 72 bytes
        rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
        hashed = bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt(rounds=rounds))
        self.password_hash = hashed.decode("utf-8")

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8")[:72], self.password_hash.encode("utf-8"))
        except ValueError:
            return False

    def revoke_tokens(self):
        self.token_version = (self.token_version or 0) + 1

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_manage(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_MANAGER)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": bool(self.is_active),
            "last_login_at": _iso(self.last_login_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"


# ---------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------
CONTRACT_STATUSES = ("draft", "active", "expired", "cancelled")
BILLING_CYCLES = ("monthly", "quarterly", "half_yearly", "yearly")


class Contract(db.Model):
    """Annual Maintenance Contract."""

    __tablename__ = "contracts"

    id = db.Column(db.Integer, primary_key=True)

    contract_number = db.Column(db.String(50), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)

    vendor_name = db.Column(db.String(255), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    asset_description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)

    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=False, index=True)

    contract_value = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    billing_cycle = db.Column(db.String(20), nullable=False, default="yearly")
    status = db.Column(db.String(20), nullable=False, default="active", index=True)

    contact_email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_id])

    purchase_orders = db.relationship("PurchaseOrder", back_populates="contract", lazy=True)

    __table_args__ = (
        db.CheckConstraint("end_date >= start_date", name="ck_contract_dates"),
    )

    @property
    def days_remaining(self) -> int | None:
        if not self.end_date:
            return None
        return (self.end_date - date.today()).days

    @property
    def is_expiring(self) -> bool:
        """Active and ending within the configured warning window."""
        remaining = self.days_remaining
        if self.status != "active" or remaining is None:
            return False
        window = current_app.config.get("CONTRACT_EXPIRY_WARNING_DAYS", 30)
        return 0 <= remaining <= window

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contract_number": self.contract_number,
            "title": self.title,
            "vendor_name": self.vendor_name,
            "customer_name": self.customer_name,
            "asset_description": self.asset_description,
            "location": self.location,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "contract_value": _money_str(self.contract_value),
            "billing_cycle": self.billing_cycle,
            "status": self.status,
            "contact_email": self.contact_email,
            "notes": self.notes,
            "days_remaining": self.days_remaining,
            "is_expiring": self.is_expiring,
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Contract {self.contract_number}>"


# ---------------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------------
PO_STATUSES = ("draft", "submitted", "approved", "received", "cancelled")


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"

    id = db.Column(db.Integer, primary_key=True)

    po_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    vendor_name = db.Column(db.String(255), nullable=False, index=True)

    contract_id = db.Column(
        db.Integer,
        db.ForeignKey("contracts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    order_date = db.Column(db.Date, nullable=False, index=True)
    expected_delivery_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    vat_rate = db.Column(db.Numeric(7, 4), nullable=True)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    grand_total = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    contract = db.relationship("Contract", back_populates="purchase_orders")
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    items = db.relationship(
        "POItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="POItem.line_no",
    )

    def recalc_totals(self):
        self.subtotal, self.vat_amount, self.grand_total = order_totals(
            (line.line_total for line in self.items), self.vat_rate
        )

    @property
    def vat_percent(self) -> Decimal:
        return _display_percent(_to_decimal(self.vat_rate))

    def to_dict(self, with_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "po_number": self.po_number,
            "vendor_name": self.vendor_name,
            "contract_id": self.contract_id,
            "contract_number": self.contract.contract_number if self.contract else None,
            "order_date": _iso(self.order_date),
            "expected_delivery_date": _iso(self.expected_delivery_date),
            "status": self.status,
            "vat_rate": str(self.vat_percent),
            "subtotal": _money_str(self.subtotal),
            "vat_amount": _money_str(self.vat_amount),
            "grand_total": _money_str(self.grand_total),
            "notes": self.notes,
            "item_count": len(self.items),
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if with_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<PurchaseOrder {self.po_number}>"


class POItem(db.Model):
    __tablename__ = "po_items"

    id = db.Column(db.Integer, primary_key=True)

    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    line_no = db.Column(db.Integer, nullable=False, default=1)
    description = db.Column(db.Text, nullable=False)
    unit = db.Column(db.String(50))

    quantity = db.Column(db.Numeric(12, 3), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 4), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return line_total(self.quantity, self.unit_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "description": self.description,
            "unit": self.unit,
            "quantity": _amount_str(self.quantity, QUANTITY_PLACES),
            "unit_price": _amount_str(self.unit_price, UNIT_PRICE_PLACES),
            "line_total": _money_str(self.line_total),
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Audit trail of mutations."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
