"""
amc_manager/forms.py

Server-side validation of JSON payloads with Flask-WTF / WTForms.

Routes build a form from the request body (see utils.json_formdata) and call
validate_form(); on failure the field errors become the "details" of a 400
envelope. CSRF is off: the API authenticates with bearer tokens.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Type, TypeVar

from flask_wtf import FlaskForm
from wtforms import DateField, DecimalField, IntegerField, PasswordField, SelectField, StringField, TextAreaField
from wtforms.validators import (
    DataRequired,
    Email,
    InputRequired,
    Length,
    NumberRange,
    Optional,
    StopValidation,
    ValidationError,
)

from . import errors
from .models import (
    BILLING_CYCLES,
    CONTRACT_STATUSES,
    MAX_MONEY,
    PO_STATUSES,
    QUANTITY_PLACES,
    USER_ROLES,
    round_to,
)
from .utils import MAX_DB_ID, json_formdata

F = TypeVar("F", bound="ApiForm")

PASSWORD_MIN_LENGTH = 8

# Largest values the po_items Numeric(12, 3) / Numeric(12, 4) columns hold
MAX_QUANTITY = Decimal("999999999.999")
MAX_UNIT_PRICE = Decimal("99999999.9999")


class ApiForm(FlaskForm):
    class Meta:
        csrf = False


def validate_form(form_cls: Type[F], payload: Dict[str, Any]) -> F:
    """Instantiate form_cls from a JSON payload and raise a 400 if it does not validate."""
    form = form_cls(formdata=json_formdata(payload))
    if not form.validate():
        raise errors.ValidationError(form.errors)
    return form


def _choices(values):
    return [(v, v) for v in values]


class Finite:
    """
    Reject NaN and Infinity in a DecimalField.

    Stops the chain when there is no usable number, so range checks never
    compare against NaN or None.
    """

    def __init__(self, message: str = "Must be a finite number."):
        self.message = message

    def __call__(self, form, field):
        if field.data is None:
            # Unparseable input is already reported by the field itself
            raise StopValidation()
        if not field.data.is_finite():
            raise StopValidation(self.message)


# ---------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------
class RegisterForm(ApiForm):
    name = StringField("name", validators=[DataRequired(), Length(max=120)])
    email = StringField("email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("password", validators=[DataRequired(), Length(min=PASSWORD_MIN_LENGTH, max=128)])


class LoginForm(ApiForm):
    email = StringField("email", validators=[DataRequired(), Length(max=255)])
    password = PasswordField("password", validators=[DataRequired()])


class ForgotPasswordForm(ApiForm):
    email = StringField("email", validators=[DataRequired(), Email(), Length(max=255)])


class ResetPasswordForm(ApiForm):
    token = StringField("token", validators=[DataRequired(), Length(max=255)])
    password = PasswordField("password", validators=[DataRequired(), Length(min=PASSWORD_MIN_LENGTH, max=128)])


class ChangePasswordForm(ApiForm):
    current_password = PasswordField("current_password", validators=[DataRequired()])
    new_password = PasswordField(
        "new_password", validators=[DataRequired(), Length(min=PASSWORD_MIN_LENGTH, max=128)]
    )


# ---------------------------------------------------------------------
# Users (admin)
# ---------------------------------------------------------------------
class UserCreateForm(ApiForm):
    name = StringField("name", validators=[DataRequired(), Length(max=120)])
    email = StringField("email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("password", validators=[DataRequired(), Length(min=PASSWORD_MIN_LENGTH, max=128)])
    role = SelectField("role", choices=_choices(USER_ROLES), default="viewer")


class UserUpdateForm(ApiForm):
    name = StringField("name", validators=[DataRequired(), Length(max=120)])
    email = StringField("email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("password", validators=[Optional(), Length(min=PASSWORD_MIN_LENGTH, max=128)])
    role = SelectField("role", choices=_choices(USER_ROLES), default="viewer")


# ---------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------
class ContractForm(ApiForm):
    contract_number = StringField("contract_number", validators=[DataRequired(), Length(max=50)])
    title = StringField("title", validators=[DataRequired(), Length(max=255)])
    vendor_name = StringField("vendor_name", validators=[DataRequired(), Length(max=255)])
    customer_name = StringField("customer_name", validators=[Optional(), Length(max=255)])
    asset_description = TextAreaField("asset_description", validators=[Optional()])
    location = StringField("location", validators=[Optional(), Length(max=255)])

    start_date = DateField("start_date", format="%Y-%m-%d", validators=[DataRequired()])
    end_date = DateField("end_date", format="%Y-%m-%d", validators=[DataRequired()])

    contract_value = DecimalField(
        "contract_value", places=2, validators=[InputRequired(), Finite(), NumberRange(min=0, max=MAX_MONEY)]
    )
    billing_cycle = SelectField("billing_cycle", choices=_choices(BILLING_CYCLES), default="yearly")
    status = SelectField("status", choices=_choices(CONTRACT_STATUSES), default="active")

    contact_email = StringField("contact_email", validators=[Optional(), Email(), Length(max=255)])
    notes = TextAreaField("notes", validators=[Optional()])

    def validate_end_date(self, field):
        if self.start_date.data and field.data and field.data < self.start_date.data:
            raise ValidationError("End date must be on or after the start date.")


# ---------------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------------
class PurchaseOrderForm(ApiForm):
    po_number = StringField("po_number", validators=[Optional(), Length(max=50)])
    vendor_name = StringField("vendor_name", validators=[DataRequired(), Length(max=255)])
    contract_id = IntegerField("contract_id", validators=[Optional(), NumberRange(min=1, max=MAX_DB_ID)])

    order_date = DateField("order_date", format="%Y-%m-%d", validators=[DataRequired()])
    expected_delivery_date = DateField("expected_delivery_date", format="%Y-%m-%d", validators=[Optional()])

    status = SelectField("status", choices=_choices(PO_STATUSES), default="draft")
    # Above 1 is a percent (18), below 1 a fraction (0.18); exactly 1 is rejected
    vat_rate = DecimalField("vat_rate", validators=[Optional(), Finite(), NumberRange(min=0, max=100)])
    notes = TextAreaField("notes", validators=[Optional()])

    def validate_expected_delivery_date(self, field):
        if self.order_date.data and field.data and field.data < self.order_date.data:
            raise ValidationError("Expected delivery date must be on or after the order date.")

    def validate_vat_rate(self, field):
        if field.data is not None and field.data == 1:
            raise ValidationError("Ambiguous rate: send 100 for 100% or 0.01 for 1%.")


class POItemForm(ApiForm):
    description = StringField("description", validators=[DataRequired(), Length(max=2000)])
    unit = StringField("unit", validators=[Optional(), Length(max=50)])
    quantity = DecimalField("quantity", validators=[InputRequired(), Finite(), NumberRange(max=MAX_QUANTITY)])
    unit_price = DecimalField(
        "unit_price", validators=[InputRequired(), Finite(), NumberRange(min=0, max=MAX_UNIT_PRICE)]
    )

    def validate_quantity(self, field):
        # Compared at the stored scale: 0.0001 would be saved as 0.000
        if field.data is not None and round_to(field.data, QUANTITY_PLACES) <= Decimal("0"):
            raise ValidationError("Quantity must be greater than zero.")
