"""
amc_manager/blueprints/purchase_orders/routes.py

Purchase order routes.

Includes:
- Paginated list with server-side filtering and sorting
- Create / read / update (items replaced as a whole) / delete
- Printable PDF of a single PO, XLSX export of the filtered list

IMPORTANT:
- Totals are recomputed from the items on every write; client totals are ignored.
- po_number is unique. When omitted it is generated as PO-<year>-<seq>.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import current_user, login_required
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ...audit import log_action, serialize_model
from ...errors import ApiError, ConflictError, ValidationError
from ...exports import PDF_MIMETYPE, XLSX_MIMETYPE, purchase_order_to_pdf, purchase_orders_to_xlsx
from ...extensions import db
from ...forms import POItemForm, PurchaseOrderForm
from ...models import (
    MAX_MONEY,
    PO_STATUSES,
    QUANTITY_PLACES,
    UNIT_PRICE_PLACES,
    VAT_RATE_PLACES,
    Contract,
    POItem,
    PurchaseOrder,
    line_total,
    order_totals,
    round_to,
)
from ...security import manager_required
from ...utils import (
    MAX_DB_ID,
    apply_sort,
    get_json_body,
    json_formdata,
    like_pattern,
    load_or_404,
    paginate_query,
    parse_optional_date,
    query_int,
)

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")

SORTABLE_FIELDS = (
    "po_number",
    "vendor_name",
    "order_date",
    "expected_delivery_date",
    "status",
    "grand_total",
    "created_at",
)

MAX_ITEMS_PER_ORDER = 200


# ---------------------------------------------------------------------
# Loading / numbering helpers
# ---------------------------------------------------------------------
def _load_purchase_order(po_id: int) -> PurchaseOrder:
    return load_or_404(PurchaseOrder, po_id, "Purchase order")


def _next_po_number(order_date: date) -> str:
    """PO-<year>-<seq:05d>, seq continuing after the highest number used that year."""
    prefix = f"PO-{order_date.year}-"
    existing = (
        db.session.query(PurchaseOrder.po_number)
        .filter(PurchaseOrder.po_number.like(f"{prefix}%"))
        .all()
    )

    highest = 0
    for (number,) in existing:
        tail = number[len(prefix):]
        if tail.isdigit():
            highest = max(highest, int(tail))

    return f"{prefix}{highest + 1:05d}"


# ---------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------
def _validate_items(raw_items: Any) -> List[POItemForm]:
    """Validate the items array; errors are keyed by item index."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError({"items": ["At least one item is required."]})
    if len(raw_items) > MAX_ITEMS_PER_ORDER:
        raise ValidationError({"items": [f"At most {MAX_ITEMS_PER_ORDER} items are allowed."]})

    forms: List[POItemForm] = []
    item_errors: Dict[str, Any] = {}

    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            item_errors[str(idx)] = ["Each item must be an object."]
            continue
        form = POItemForm(formdata=json_formdata(raw))
        if not form.validate():
            item_errors[str(idx)] = form.errors
        forms.append(form)

    if item_errors:
        raise ValidationError({"items": item_errors})
    return forms


def _check_order_total(form: PurchaseOrderForm, item_forms: List[POItemForm]) -> None:
    """The grand total must fit the Numeric(12, 2) total columns."""
    lines = (
        line_total(
            round_to(item.quantity.data, QUANTITY_PLACES),
            round_to(item.unit_price.data, UNIT_PRICE_PLACES),
        )
        for item in item_forms
    )
    _, _, grand_total = order_totals(lines, round_to(form.vat_rate.data, VAT_RATE_PLACES))
    if grand_total > MAX_MONEY:
        raise ValidationError({"items": [f"Order total may not exceed {MAX_MONEY}."]})


def _validate_payload(payload: Dict[str, Any]) -> tuple[PurchaseOrderForm, List[POItemForm]]:
    """Validate header + items together so the client gets every error at once."""
    form = PurchaseOrderForm(formdata=json_formdata(payload))
    header_ok = form.validate()

    try:
        item_forms = _validate_items(payload.get("items"))
    except ValidationError as e:
        details = dict(form.errors) if not header_ok else {}
        details.update(e.details)
        raise ValidationError(details)

    if not header_ok:
        raise ValidationError(form.errors)

    if form.contract_id.data is not None and db.session.get(Contract, form.contract_id.data) is None:
        raise ValidationError({"contract_id": ["Contract does not exist."]})

    _check_order_total(form, item_forms)

    return form, item_forms


def _fill_from_forms(po: PurchaseOrder, form: PurchaseOrderForm, item_forms: List[POItemForm]) -> None:
    po.vendor_name = form.vendor_name.data.strip()
    po.contract_id = form.contract_id.data
    po.order_date = form.order_date.data
    po.expected_delivery_date = form.expected_delivery_date.data
    po.status = form.status.data
    po.vat_rate = round_to(form.vat_rate.data, VAT_RATE_PLACES)
    po.notes = (form.notes.data or "").strip() or None

    po.items.clear()
    for line_no, item_form in enumerate(item_forms, start=1):
        po.items.append(
            POItem(
                line_no=line_no,
                description=item_form.description.data.strip(),
                unit=(item_form.unit.data or "").strip() or None,
                quantity=round_to(item_form.quantity.data, QUANTITY_PLACES),
                unit_price=round_to(item_form.unit_price.data, UNIT_PRICE_PLACES),
            )
        )

    po.recalc_totals()


def _po_number_taken(po_number: str, exclude_id: int | None = None) -> bool:
    q = PurchaseOrder.query.filter(PurchaseOrder.po_number == po_number)
    if exclude_id is not None:
        q = q.filter(PurchaseOrder.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def _duplicate_po_number(po_number: str) -> ConflictError:
    return ConflictError(
        "PO number already exists.",
        details={"po_number": [f"PO number {po_number} is already in use."]},
    )


# ---------------------------------------------------------------------
# List filtering
# ---------------------------------------------------------------------
def _apply_list_filters(q):
    status = (request.args.get("status") or "").strip()
    if status:
        if status not in PO_STATUSES:
            raise ApiError("Invalid query parameter.", 400, {"status": [f"Must be one of: {', '.join(PO_STATUSES)}."]})
        q = q.filter(PurchaseOrder.status == status)

    vendor = (request.args.get("vendor") or "").strip()
    if vendor:
        q = q.filter(PurchaseOrder.vendor_name.ilike(like_pattern(vendor), escape="\\"))

    contract_id = query_int("contract_id", min_value=1, max_value=MAX_DB_ID)
    if contract_id is not None:
        q = q.filter(PurchaseOrder.contract_id == contract_id)

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = like_pattern(search)
        q = q.filter(
            or_(
                PurchaseOrder.po_number.ilike(pattern, escape="\\"),
                PurchaseOrder.vendor_name.ilike(pattern, escape="\\"),
            )
        )

    date_from = parse_optional_date(request.args.get("date_from"), "date_from")
    if date_from:
        q = q.filter(PurchaseOrder.order_date >= date_from)

    date_to = parse_optional_date(request.args.get("date_to"), "date_to")
    if date_to:
        q = q.filter(PurchaseOrder.order_date <= date_to)

    return q


def _filtered_query():
    q = PurchaseOrder.query.options(
        selectinload(PurchaseOrder.items),
        selectinload(PurchaseOrder.contract),
    )
    q = _apply_list_filters(q)
    return apply_sort(q, PurchaseOrder, SORTABLE_FIELDS, default="-order_date")


# ---------------------------------------------------------------------
# List / export
# ---------------------------------------------------------------------
@purchase_orders_bp.route("", methods=["GET"])
@login_required
def list_purchase_orders():
    return jsonify(paginate_query(_filtered_query(), lambda po: po.to_dict(with_items=False)))


@purchase_orders_bp.route("/export.xlsx", methods=["GET"])
@login_required
def export_purchase_orders_xlsx():
    buf = purchase_orders_to_xlsx(_filtered_query().all())
    return send_file(
        buf,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"purchase-orders-{date.today():%Y%m%d}.xlsx",
    )


@purchase_orders_bp.route("/<int:po_id>/pdf", methods=["GET"])
@login_required
def purchase_order_pdf(po_id: int):
    po = _load_purchase_order(po_id)
    buf = purchase_order_to_pdf(po, company_name=current_app.config.get("APP_NAME", "AMC Manager"))
    return send_file(
        buf,
        mimetype=PDF_MIMETYPE,
        as_attachment=True,
        download_name=f"{po.po_number}.pdf",
    )


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@purchase_orders_bp.route("", methods=["POST"])
@login_required
@manager_required
def create_purchase_order():
    form, item_forms = _validate_payload(get_json_body())

    po_number = (form.po_number.data or "").strip() or _next_po_number(form.order_date.data)
    if _po_number_taken(po_number):
        raise _duplicate_po_number(po_number)

    po = PurchaseOrder(po_number=po_number, created_by_id=current_user.id)
    _fill_from_forms(po, form, item_forms)

    db.session.add(po)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate_po_number(po_number)

    log_action(po, "CREATE", after=serialize_model(po))
    db.session.commit()

    current_app.logger.info("Purchase order %s created by %s", po.po_number, current_user.email)
    return jsonify({"purchase_order": po.to_dict()}), 201


@purchase_orders_bp.route("/<int:po_id>", methods=["GET"])
@login_required
def get_purchase_order(po_id: int):
    return jsonify({"purchase_order": _load_purchase_order(po_id).to_dict()})


@purchase_orders_bp.route("/<int:po_id>", methods=["PUT"])
@login_required
@manager_required
def update_purchase_order(po_id: int):
    po = _load_purchase_order(po_id)
    form, item_forms = _validate_payload(get_json_body())

    before_snapshot = serialize_model(po)

    new_number = (form.po_number.data or "").strip()
    if new_number and new_number != po.po_number:
        if _po_number_taken(new_number, exclude_id=po.id):
            raise _duplicate_po_number(new_number)
        po.po_number = new_number

    _fill_from_forms(po, form, item_forms)

    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate_po_number(po.po_number)

    log_action(po, "UPDATE", before=before_snapshot, after=serialize_model(po))
    db.session.commit()

    return jsonify({"purchase_order": po.to_dict()})


@purchase_orders_bp.route("/<int:po_id>", methods=["DELETE"])
@login_required
@manager_required
def delete_purchase_order(po_id: int):
    po = _load_purchase_order(po_id)

    log_action(po, "DELETE", before=serialize_model(po))
    db.session.delete(po)
    db.session.commit()

    return "", 204
