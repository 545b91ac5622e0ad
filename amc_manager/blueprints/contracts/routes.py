"""
amc_manager/blueprints/contracts/routes.py

Maintenance contract (AMC) routes.

Includes:
- Paginated list with per-column server-side filtering and sorting
- Create / read / update / delete
- XLSX and PDF export of the filtered list

Access:
- Any authenticated user can read.
- Manager/admin can create, update and delete (viewers are also stopped by the global guard).
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import current_user, login_required
from sqlalchemy import func, or_

from ...audit import log_action, serialize_model
from ...errors import ApiError
from ...exports import PDF_MIMETYPE, XLSX_MIMETYPE, contracts_to_pdf, contracts_to_xlsx
from ...extensions import db
from ...forms import ContractForm, validate_form
from ...models import CONTRACT_STATUSES, MONEY_PLACES, Contract, round_to
from ...security import manager_required
from ...utils import (
    apply_sort,
    get_json_body,
    like_pattern,
    load_or_404,
    paginate_query,
    parse_optional_date,
    query_int,
)

contracts_bp = Blueprint("contracts", __name__, url_prefix="/api/contracts")

SORTABLE_FIELDS = (
    "contract_number",
    "title",
    "vendor_name",
    "start_date",
    "end_date",
    "contract_value",
    "status",
    "created_at",
)

# Upper bound for ?expiring_within (days)
MAX_EXPIRING_WITHIN_DAYS = 3650


# ---------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------
def _load_contract(contract_id: int) -> Contract:
    return load_or_404(Contract, contract_id, "Contract")


def _apply_list_filters(q):
    """Apply filters from the query string."""
    status = (request.args.get("status") or "").strip()
    if status:
        if status not in CONTRACT_STATUSES:
            raise ApiError("Invalid query parameter.", 400, {"status": [f"Must be one of: {', '.join(CONTRACT_STATUSES)}."]})
        q = q.filter(Contract.status == status)

    vendor = (request.args.get("vendor") or "").strip()
    if vendor:
        q = q.filter(Contract.vendor_name.ilike(like_pattern(vendor), escape="\\"))

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = like_pattern(search)
        q = q.filter(
            or_(
                Contract.contract_number.ilike(pattern, escape="\\"),
                Contract.title.ilike(pattern, escape="\\"),
                Contract.vendor_name.ilike(pattern, escape="\\"),
                func.coalesce(Contract.customer_name, "").ilike(pattern, escape="\\"),
            )
        )

    expiring_within = query_int("expiring_within", min_value=0, max_value=MAX_EXPIRING_WITHIN_DAYS)
    if expiring_within is not None:
        today = date.today()
        q = q.filter(
            Contract.status == "active",
            Contract.end_date >= today,
            Contract.end_date <= today + timedelta(days=expiring_within),
        )

    start_from = parse_optional_date(request.args.get("start_from"), "start_from")
    if start_from:
        q = q.filter(Contract.start_date >= start_from)

    end_to = parse_optional_date(request.args.get("end_to"), "end_to")
    if end_to:
        q = q.filter(Contract.end_date <= end_to)

    return q


def _filtered_query():
    q = _apply_list_filters(Contract.query)
    return apply_sort(q, Contract, SORTABLE_FIELDS, default="-created_at")


def _fill_from_form(contract: Contract, form: ContractForm) -> None:
    contract.contract_number = form.contract_number.data.strip()
    contract.title = form.title.data.strip()
    contract.vendor_name = form.vendor_name.data.strip()
    contract.customer_name = (form.customer_name.data or "").strip() or None
    contract.asset_description = (form.asset_description.data or "").strip() or None
    contract.location = (form.location.data or "").strip() or None
    contract.start_date = form.start_date.data
    contract.end_date = form.end_date.data
    contract.contract_value = round_to(form.contract_value.data, MONEY_PLACES)
    contract.billing_cycle = form.billing_cycle.data
    contract.status = form.status.data
    contract.contact_email = (form.contact_email.data or "").strip().lower() or None
    contract.notes = (form.notes.data or "").strip() or None


# ---------------------------------------------------------------------
# List / export
# ---------------------------------------------------------------------
@contracts_bp.route("", methods=["GET"])
@login_required
def list_contracts():
    return jsonify(paginate_query(_filtered_query(), Contract.to_dict))


@contracts_bp.route("/export.xlsx", methods=["GET"])
@login_required
def export_contracts_xlsx():
    contracts = _filtered_query().all()
    buf = contracts_to_xlsx(contracts)
    return send_file(
        buf,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"contracts-{date.today():%Y%m%d}.xlsx",
    )


@contracts_bp.route("/export.pdf", methods=["GET"])
@login_required
def export_contracts_pdf():
    contracts = _filtered_query().all()
    buf = contracts_to_pdf(contracts, title=f"{current_app.config.get('APP_NAME', 'AMC Manager')}: Maintenance Contracts")
    return send_file(
        buf,
        mimetype=PDF_MIMETYPE,
        as_attachment=True,
        download_name=f"contracts-{date.today():%Y%m%d}.pdf",
    )


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@contracts_bp.route("", methods=["POST"])
@login_required
@manager_required
def create_contract():
    form = validate_form(ContractForm, get_json_body())

    contract = Contract(created_by_id=current_user.id)
    _fill_from_form(contract, form)

    db.session.add(contract)
    db.session.flush()

    log_action(contract, "CREATE", after=serialize_model(contract))
    db.session.commit()

    current_app.logger.info("Contract %s created by %s", contract.contract_number, current_user.email)
    return jsonify({"contract": contract.to_dict()}), 201


@contracts_bp.route("/<int:contract_id>", methods=["GET"])
@login_required
def get_contract(contract_id: int):
    contract = _load_contract(contract_id)
    data = contract.to_dict()
    data["purchase_orders"] = [po.to_dict(with_items=False) for po in contract.purchase_orders]
    return jsonify({"contract": data})


@contracts_bp.route("/<int:contract_id>", methods=["PUT"])
@login_required
@manager_required
def update_contract(contract_id: int):
    contract = _load_contract(contract_id)
    form = validate_form(ContractForm, get_json_body())

    before_snapshot = serialize_model(contract)
    _fill_from_form(contract, form)
    db.session.flush()

    log_action(contract, "UPDATE", before=before_snapshot, after=serialize_model(contract))
    db.session.commit()

    return jsonify({"contract": contract.to_dict()})


@contracts_bp.route("/<int:contract_id>", methods=["DELETE"])
@login_required
@manager_required
def delete_contract(contract_id: int):
    """Delete a contract. Linked purchase orders are kept and unlinked (FK SET NULL)."""
    contract = _load_contract(contract_id)
    before_snapshot = serialize_model(contract)

    for po in list(contract.purchase_orders):
        po.contract_id = None

    log_action(contract, "DELETE", before=before_snapshot)
    db.session.delete(contract)
    db.session.commit()

    return "", 204
