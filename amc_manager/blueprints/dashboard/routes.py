"""
amc_manager/blueprints/dashboard/routes.py

Dashboard summary counters for the landing page.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, current_app, jsonify
from flask_login import login_required
from sqlalchemy import func

from ...extensions import db
from ...models import CONTRACT_STATUSES, PO_STATUSES, Contract, PurchaseOrder, to_money

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

RECENT_ORDERS_LIMIT = 5


def _counts_by_status(model, statuses) -> dict:
    rows = db.session.query(model.status, func.count(model.id)).group_by(model.status).all()
    counts = {status: 0 for status in statuses}
    for status, count in rows:
        counts[status] = count
    return counts


@dashboard_bp.route("/summary", methods=["GET"])
@login_required
def summary():
    today = date.today()
    window = current_app.config.get("CONTRACT_EXPIRY_WARNING_DAYS", 30)

    contract_counts = _counts_by_status(Contract, CONTRACT_STATUSES)

    expiring_q = Contract.query.filter(
        Contract.status == "active",
        Contract.end_date >= today,
        Contract.end_date <= today + timedelta(days=window),
    ).order_by(Contract.end_date.asc(), Contract.id.asc())
    expiring = expiring_q.all()

    active_value = (
        db.session.query(func.coalesce(func.sum(Contract.contract_value), 0))
        .filter(Contract.status == "active")
        .scalar()
    )

    po_counts = _counts_by_status(PurchaseOrder, PO_STATUSES)
    po_total = (
        db.session.query(func.coalesce(func.sum(PurchaseOrder.grand_total), 0))
        .filter(PurchaseOrder.status != "cancelled")
        .scalar()
    )

    recent_orders = (
        PurchaseOrder.query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
        .all()
    )

    return jsonify(
        {
            "contracts": {
                "total": sum(contract_counts.values()),
                "by_status": contract_counts,
                "active_value": str(to_money(active_value)),
                "expiring_within_days": window,
                "expiring_count": len(expiring),
                "expiring": [c.to_dict() for c in expiring[:10]],
            },
            "purchase_orders": {
                "total": sum(po_counts.values()),
                "by_status": po_counts,
                "grand_total": str(to_money(po_total)),
                "recent": [po.to_dict(with_items=False) for po in recent_orders],
            },
        }
    )
