"""
amc_manager/seed.py

Bootstrap and maintenance tasks used by the CLI.

Rules:
- Safe to run multiple times (idempotent).
- ensure_admin(): creates the admin or promotes/reactivates an existing account.
- seed_demo_data(): demo contracts + purchase orders, matched by contract/PO number.
- expire_overdue_contracts(): active contracts past their end date -> expired.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from .audit import log_action, serialize_model
from .extensions import db
from .models import ROLE_ADMIN, Contract, POItem, PurchaseOrder, User


DEMO_CONTRACTS = [
    # number, title, vendor, customer, start offset (days), length (days), value, cycle
    ("AMC-2024-001", "HVAC maintenance - Head office", "CoolAir Services", "Head Office", -300, 365, Decimal("12000.00"), "quarterly"),
    ("AMC-2024-002", "Lift maintenance - Tower B", "Vertex Elevators", "Tower B", -340, 365, Decimal("8400.00"), "monthly"),
    ("AMC-2024-003", "UPS and battery bank", "PowerSafe Ltd", "Data Center", -30, 730, Decimal("5600.00"), "yearly"),
    ("AMC-2023-014", "Fire alarm system", "SafeGuard Fire", "Warehouse", -400, 365, Decimal("3100.00"), "half_yearly"),
]

DEMO_PURCHASE_ORDERS = [
    # number, vendor, contract number, items (description, unit, qty, price), vat
    (
        "PO-DEMO-00001",
        "CoolAir Services",
        "AMC-2024-001",
        [("Air filter set", "set", Decimal("4"), Decimal("85.00")), ("Refrigerant top-up", "kg", Decimal("6"), Decimal("22.50"))],
        Decimal("18"),
    ),
    (
        "PO-DEMO-00002",
        "PowerSafe Ltd",
        "AMC-2024-003",
        [("12V 100Ah battery", "pcs", Decimal("16"), Decimal("140.00"))],
        Decimal("18"),
    ),
]


def ensure_admin(email: str, name: str, password: str) -> tuple[User, bool]:
    """Create (or promote) an admin account. Returns (user, created)."""
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    created = user is None

    if created:
        user = User(email=email, name=name, role=ROLE_ADMIN, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        log_action(user, "CREATE", after=serialize_model(user), actor=user)
    else:
        before = serialize_model(user)
        user.role = ROLE_ADMIN
        user.is_active = True
        user.set_password(password)
        db.session.flush()
        log_action(user, "UPDATE", before=before, after=serialize_model(user), actor=user)

    db.session.commit()
    return user, created


def seed_demo_data() -> tuple[int, int]:
    """Insert demo contracts and purchase orders that do not exist yet."""
    today = date.today()
    contracts_added = 0
    orders_added = 0

    for number, title, vendor, customer, start_offset, length, value, cycle in DEMO_CONTRACTS:
        if Contract.query.filter_by(contract_number=number).first():
            continue
        start = today + timedelta(days=start_offset)
        end = start + timedelta(days=length)
        db.session.add(
            Contract(
                contract_number=number,
                title=title,
                vendor_name=vendor,
                customer_name=customer,
                start_date=start,
                end_date=end,
                contract_value=value,
                billing_cycle=cycle,
                status="active",
            )
        )
        contracts_added += 1

    db.session.flush()

    for number, vendor, contract_number, items, vat in DEMO_PURCHASE_ORDERS:
        if PurchaseOrder.query.filter_by(po_number=number).first():
            continue
        contract = Contract.query.filter_by(contract_number=contract_number).first()
        po = PurchaseOrder(
            po_number=number,
            vendor_name=vendor,
            contract_id=contract.id if contract else None,
            order_date=today,
            status="draft",
            vat_rate=vat,
        )
        for idx, (description, unit, qty, price) in enumerate(items, start=1):
            po.items.append(POItem(line_no=idx, description=description, unit=unit, quantity=qty, unit_price=price))
        po.recalc_totals()
        db.session.add(po)
        orders_added += 1

    db.session.commit()
    return contracts_added, orders_added


def expire_overdue_contracts(today: date | None = None) -> int:
    """Mark active contracts whose end_date is before today as expired."""
    today = today or date.today()
    overdue = Contract.query.filter(Contract.status == "active", Contract.end_date < today).all()

    for contract in overdue:
        before = serialize_model(contract)
        contract.status = "expired"
        log_action(contract, "UPDATE", before=before, after=serialize_model(contract))

    db.session.commit()
    return len(overdue)
