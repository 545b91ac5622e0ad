from datetime import date, timedelta


def _contract(client, headers, number, status="active", ends_in=200, value="1000"):
    today = date.today()
    r = client.post(
        "/api/contracts",
        json={
            "contract_number": number,
            "title": f"Maintenance {number}",
            "vendor_name": "CoolAir Services",
            "start_date": (today - timedelta(days=100)).isoformat(),
            "end_date": (today + timedelta(days=ends_in)).isoformat(),
            "contract_value": value,
            "status": status,
        },
        headers=headers,
    )
    assert r.status_code == 201, r.json


def _order(client, headers, status="draft", unit_price="100"):
    r = client.post(
        "/api/purchase-orders",
        json={
            "vendor_name": "CoolAir Services",
            "order_date": date.today().isoformat(),
            "status": status,
            "items": [{"description": "Service visit", "quantity": 1, "unit_price": unit_price}],
        },
        headers=headers,
    )
    assert r.status_code == 201, r.json


def test_empty_dashboard(client, viewer_headers):
    r = client.get("/api/dashboard/summary", headers=viewer_headers)
    assert r.status_code == 200
    assert r.json["contracts"]["total"] == 0
    assert r.json["contracts"]["by_status"] == {"draft": 0, "active": 0, "expired": 0, "cancelled": 0}
    assert r.json["contracts"]["active_value"] == "0.00"
    assert r.json["purchase_orders"]["grand_total"] == "0.00"
    assert r.json["purchase_orders"]["recent"] == []


def test_summary_counts(client, manager_headers, viewer_headers):
    _contract(client, manager_headers, "A-1", ends_in=10, value="1000.50")
    _contract(client, manager_headers, "A-2", ends_in=200, value="2000")
    _contract(client, manager_headers, "C-1", status="cancelled", ends_in=5)

    _order(client, manager_headers, unit_price="100")
    _order(client, manager_headers, status="approved", unit_price="250.25")
    _order(client, manager_headers, status="cancelled", unit_price="999")

    r = client.get("/api/dashboard/summary", headers=viewer_headers)
    assert r.status_code == 200

    contracts = r.json["contracts"]
    assert contracts["total"] == 3
    assert contracts["by_status"]["active"] == 2
    assert contracts["by_status"]["cancelled"] == 1
    assert contracts["active_value"] == "3000.50"
    assert contracts["expiring_within_days"] == 30
    assert contracts["expiring_count"] == 1
    assert contracts["expiring"][0]["contract_number"] == "A-1"

    orders = r.json["purchase_orders"]
    assert orders["total"] == 3
    assert orders["by_status"]["approved"] == 1
    assert orders["grand_total"] == "350.25"
    assert len(orders["recent"]) == 3


def test_dashboard_requires_login(client):
    assert client.get("/api/dashboard/summary").status_code == 401
