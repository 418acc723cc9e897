"""HTTP surface: routing, error rendering and role checks."""
from datetime import date

import pytest

from app.core.security import create_access_token
from services.ledger import service as ledger


@pytest.fixture()
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {create_access_token(admin_user)}"}


class TestHealthAndTax:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}

    def test_calculate_with_explicit_config(self, client):
        r = client.post("/tax/calculate", json={"base_amount": "2000", "config": {"gst_percentage": 18}})
        assert r.status_code == 200
        body = r.json()
        assert body["total_amount"] == 2360.0
        assert "GST (18%): ₹360.00" in body["summary"]

    def test_calculate_with_hotel_config(self, client, hotel):
        body = client.post("/tax/calculate", json={"base_amount": 100}).json()
        assert body["gst_amount"] == 18.0

    def test_hotel_config(self, client, hotel):
        assert client.get("/tax/config").json()["gst_percentage"] == 18.0

    def test_negative_base_rejected(self, client):
        assert client.post("/tax/calculate", json={"base_amount": -1}).status_code == 422


class TestBillingRoutes:
    def test_calculation_and_items(self, client, make_booking):
        b = make_booking()
        assert client.get(f"/billing/{b.id}/calculation").json()["total_amount"] == 2360.0

        r = client.post(f"/billing/{b.id}/items", json={"item_name": "Dinner", "quantity": 2, "unit_price": "250"})
        assert r.status_code == 200
        assert r.json()["bill"]["total_amount"] == 2950.0
        item_id = r.json()["item_id"]

        r = client.patch(f"/billing/items/{item_id}", json={"quantity": 1})
        assert r.json()["bill"]["total_amount"] == 2655.0

        r = client.delete(f"/billing/items/{item_id}")
        assert r.json()["bill"]["total_amount"] == 2360.0

    def test_payment_flow(self, client, make_booking):
        b = make_booking()
        r = client.post(f"/billing/{b.id}/payments", json={"amount": "2360", "payment_method": "card"})
        assert r.status_code == 200
        body = r.json()
        assert body["payment"]["received_by"] == "anonymous"
        assert body["summary"]["payment_status"] == "paid"

        r = client.delete(f"/billing/payments/{body['payment']['id']}", params={"reason": "duplicate"})
        assert r.json()["summary"]["payment_status"] == "pending"

    def test_unknown_booking_renders_not_found(self, client, hotel):
        r = client.get("/billing/missing/calculation")
        assert r.status_code == 404
        assert r.json() == {"error": "not_found", "detail": "booking missing not found"}

    def test_domain_validation_error(self, client, make_booking):
        b = make_booking()
        r = client.post(f"/billing/{b.id}/payments", json={"amount": "10", "payment_method": "bitcoin"})
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

    def test_schema_validation_error(self, client, make_booking):
        b = make_booking()
        r = client.post(f"/billing/{b.id}/payments", json={"amount": "0", "payment_method": "cash"})
        assert r.status_code == 422

    def test_split_plan(self, client, make_booking):
        b = make_booking()
        splits = [{"amount": "1360", "payment_method": "card"}, {"amount": "1000", "payment_method": "cash"}]
        assert len(client.put(f"/billing/{b.id}/split-payments", json={"splits": splits}).json()) == 2
        assert len(client.get(f"/billing/{b.id}/split-payments").json()) == 2


class TestAccountRoutes:
    def test_transfer_without_funds(self, client, db):
        main = ledger.get_or_create_main_account(db)
        petty = ledger.create_account(db, name="Petty Cash", account_type="petty_cash")
        r = client.post("/accounts/transfer", json={
            "from_account_id": main.id, "to_account_id": petty.id, "amount": "100", "description": "float",
        })
        assert r.status_code == 409
        assert r.json()["error"] == "insufficient_funds"

    def test_deposit_and_balances(self, client, db):
        main = ledger.get_or_create_main_account(db)
        r = client.post(f"/accounts/{main.id}/deposit", json={"amount": "250", "description": "float"})
        assert r.status_code == 200
        assert client.get("/accounts").json()["main_account"]["balance"] == 250.0
        history = client.get("/accounts/transactions", params={"account_id": main.id}).json()
        assert [t["category"] for t in history] == ["manual_deposit"]


class TestInvoiceRoutes:
    def test_override_requires_admin(self, client, make_booking, admin_headers):
        b = make_booking()
        invoice = client.post("/invoices", json={"booking_id": b.id}).json()
        assert invoice["status"] == "pending"
        assert client.patch(f"/invoices/{invoice['id']}/status", json={"status": "sent"}).status_code == 200

        r = client.patch(f"/invoices/{invoice['id']}/status", json={"status": "pending"})
        assert r.status_code == 422

        r = client.patch(f"/invoices/{invoice['id']}/status", json={"status": "pending", "override": True})
        assert r.status_code == 401

        r = client.patch(
            f"/invoices/{invoice['id']}/status",
            json={"status": "pending", "override": True},
            headers=admin_headers,
        )
        assert r.status_code == 200
        assert r.json()["status"] == "pending"

    def test_list(self, client, make_booking):
        client.post("/invoices", json={"booking_id": make_booking().id})
        body = client.get("/invoices").json()
        assert body["total"] == 1
        assert body["items"][0]["invoice_number"].startswith("HTL-")


class TestGuestBillingRoutes:
    def test_link_lifecycle(self, client, make_booking):
        b = make_booking()
        token = client.post("/guest-billing", json={"booking_id": b.id}).json()["access_token"]

        r = client.get(f"/guest-billing/{token}")
        assert r.status_code == 200
        assert r.json()["view_count"] == 1

        assert client.delete(f"/guest-billing/{token}").json() == {"ok": True}
        r = client.get(f"/guest-billing/{token}")
        assert r.status_code == 401
        assert r.json()["error"] == "unauthorized"


class TestRevenueRoutes:
    def test_export_csv(self, client, make_booking):
        make_booking()
        r = client.get("/revenue/export", params={"start": "2024-06-01", "end": "2024-06-30"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/csv")
        assert "revenue_2024-06-01_2024-06-30.csv" in r.headers["content-disposition"]
        assert len(r.text.splitlines()) == 2

    def test_dispatch_requires_admin(self, client, staff_user, admin_headers):
        assert client.post("/revenue/dispatch").status_code == 401
        staff = {"Authorization": f"Bearer {create_access_token(staff_user)}"}
        assert client.post("/revenue/dispatch", headers=staff).status_code == 403
        r = client.post("/revenue/dispatch", headers=admin_headers)
        assert r.json() == {"ok": True, "delivered": 0}

    def test_report_update(self, client, make_booking):
        b = make_booking()
        client.post(f"/billing/{b.id}/payments", json={"amount": "2360", "payment_method": "cash"})
        r = client.post("/revenue/reports/update", json={"date": date(2024, 6, 10).isoformat(), "period_type": "daily"})
        assert r.json()["total_revenue"] == 2360.0
        listed = client.get("/revenue/reports", params={"period_type": "daily"}).json()
        assert [row["date"] for row in listed] == ["2024-06-10"]
