"""
End-to-end API tests: register a unit, open a drawer, sell, inspect, delete,
and settle an installment sale over HTTP.
"""

import random

from serialpos.extensions import db
from serialpos.models import SerializedUnit
from serialpos.services.serial_service import generate_test_imei



def _sale_body(phone_id, unit_id, **extra):
    body = {
        "items": [{"product_id": phone_id, "quantity": 1, "unit_price_cents": 50000, "serial_unit_ids": [unit_id]}],
        "payment_type": "CASH",
    }
    body.update(extra)
    return body


class TestInventoryApi:

    def test_register_units_and_availability(self, client, manager_headers, make_product):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        imei = generate_test_imei(random.Random(99))

        resp = client.post(
            f"/api/products/{phone.id}/serial-units",
            json={"items": [{"imei_number": imei}, {"imei_number": "123"}]},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        data = resp.get_json()
        assert len(data["created"]) == 1
        assert len(data["rejected"]) == 1

        resp = client.get(f"/api/products/{phone.id}/availability", headers=manager_headers)
        assert resp.get_json()["available"] == 1

        resp = client.post(
            "/api/products/identifiers/check-duplicate",
            json={"value": imei, "kind": "IMEI"},
            headers=manager_headers,
        )
        assert resp.get_json()["is_duplicate"] is True

    def test_unknown_product_availability(self, client, employee_headers):
        resp = client.get("/api/products/777/availability", headers=employee_headers)
        assert resp.status_code == 404

    def test_product_list_shows_available(self, client, employee_headers, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        make_units(phone, 2)
        make_product("Charger", 1500, stock=4)

        resp = client.get("/api/products", headers=employee_headers)
        assert resp.status_code == 200
        available = {p["name"]: p["available"] for p in resp.get_json()["products"]}
        assert available == {"Charger": 4, "Phone X": 2}


class TestSaleApi:

    def test_cash_sale_through_register(self, client, employee_headers, admin_headers, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone)[0]

        resp = client.post("/api/cash-registers/open", json={"opening_amount_cents": 100000}, headers=employee_headers)
        assert resp.status_code == 201
        register_id = resp.get_json()["register"]["id"]

        resp = client.post("/api/cash-registers/open", json={"opening_amount_cents": 0}, headers=employee_headers)
        assert resp.status_code == 409

        resp = client.post("/api/sales/validate", json=_sale_body(phone.id, unit.id), headers=employee_headers)
        assert resp.get_json()["is_valid"] is True

        resp = client.post(
            "/api/sales",
            json=_sale_body(phone.id, unit.id, amount_received_cents=50000, idempotency_key="k-1"),
            headers=employee_headers,
        )
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["items"][0]["serial_units"][0]["id"] == unit.id
        assert sale["cash_register_sale"]["cash_register_id"] == register_id

        resp = client.post(
            "/api/sales",
            json=_sale_body(phone.id, unit.id, idempotency_key="k-1"),
            headers=employee_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["duplicate"] is True

        resp = client.post(
            "/api/sales",
            json=_sale_body(phone.id, unit.id, idempotency_key="k-1"),
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["sale"] is None

        resp = client.get(f"/api/cash-registers/{register_id}/close-preview?actual_amount_cents=150000",
                          headers=employee_headers)
        assert resp.get_json()["discrepancy_cents"] == 0

        resp = client.post(f"/api/cash-registers/{register_id}/close",
                           json={"actual_amount_cents": 150000}, headers=employee_headers)
        assert resp.status_code == 200
        assert resp.get_json()["register"]["status"] == "CLOSED"

        resp = client.get(f"/api/sales/{sale['id']}/deletion-impact", headers=admin_headers)
        assert resp.get_json()["registers"][0]["will_reverse"] is False

        resp = client.delete(f"/api/sales/{sale['id']}", json={"reason": "Customer returned it"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["restored_units"] == 1

        resp = client.get(f"/api/sales/{sale['id']}/audit-events", headers=admin_headers)
        assert resp.status_code == 200
        events = resp.get_json()["events"]
        assert events[0]["event_type"] == "sale.deleted"
        assert events[0]["note"] == "Customer returned it"

        db.session.expire_all()
        assert db.session.get(SerializedUnit, unit.id).status == "AVAILABLE"

    def test_invalid_sale_returns_errors(self, client, employee_headers, make_product):
        charger = make_product("Charger", 1500, stock=1)

        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": charger.id, "quantity": 2, "unit_price_cents": 1500}]},
            headers=employee_headers,
        )

        assert resp.status_code == 400
        data = resp.get_json()
        assert data["error_code"] == "VALIDATION_ERROR"
        assert any("Charger" in e for e in data["errors"])

    def test_delete_requires_reason(self, client, admin_headers):
        resp = client.delete("/api/sales/1", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_other_users_register_hidden(self, client, employee_headers, manager_headers, manager_user):
        resp = client.post("/api/cash-registers/open", json={"opening_amount_cents": 0}, headers=manager_headers)
        register_id = resp.get_json()["register"]["id"]

        resp = client.get(f"/api/cash-registers/{register_id}", headers=employee_headers)
        assert resp.status_code == 403


class TestInstallmentApi:

    def test_installment_flow(self, client, employee_headers, manager_headers, customer, make_product, make_units):
        phone = make_product("Phone Pro", 300000, serial_type="IMEI")
        unit = make_units(phone)[0]

        resp = client.post(
            "/api/sales",
            json={
                "items": [{"product_id": phone.id, "quantity": 1, "unit_price_cents": 300000,
                           "serial_unit_ids": [unit.id]}],
                "payment_type": "INSTALLMENT",
                "customer_id": customer.id,
            },
            headers=employee_headers,
        )
        assert resp.status_code == 201
        sale_id = resp.get_json()["sale_id"]

        resp = client.post(f"/api/installments/sales/{sale_id}", json={"amount_cents": 100000},
                           headers=employee_headers)
        assert resp.status_code == 201
        installment_id = resp.get_json()["installment"]["id"]
        assert resp.get_json()["summary"]["payment_status"] == "PARTIAL"

        resp = client.post(f"/api/installments/sales/{sale_id}", json={"amount_cents": 250000},
                           headers=employee_headers)
        assert resp.status_code == 400

        resp = client.put(f"/api/installments/{installment_id}", json={"amount_cents": 300000},
                          headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["summary"]["payment_status"] == "PAID"

        # Fully paid: only an admin may change it now
        resp = client.delete(f"/api/installments/{installment_id}", headers=manager_headers)
        assert resp.status_code == 403
