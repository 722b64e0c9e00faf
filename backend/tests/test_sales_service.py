"""
Tests for the sale transaction processor and sale deletion.

Covers the happy path through the register, rollback of every write when a
late step fails, concurrent unit races, duplicate submissions, and the full
reversal performed by delete_sale.
"""

from serialpos.extensions import db
from serialpos.models import (
    AuditEvent,
    CashMovement,
    CashRegister,
    CashRegisterSale,
    Payment,
    Product,
    Sale,
    SaleItem,
    SerializedUnit,
)
from serialpos.services import ledger_service, register_service, sales_service, serial_service
from serialpos.services.sale_validation_service import SaleRequest
from serialpos.services.sales_service import SaleState


def _cash_request(items, **kwargs):
    return SaleRequest.from_dict({"items": items, "payment_type": "CASH", **kwargs})


def _phone_line(product, units, price=50000):
    return {
        "product_id": product.id,
        "quantity": len(units),
        "unit_price_cents": price,
        "serial_unit_ids": [u.id for u in units],
    }


def _stock_line(product, qty, price=1500):
    return {"product_id": product.id, "quantity": qty, "unit_price_cents": price}


class TestProcessSale:

    def test_cash_serial_sale_through_register(self, db_session, employee_user, employee,
                                               make_product, make_units, open_register):
        register = open_register(employee_user, 100000)
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone)[0]

        result = sales_service.process_sale(
            _cash_request([_phone_line(phone, [unit])], amount_received_cents=60000),
            employee,
            register=register,
        )

        assert result.success, result.error
        assert result.state == SaleState.COMMITTED
        sale = db.session.get(Sale, result.sale_id)
        assert sale.payment_status == "PAID"
        assert sale.total_paid_cents == 50000

        unit = db.session.get(SerializedUnit, unit.id)
        assert unit.status == "SOLD"
        assert unit.sale_id == sale.id
        assert unit.reservation_token is None

        link = db.session.query(CashRegisterSale).filter_by(sale_id=sale.id).one()
        assert link.change_given_cents == 10000
        assert db.session.get(CashRegister, register.id).total_sales_cents == 50000

        closed = register_service.close_register(register.id, 150000, user_id=employee_user.id)
        assert closed.expected_closing_amount_cents == 150000
        assert closed.discrepancy_cents == 0
        assert closed.warnings == []

    def test_stock_sale_decrements_counter(self, db_session, employee, make_product):
        charger = make_product("Charger", 1500, stock=10)

        result = sales_service.process_sale(_cash_request([_stock_line(charger, 3)]), employee)

        assert result.success
        assert db.session.get(Product, charger.id).stock == 7
        assert any("No open cash register" in w for w in result.warnings)

    def test_installment_sale_starts_pending(self, db_session, employee, customer, make_product, make_units):
        phone = make_product("Phone X", 300000, serial_type="IMEI")
        unit = make_units(phone)[0]

        result = sales_service.process_sale(
            SaleRequest.from_dict({
                "items": [_phone_line(phone, [unit], price=300000)],
                "payment_type": "INSTALLMENT",
                "customer_id": customer.id,
            }),
            employee,
        )

        assert result.success
        sale = db.session.get(Sale, result.sale_id)
        assert sale.payment_status == "PENDING"
        assert sale.total_paid_cents == 0
        assert db.session.query(Payment).filter_by(sale_id=sale.id).count() == 0

    def test_validation_failure_writes_nothing(self, db_session, employee, make_product):
        charger = make_product("Charger", 1500, stock=1)

        result = sales_service.process_sale(_cash_request([_stock_line(charger, 2)]), employee)

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert "Insufficient stock for 'Charger'" in result.error
        assert db.session.query(Sale).count() == 0

    def test_late_failure_rolls_back_everything(self, db_session, employee_user, employee,
                                                make_product, make_units, open_register, monkeypatch):
        register = open_register(employee_user, 100000)
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        units = make_units(phone, 2)
        charger = make_product("Charger", 1500, stock=5)

        def broken_link(*args, **kwargs):
            raise RuntimeError("register link failed")

        monkeypatch.setattr(register_service, "link_cash_sale", broken_link)

        result = sales_service.process_sale(
            _cash_request([_phone_line(phone, units), _stock_line(charger, 2)]),
            employee,
        )

        assert not result.success
        assert result.state == SaleState.FAILED
        assert result.error_code == "INTERNAL_ERROR"
        assert result.error == sales_service.GENERIC_FAILURE

        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleItem).count() == 0
        assert db.session.query(Payment).count() == 0
        assert db.session.get(Product, charger.id).stock == 5
        for unit in units:
            unit = db.session.get(SerializedUnit, unit.id)
            assert unit.status == "AVAILABLE"
            assert unit.reservation_token is None
        movements = register_service.list_movements(register.id)
        assert [m.type for m in movements] == ["OPENING"]
        assert db.session.get(CashRegister, register.id).total_sales_cents == 0

    def test_unit_taken_after_validation(self, db_session, employee, make_product, make_units, monkeypatch):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        contested, free = make_units(phone, 2)
        real_validate = sales_service.validate_sale

        def validate_then_lose_race(request):
            result = real_validate(request)
            serial_service.reserve([contested.id], "OTHER-CHECKOUT")
            db.session.commit()
            return result

        monkeypatch.setattr(sales_service, "validate_sale", validate_then_lose_race)

        result = sales_service.process_sale(_cash_request([_phone_line(phone, [contested, free])]), employee)

        assert not result.success
        assert result.error_code == "STOCK_RACE"
        assert db.session.query(Sale).count() == 0
        assert db.session.get(SerializedUnit, free.id).status == "AVAILABLE"
        taken = db.session.get(SerializedUnit, contested.id)
        assert taken.status == "RESERVED"
        assert taken.reservation_token == "OTHER-CHECKOUT"

    def test_second_sale_of_same_unit_fails(self, db_session, employee, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone)[0]
        request = _cash_request([_phone_line(phone, [unit])])

        first = sales_service.process_sale(request, employee)
        second = sales_service.process_sale(request, employee)

        assert first.success
        assert not second.success
        assert second.error_code == "VALIDATION_ERROR"
        assert db.session.query(Sale).count() == 1

    def test_duplicate_submission_returns_existing_sale(self, db_session, employee, make_product):
        charger = make_product("Charger", 1500, stock=10)
        request = _cash_request([_stock_line(charger, 1)], idempotency_key="checkout-7f3a")

        first = sales_service.process_sale(request, employee)
        again = sales_service.process_sale(request, employee)

        assert first.success and again.success
        assert again.duplicate
        assert again.sale_id == first.sale_id
        assert db.session.query(Sale).count() == 1
        assert db.session.get(Product, charger.id).stock == 9

    def test_idempotency_key_of_another_user_is_rejected(self, db_session, employee, manager, make_product):
        charger = make_product("Charger", 1500, stock=10)
        request = _cash_request([_stock_line(charger, 1)], idempotency_key="checkout-9c21")

        mine = sales_service.process_sale(request, manager)
        theirs = sales_service.process_sale(request, employee)

        assert mine.success
        assert not theirs.success
        assert theirs.error_code == "CONFLICT"
        assert theirs.sale is None and theirs.sale_id is None
        assert theirs.state == SaleState.FAILED
        assert db.session.query(Sale).count() == 1
        assert db.session.get(Product, charger.id).stock == 9

    def test_sale_to_dict_includes_units_per_line(self, db_session, employee, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        units = make_units(phone, 2)
        charger = make_product("Charger", 1500, stock=4)

        result = sales_service.process_sale(
            _cash_request([_phone_line(phone, units), _stock_line(charger, 1)]), employee
        )
        data = sales_service.sale_to_dict(sales_service.get_sale(result.sale_id))

        assert [i["line_number"] for i in data["items"]] == [1, 2]
        assert len(data["items"][0]["serial_units"]) == 2
        assert data["items"][1]["serial_units"] == []


class TestDeleteSale:

    def _mixed_sale(self, employee, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        units = make_units(phone, 2)
        charger = make_product("Charger", 1500, stock=10)
        result = sales_service.process_sale(
            _cash_request([_phone_line(phone, units), _stock_line(charger, 3)]), employee
        )
        assert result.success, result.error
        return result.sale_id, units, charger

    def test_delete_restores_units_and_stock(self, db_session, employee, admin, make_product, make_units):
        sale_id, units, charger = self._mixed_sale(employee, make_product, make_units)
        assert db.session.get(Product, charger.id).stock == 7

        result = sales_service.delete_sale(sale_id, admin, "Customer returned the order")

        assert result.success, result.error
        assert result.restored_units == 2
        assert result.restored_stock == [{"product_id": charger.id, "quantity": 3}]
        assert db.session.get(Sale, sale_id) is None
        assert db.session.query(SaleItem).count() == 0
        assert db.session.query(Payment).count() == 0
        assert db.session.get(Product, charger.id).stock == 10
        for unit in units:
            unit = db.session.get(SerializedUnit, unit.id)
            assert unit.status == "AVAILABLE"
            assert unit.sale_id is None

        event = db.session.query(AuditEvent).filter_by(event_type="sale.deleted").one()
        assert event.note == "Customer returned the order"

        history = ledger_service.list_events(sale_id=sale_id)
        assert [e.event_type for e in history] == ["sale.deleted", "sale.created"]
        assert ledger_service.list_events(sale_id=sale_id, event_type="sale.deleted")[0].id == event.id

    def test_delete_requires_permission(self, db_session, employee, make_product, make_units):
        sale_id, units, charger = self._mixed_sale(employee, make_product, make_units)

        result = sales_service.delete_sale(sale_id, employee, "mistake")

        assert not result.success
        assert result.error_code == "PERMISSION_DENIED"
        assert db.session.get(Sale, sale_id) is not None
        assert db.session.get(Product, charger.id).stock == 7

    def test_delete_requires_reason(self, db_session, employee, admin, make_product, make_units):
        sale_id, _, _ = self._mixed_sale(employee, make_product, make_units)

        result = sales_service.delete_sale(sale_id, admin, "   ")

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert db.session.get(Sale, sale_id) is not None

    def test_delete_unknown_sale(self, db_session, admin):
        result = sales_service.delete_sale(31337, admin, "cleanup")
        assert not result.success
        assert result.error_code == "NOT_FOUND"

    def test_delete_reverses_cash_on_open_register(self, db_session, employee_user, employee, admin,
                                                   make_product, make_units, open_register):
        register = open_register(employee_user, 100000)
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone)[0]
        sale_id = sales_service.process_sale(
            _cash_request([_phone_line(phone, [unit])]), employee, register=register
        ).sale_id

        impact = sales_service.get_sale_deletion_impact(sale_id)
        assert impact["registers"] == [{
            "cash_register_id": register.id,
            "status": "OPEN",
            "net_amount_cents": 50000,
            "will_reverse": True,
        }]

        result = sales_service.delete_sale(sale_id, admin, "Duplicate ticket")

        assert result.success
        assert result.reversed_cash_cents == 50000
        assert db.session.get(CashRegister, register.id).total_sales_cents == 0
        reversal = (
            db.session.query(CashMovement)
            .filter_by(cash_register_id=register.id, category="sale_reversal")
            .one()
        )
        assert reversal.amount_cents == -50000
        assert db.session.query(CashRegisterSale).count() == 0

    def test_closed_register_is_left_untouched(self, db_session, employee_user, employee, admin,
                                               make_product, make_units, open_register):
        register = open_register(employee_user, 0)
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone)[0]
        sale_id = sales_service.process_sale(
            _cash_request([_phone_line(phone, [unit])]), employee, register=register
        ).sale_id
        register_service.close_register(register.id, 50000, user_id=employee_user.id)

        result = sales_service.delete_sale(sale_id, admin, "Late return")

        assert result.success
        assert result.reversed_cash_cents == 0
        assert db.session.get(CashRegister, register.id).total_sales_cents == 50000
        assert db.session.get(SerializedUnit, unit.id).status == "AVAILABLE"
