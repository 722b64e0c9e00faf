"""Tests for pre-flight cart validation and the sale modification rules."""

from datetime import timedelta

import pytest

from serialpos.errors import ValidationError
from serialpos.models import Sale
from serialpos.services.sale_validation_service import (
    SaleRequest,
    validate_sale,
    validate_sale_modification,
)
from serialpos.time_utils import utcnow


def _request(items, **kwargs):
    return SaleRequest.from_dict({"items": items, **kwargs})


class TestValidateSale:

    def test_empty_cart(self, db_session):
        result = validate_sale(_request([]))
        assert not result.is_valid
        assert result.errors == ["Cart is empty"]

    def test_valid_mixed_cart_totals(self, db_session, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone)[0]
        charger = make_product("Charger", 1500, stock=10)

        result = validate_sale(_request(
            [
                {"product_id": phone.id, "quantity": 1, "unit_price_cents": 50000, "serial_unit_ids": [unit.id]},
                {"product_id": charger.id, "quantity": 3, "unit_price_cents": 1500},
            ],
            discount_cents=500,
            amount_received_cents=60000,
        ))

        assert result.is_valid, result.errors
        assert result.subtotal_cents == 54500
        assert result.total_cents == 54000
        assert [i.product_name for i in result.validated_items] == ["Phone X", "Charger"]

    def test_insufficient_stock_names_product(self, db_session, make_product):
        charger = make_product("Charger", 1500, stock=1)

        result = validate_sale(_request([
            {"product_id": charger.id, "quantity": 2, "unit_price_cents": 1500},
        ]))

        assert not result.is_valid
        assert "Insufficient stock for 'Charger': requested 2, available 1" in result.errors

    def test_quantity_is_aggregated_across_lines(self, db_session, make_product):
        charger = make_product("Charger", 1500, stock=3)
        line = {"product_id": charger.id, "quantity": 2, "unit_price_cents": 1500}

        result = validate_sale(_request([line, dict(line)]))

        assert not result.is_valid
        assert any("requested 4, available 3" in e for e in result.errors)

    def test_serial_selection_must_match_quantity(self, db_session, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone, 2)[0]

        result = validate_sale(_request([
            {"product_id": phone.id, "quantity": 2, "unit_price_cents": 50000, "serial_unit_ids": [unit.id]},
        ]))

        assert not result.is_valid
        assert any("Select exactly 2" in e for e in result.errors)

    def test_units_must_belong_and_be_available(self, db_session, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        other = make_product("Phone Y", 40000, serial_type="IMEI")
        mine = make_units(phone)[0]
        foreign = make_units(other)[0]
        mine.status = "SOLD"
        db_session.commit()

        result = validate_sale(_request([
            {"product_id": phone.id, "quantity": 2, "unit_price_cents": 50000,
             "serial_unit_ids": [mine.id, foreign.id]},
        ]))

        assert not result.is_valid
        assert any("is no longer available" in e for e in result.errors)
        assert any(f"Unit {foreign.id} does not belong" in e for e in result.errors)

    def test_unit_selected_twice(self, db_session, make_product, make_units):
        phone = make_product("Phone X", 50000, serial_type="IMEI")
        unit = make_units(phone, 2)[0]
        line = {"product_id": phone.id, "quantity": 1, "unit_price_cents": 50000, "serial_unit_ids": [unit.id]}

        result = validate_sale(_request([line, dict(line)]))

        assert not result.is_valid
        assert any("selected more than once" in e for e in result.errors)

    @pytest.mark.parametrize("price", [0, -100, 1_000_000_000, "1500"])
    def test_price_bounds(self, db_session, make_product, price):
        charger = make_product("Charger", 1500, stock=5)
        result = validate_sale(_request([
            {"product_id": charger.id, "quantity": 1, "unit_price_cents": price},
        ]))
        assert not result.is_valid
        assert "Invalid price for 'Charger'" in result.errors

    def test_cash_received_must_cover_total(self, db_session, make_product):
        charger = make_product("Charger", 1500, stock=5)
        result = validate_sale(_request(
            [{"product_id": charger.id, "quantity": 2, "unit_price_cents": 1500}],
            amount_received_cents=2000,
        ))
        assert not result.is_valid
        assert any("less than the total" in e for e in result.errors)

    def test_discount_cannot_exceed_subtotal(self, db_session, make_product):
        charger = make_product("Charger", 1500, stock=5)
        result = validate_sale(_request(
            [{"product_id": charger.id, "quantity": 1, "unit_price_cents": 1500}],
            payment_type="INSTALLMENT",
            discount_cents=2000,
        ))
        assert not result.is_valid
        assert "Discount cannot exceed the subtotal" in result.errors

    def test_inactive_and_missing_products(self, db_session, make_product):
        retired = make_product("Old Phone", 10000, stock=3, is_active=False)
        result = validate_sale(_request([
            {"product_id": retired.id, "quantity": 1, "unit_price_cents": 10000},
            {"product_id": 987654, "quantity": 1, "unit_price_cents": 10000},
        ]))
        assert not result.is_valid
        assert "Product 'Old Phone' is not available for sale" in result.errors
        assert any("product 987654 not found" in e for e in result.errors)

    def test_missing_customer_is_a_warning(self, db_session, make_product):
        charger = make_product("Charger", 1500, stock=5)
        result = validate_sale(_request(
            [{"product_id": charger.id, "quantity": 1, "unit_price_cents": 1500}],
            customer_id=555,
        ))
        assert result.is_valid
        assert result.customer_id is None
        assert any("Customer not found" in w for w in result.warnings)

    def test_bad_payload_raises(self, db_session):
        with pytest.raises(ValidationError):
            SaleRequest.from_dict({"items": "nope"})
        with pytest.raises(ValidationError):
            SaleRequest.from_dict({"items": [{"quantity": 1}]})
        with pytest.raises(ValidationError):
            SaleRequest.from_dict({"items": [], "customer_id": "abc"})


class TestSaleModification:

    def _sale(self, db_session, user, *, age=timedelta(0), status="PARTIAL"):
        sale = Sale(
            user_id=user.id,
            subtotal_cents=10000,
            discount_cents=0,
            total_amount_cents=10000,
            total_paid_cents=5000,
            payment_type="INSTALLMENT",
            payment_status=status,
            created_at=utcnow() - age,
        )
        db_session.add(sale)
        db_session.commit()
        return sale

    def test_owner_within_window(self, db_session, employee_user, employee):
        sale = self._sale(db_session, employee_user)
        assert validate_sale_modification(sale, employee).can_modify

    def test_other_users_sale_needs_manager(self, db_session, manager_user, employee, manager):
        sale = self._sale(db_session, manager_user)
        assert not validate_sale_modification(sale, employee).can_modify
        assert validate_sale_modification(sale, manager).can_modify

    def test_old_sale_admin_only(self, db_session, manager_user, manager, admin):
        sale = self._sale(db_session, manager_user, age=timedelta(hours=25))
        check = validate_sale_modification(sale, manager)
        assert not check.can_modify
        assert "24 hours" in check.reason
        assert validate_sale_modification(sale, admin).can_modify

    def test_paid_sale_admin_only(self, db_session, manager_user, manager, admin):
        sale = self._sale(db_session, manager_user, status="PAID")
        assert not validate_sale_modification(sale, manager).can_modify
        assert validate_sale_modification(sale, admin).can_modify

    def test_missing_sale(self, db_session, admin):
        assert not validate_sale_modification(None, admin).can_modify
