"""Bill calculation and bill-item repricing."""
from decimal import Decimal

import pytest

from app.core.errors import NotFound, ValidationError
from app.db.models.billing import Booking
from app.db.models.enums import RevenueCategory
from services.billing.calculator import calculate_bill, category_breakdown, price_item
from services.billing.catalog import create_service, get_services
from services.billing.items import add_bill_item, get_bill_items, remove_bill_item, update_bill_item
from services.tax.calculator import TaxConfig


def _reload(db, booking_id):
    db.expire_all()
    return db.get(Booking, booking_id)


class TestBookingTotal:
    def test_room_rate_times_nights(self, db, make_booking):
        b = make_booking(nights=2)
        b = _reload(db, b.id)
        assert b.base_amount == Decimal("4000.00")
        assert b.gst_amount == Decimal("720.00")
        assert b.total_amount == Decimal("4720.00")

    def test_stored_room_charge_wins(self, db, make_booking):
        b = make_booking(nights=3, room_base_amount="2500")
        bill = calculate_bill(db, b.id)
        assert bill.room_base_amount == Decimal("2500.00")
        assert bill.total_amount == Decimal("2950.00")

    def test_room_discount_reduces_taxable_subtotal(self, db, make_booking):
        b = make_booking(room_discount_amount="200")
        bill = calculate_bill(db, b.id)
        assert bill.subtotal == Decimal("1800.00")
        assert bill.gst_amount == Decimal("324.00")
        assert bill.total_amount == Decimal("2124.00")

    def test_stored_fields_match_calculation(self, db, make_booking):
        b = make_booking()
        add_bill_item(db, b.id, item_name="Dinner", quantity=2, unit_price="250")
        bill = calculate_bill(db, b.id)
        b = _reload(db, b.id)
        assert b.total_amount == bill.total_amount
        assert b.total_tax_amount == bill.total_tax_amount
        assert b.discount_amount == bill.discount_amount

    def test_unknown_booking(self, db, hotel):
        with pytest.raises(NotFound, match="not found"):
            calculate_bill(db, "missing")


class TestBillItems:
    def test_untagged_item_follows_hotel_rate(self, db, make_booking):
        b = make_booking()
        item = add_bill_item(db, b.id, item_name="Dinner", quantity=2, unit_price="250")
        assert item.total_price == Decimal("500.00")
        assert item.tax_rate == Decimal("18")
        assert item.tax_amount == Decimal("90.00")
        assert item.final_amount == Decimal("590.00")
        assert _reload(db, b.id).total_amount == Decimal("2950.00")

    def test_item_discount_applies_before_tax(self, db, make_booking):
        b = make_booking()
        item = add_bill_item(db, b.id, item_name="Airport Taxi", unit_price="1000", discount="100")
        assert item.tax_amount == Decimal("162.00")
        assert item.final_amount == Decimal("1062.00")

    def test_tagged_item_keeps_its_rate(self, db, hotel, make_booking):
        b = make_booking()
        tagged = add_bill_item(db, b.id, item_name="Minibar", unit_price="100", gst_percentage="5")
        untagged = add_bill_item(db, b.id, item_name="Laundry", unit_price="100")

        hotel.gst_percentage = Decimal("12")
        db.commit()

        update_bill_item(db, tagged.id, quantity=2)
        update_bill_item(db, untagged.id, quantity=2)
        db.expire_all()
        assert tagged.tax_rate == Decimal("5")
        assert tagged.tax_amount == Decimal("10.00")
        assert untagged.tax_rate == Decimal("12")
        assert untagged.tax_amount == Decimal("24.00")

    def test_patch_can_clear_tag(self, db, make_booking):
        b = make_booking()
        item = add_bill_item(db, b.id, item_name="Minibar", unit_price="100", gst_percentage="5")
        update_bill_item(db, item.id, gst_percentage=None)
        assert item.gst_percentage is None
        assert item.tax_rate == Decimal("18")

    def test_not_applicable_item_carries_no_tax(self, db, make_booking):
        b = make_booking()
        item = add_bill_item(db, b.id, item_name="Deposit handling", unit_price="300", gst_applicable=False)
        assert item.tax_amount == Decimal("0.00")
        assert item.final_amount == Decimal("300.00")

    def test_remove_item_recalculates(self, db, make_booking):
        b = make_booking()
        item = add_bill_item(db, b.id, item_name="Dinner", quantity=2, unit_price="250")
        assert remove_bill_item(db, item.id) == b.id
        assert _reload(db, b.id).total_amount == Decimal("2360.00")
        assert get_bill_items(db, b.id) == []

    def test_unknown_service(self, db, make_booking):
        b = make_booking()
        with pytest.raises(NotFound, match="service"):
            add_bill_item(db, b.id, item_name="Ghost", unit_price="10", service_id="nope")

    def test_unknown_item(self, db, hotel):
        with pytest.raises(NotFound):
            update_bill_item(db, "missing", quantity=1)

    def test_non_numeric_price_rejected(self):
        with pytest.raises(ValidationError, match="must be numeric"):
            price_item(quantity=1, unit_price="abc", discount=0, gst_applicable=True, gst_percentage=None,
                       config=TaxConfig.build(gst_percentage=18))


class TestCategoryBreakdown:
    def test_items_by_service_category_rest_to_accommodation(self, db, make_booking, make_service):
        spa = make_service()
        b = make_booking()
        add_bill_item(db, b.id, item_name="Swedish Massage", unit_price="1500", service_id=spa.id)
        add_bill_item(db, b.id, item_name="Newspaper", unit_price="50")
        b = _reload(db, b.id)

        breakdown = category_breakdown(b)
        assert breakdown[RevenueCategory.SPA] == Decimal("1770.00")
        assert breakdown[RevenueCategory.OTHER] == Decimal("59.00")
        assert breakdown[RevenueCategory.ACCOMMODATION] == Decimal("2360.00")
        assert sum(breakdown.values()) == b.total_amount

    def test_item_tax_overrun_falls_back_to_net(self, db, hotel, make_booking):
        hotel.tax_enabled = False
        db.commit()
        b = make_booking(room_base_amount="0")
        add_bill_item(db, b.id, item_name="Champagne", unit_price="1000", gst_percentage="28")
        b = _reload(db, b.id)

        assert b.total_amount == Decimal("1000.00")
        assert category_breakdown(b) == {RevenueCategory.OTHER: Decimal("1000.00")}


class TestServiceCatalog:
    def test_create_and_filter(self, db):
        create_service(db, name="Airport Pickup", category="transport", price="800")
        create_service(db, name="Club Sandwich", category="food_beverage", price="350")
        assert [s.name for s in get_services(db, "transport")] == ["Airport Pickup"]
        assert len(get_services(db)) == 2

    def test_unknown_category(self, db):
        with pytest.raises(ValidationError, match="category must be one of"):
            create_service(db, name="Casino", category="gaming", price="1")
