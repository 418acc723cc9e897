"""GST invoices: numbering, tax split, HSN codes and status transitions."""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.core.errors import Conflict, NotFound, ValidationError
from app.db.models.enums import ServiceCategory
from app.db.models.invoicing import Invoice
from services.billing.items import add_bill_item
from services.invoicing import service as invoicing
from services.invoicing.numbering import month_stem, next_invoice_number

ISSUED = datetime(2024, 6, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture()
def june(monkeypatch):
    monkeypatch.setattr(invoicing, "utcnow", lambda: ISSUED)


class TestNumbering:
    def test_sequence_per_month(self, db, make_booking, june):
        first = invoicing.generate_gst_invoice(db, make_booking().id)
        second = invoicing.generate_gst_invoice(db, make_booking().id)
        assert first.invoice_number == "HTL-202406-0001"
        assert second.invoice_number == "HTL-202406-0002"

    def test_hotel_prefix(self, db, hotel, make_booking, june):
        hotel.invoice_prefix = "SEA"
        db.commit()
        assert invoicing.generate_gst_invoice(db, make_booking().id).invoice_number == "SEA-202406-0001"

    def test_new_month_restarts(self, db):
        assert next_invoice_number(db, "HTL", date(2024, 7, 1)) == "HTL-202407-0001"

    def test_bad_prefix(self):
        with pytest.raises(ValidationError, match="invoice prefix"):
            month_stem("HOTEL-1", date(2024, 6, 1))

    def test_taken_number_is_retried(self, db, make_booking, june, monkeypatch):
        invoicing.generate_gst_invoice(db, make_booking().id)
        proposals = iter(["HTL-202406-0001"])

        def stale_then_fresh(session, prefix, on):
            return next(proposals, None) or next_invoice_number(session, prefix, on)

        monkeypatch.setattr(invoicing, "next_invoice_number", stale_then_fresh)
        second = invoicing.generate_gst_invoice(db, make_booking().id)
        assert second.invoice_number == "HTL-202406-0002"

    def test_gives_up_after_retries(self, db, make_booking, june, monkeypatch):
        invoicing.generate_gst_invoice(db, make_booking().id)
        monkeypatch.setattr(invoicing, "next_invoice_number", lambda session, prefix, on: "HTL-202406-0001")
        monkeypatch.setattr(invoicing, "INVOICE_NUMBER_MAX_RETRIES", 2)
        with pytest.raises(Conflict, match="after 2 attempts"):
            invoicing.generate_gst_invoice(db, make_booking().id)
        assert db.query(Invoice).count() == 1


class TestGenerateInvoice:
    def test_one_invoice_per_booking(self, db, make_booking):
        b = make_booking()
        first = invoicing.generate_gst_invoice(db, b.id)
        again = invoicing.generate_gst_invoice(db, b.id, notes="second call")
        assert again.id == first.id
        assert db.query(Invoice).count() == 1

    def test_snapshot_of_bill(self, db, make_booking, make_service):
        spa = make_service()
        b = make_booking()
        add_bill_item(db, b.id, item_name="Swedish Massage", unit_price="1500", service_id=spa.id)
        add_bill_item(db, b.id, item_name="Airport Taxi", unit_price="800")
        invoice = invoicing.generate_gst_invoice(db, b.id, due_date=date(2024, 6, 30))

        assert invoice.total_amount == Decimal("5074.00")
        assert invoice.gst_amount == Decimal("774.00")
        assert invoice.cgst_amount == Decimal("387.00")
        assert invoice.sgst_amount == Decimal("387.00")
        assert invoice.igst_amount == Decimal("0.00")
        assert invoice.due_date == date(2024, 6, 30)
        assert invoice.terms == invoicing.DEFAULT_TERMS
        assert invoice.status == "pending"

        lines = [(it.line_number, it.item_name, it.hsn_code) for it in invoice.items]
        assert lines == [
            (1, "Deluxe - Room 101", "9963"),
            (2, "Swedish Massage", "9504"),
            (3, "Airport Taxi", "9964"),
        ]
        room = invoice.items[0]
        assert (room.taxable_amount, room.cgst_amount, room.sgst_amount) == (
            Decimal("2000.00"), Decimal("180.00"), Decimal("180.00"),
        )

    def test_inter_state_guest_gets_igst(self, db, make_booking):
        invoice = invoicing.generate_gst_invoice(db, make_booking().id, guest_gst_number="29AACCT3705E1Z3")
        assert invoice.is_inter_state is True
        assert invoice.igst_amount == Decimal("360.00")
        assert invoice.cgst_amount == invoice.sgst_amount == Decimal("0.00")

    def test_due_date_defaults_to_check_in(self, db, make_booking):
        b = make_booking()
        assert invoicing.generate_gst_invoice(db, b.id).due_date == b.check_in

    def test_unknown_booking(self, db, hotel):
        with pytest.raises(NotFound):
            invoicing.generate_gst_invoice(db, "missing")

    def test_rendered_invoice(self, db, make_booking):
        b = make_booking(guest_email="ravi@example.com")
        invoice = invoicing.generate_gst_invoice(db, b.id)
        out = invoicing.get_gst_invoice(db, invoice.id)
        assert out["hotel"]["name"] == "Seaside Residency"
        assert out["guest"]["email"] == "ravi@example.com"
        assert out["booking"]["room_number"] == "101"
        assert out["totals"]["total_amount"] == 2360.0
        assert out["payment"] == {"paid_amount": 0.0, "balance_due": 2360.0, "payments": []}
        assert len(out["items"]) == 1


class TestGstSplit:
    def test_even_split(self):
        assert invoicing.split_gst(Decimal("360"), False) == (Decimal("180.00"), Decimal("180.00"), Decimal("0.00"))

    def test_odd_cent_goes_to_cgst(self):
        assert invoicing.split_gst(Decimal("0.05"), False) == (Decimal("0.03"), Decimal("0.02"), Decimal("0.00"))

    def test_inter_state(self):
        assert invoicing.split_gst(Decimal("360"), True) == (Decimal("0.00"), Decimal("0.00"), Decimal("360.00"))

    def test_state_codes(self):
        assert invoicing.is_inter_state("27AABCH1234F1Z5", "29AACCT3705E1Z3") is True
        assert invoicing.is_inter_state("27AABCH1234F1Z5", "27AACCT3705E1Z3") is False
        assert invoicing.is_inter_state("27AABCH1234F1Z5", None) is False


class TestHsnCodes:
    @pytest.mark.parametrize("name, code", [
        ("Deluxe Room upgrade", "9963"),
        ("Room Service Dinner", "9963"),
        ("Ayurvedic Spa", "9504"),
        ("Express Laundry", "9601"),
        ("Airport Taxi", "9964"),
        ("Conference Hall", "9992"),
        ("Late checkout fee", "9963"),
    ])
    def test_keyword_lookup(self, name, code):
        assert invoicing.hsn_code_for(name) == code

    def test_service_category_wins(self):
        assert invoicing.hsn_code_for("Room freshening", ServiceCategory.LAUNDRY) == "9601"


class TestInvoiceStatus:
    def test_allowed_transition(self, db, make_booking):
        invoice = invoicing.generate_gst_invoice(db, make_booking().id)
        invoicing.update_invoice_status(db, invoice.id, "sent", actor="manager")
        assert invoice.status == "sent"

    def test_backwards_needs_override(self, db, make_booking):
        invoice = invoicing.generate_gst_invoice(db, make_booking().id)
        invoicing.update_invoice_status(db, invoice.id, "sent", actor="manager")
        with pytest.raises(ValidationError, match="without override"):
            invoicing.update_invoice_status(db, invoice.id, "pending", actor="manager")
        invoicing.update_invoice_status(db, invoice.id, "pending", actor="admin", override=True)
        assert invoice.status == "pending"

    def test_paid_sets_and_refund_clears_paid_date(self, db, make_booking):
        invoice = invoicing.generate_gst_invoice(db, make_booking().id)
        invoicing.update_invoice_status(db, invoice.id, "paid", actor="manager")
        assert invoice.paid_date is not None
        invoicing.update_invoice_status(db, invoice.id, "refunded", actor="manager")
        assert invoice.paid_date is None

    def test_cancelled_is_final(self, db, make_booking):
        invoice = invoicing.generate_gst_invoice(db, make_booking().id)
        invoicing.update_invoice_status(db, invoice.id, "cancelled", actor="manager")
        with pytest.raises(ValidationError):
            invoicing.update_invoice_status(db, invoice.id, "paid", actor="manager")

    def test_unknown_invoice(self, db):
        with pytest.raises(NotFound):
            invoicing.update_invoice_status(db, "missing", "sent", actor="manager")


class TestListInvoices:
    def test_filters(self, db, make_booking, june):
        invoicing.generate_gst_invoice(db, make_booking().id)
        second = invoicing.generate_gst_invoice(db, make_booking(guest_name="Priya Shah").id)
        invoicing.update_invoice_status(db, second.id, "sent", actor="manager")

        rows, total = invoicing.get_invoices(db, status="sent")
        assert total == 1 and rows[0].guest_name == "Priya Shah"

        _, total = invoicing.get_invoices(db, guest_name="ravi")
        assert total == 1

        _, total = invoicing.get_invoices(db, date_from=date(2024, 6, 1), date_to=date(2024, 6, 15))
        assert total == 2
        _, total = invoicing.get_invoices(db, date_from=date(2024, 7, 1))
        assert total == 0
