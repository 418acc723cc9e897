"""Token-gated guest billing view."""
import re
from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.errors import NotFound, Unauthorized
from services.billing import payments
from services.invoicing import guest_access


class TestGuestBillingAccess:
    def test_token_shape_and_expiry(self, db, make_booking):
        view = guest_access.create_guest_billing_access(db, make_booking().id)
        assert re.fullmatch(r"[0-9a-f]{64}", view.access_token)
        ttl = view.expires_at.replace(tzinfo=None) - utcnow().replace(tzinfo=None)
        assert timedelta(days=29) < ttl <= timedelta(days=30)

    def test_tokens_are_unique(self, db, make_booking):
        b = make_booking()
        first = guest_access.create_guest_billing_access(db, b.id)
        second = guest_access.create_guest_billing_access(db, b.id)
        assert first.access_token != second.access_token

    def test_view_counts_reads(self, db, make_booking):
        b = make_booking()
        payments.process_payment(db, b.id, "500", "upi")
        token = guest_access.create_guest_billing_access(db, b.id).access_token

        first = guest_access.get_guest_billing_info(db, token)
        second = guest_access.get_guest_billing_info(db, token)
        assert (first["view_count"], second["view_count"]) == (1, 2)
        assert second["bill"]["total_amount"] == 2360.0
        assert second["paid_amount"] == 500.0
        assert second["balance_due"] == 1860.0
        assert second["booking"]["payment_status"] == "partially_paid"
        assert second["hotel"]["name"] == "Seaside Residency"

    def test_revoked_token(self, db, make_booking):
        token = guest_access.create_guest_billing_access(db, make_booking().id).access_token
        guest_access.revoke_guest_billing_access(db, token)
        with pytest.raises(Unauthorized, match="revoked"):
            guest_access.get_guest_billing_info(db, token)

    def test_expired_token(self, db, make_booking):
        view = guest_access.create_guest_billing_access(db, make_booking().id)
        view.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()
        with pytest.raises(Unauthorized, match="expired"):
            guest_access.get_guest_billing_info(db, view.access_token)

    def test_unknown_token(self, db, hotel):
        with pytest.raises(Unauthorized):
            guest_access.get_guest_billing_info(db, "f" * 64)

    def test_revoke_unknown_token(self, db):
        with pytest.raises(NotFound):
            guest_access.revoke_guest_billing_access(db, "nope")

    def test_unknown_booking(self, db):
        with pytest.raises(NotFound):
            guest_access.create_guest_billing_access(db, "missing")
