"""Ledger accounts, postings and the balance invariant."""
import re
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.clock import utcnow
from app.core.errors import Conflict, InsufficientFunds, NotFound, ValidationError
from app.db.models.auth import User
from app.db.models.ledger import LedgerAccount, LedgerTransaction
from services.ledger import service as ledger


def _txns(db, account_id):
    return db.query(LedgerTransaction).filter(LedgerTransaction.account_id == account_id).all()


def _assert_balanced(db, account_id):
    db.expire_all()
    account = db.get(LedgerAccount, account_id)
    credits = sum((t.amount for t in _txns(db, account_id) if t.type == "credit"), Decimal("0"))
    debits = sum((t.amount for t in _txns(db, account_id) if t.type == "debit"), Decimal("0"))
    assert account.balance == credits - debits
    return account.balance


def _funded_main(db, amount="1000"):
    main = ledger.get_or_create_main_account(db)
    ledger.manual_deposit(db, main.id, amount, "Opening float", "manager")
    return main


class TestAccounts:
    def test_main_account_is_created_once(self, db):
        first = ledger.get_or_create_main_account(db)
        second = ledger.get_or_create_main_account(db)
        assert first.id == second.id
        assert first.name == ledger.MAIN_ACCOUNT_NAME
        assert db.query(LedgerAccount).filter(LedgerAccount.is_main_account == True).count() == 1  # noqa: E712

    def test_user_account_named_after_user(self, db, guest_user):
        account = ledger.get_or_create_user_account(db, guest_user.id)
        assert account.name == "Ravi Kumar's Account"
        assert ledger.get_or_create_user_account(db, guest_user.id).id == account.id

    def test_user_account_for_unknown_user(self, db):
        with pytest.raises(NotFound):
            ledger.get_or_create_user_account(db, "missing")

    def test_second_active_account_for_owner_conflicts(self, db, guest_user):
        ledger.get_or_create_user_account(db, guest_user.id)
        with pytest.raises(Conflict, match="already has an active account"):
            ledger.create_account(db, name="Extra", account_type="current", owner_user_id=guest_user.id)

    def test_main_type_cannot_be_created_by_hand(self, db):
        with pytest.raises(ValidationError, match="main account"):
            ledger.create_account(db, name="Shadow main", account_type="main")

    def test_balances_overview(self, db):
        main = _funded_main(db, "700")
        petty = ledger.create_account(db, name="Petty Cash", account_type="petty_cash")
        ledger.transfer_between_accounts(db, main.id, petty.id, "200", "float", "manager")
        out = ledger.get_all_account_balances(db)
        assert out["main_account"]["balance"] == 500.0
        assert [a["name"] for a in out["accounts"]] == ["Petty Cash"]
        assert out["total_balance"] == 700.0

    def test_user_balance_without_account(self, db, guest_user):
        assert ledger.get_user_account_balance(db, guest_user.id) == {
            "user_id": guest_user.id,
            "account": None,
            "balance": 0.0,
        }


class TestPostTransaction:
    def test_balance_equals_credits_minus_debits(self, db):
        main = _funded_main(db, "500")
        ledger.manual_withdrawal(db, main.id, "200", "Bank run", "manager")
        ledger.add_expense(db, "supplies", "50.25", "Toiletries", "manager")
        assert _assert_balanced(db, main.id) == Decimal("249.75")

    def test_balance_after_is_recorded(self, db):
        main = _funded_main(db, "100")
        txn = ledger.manual_deposit(db, main.id, "25", "Tips", "manager")
        assert txn.balance_after == Decimal("125.00")

    def test_savings_cannot_go_negative(self, db):
        savings = ledger.create_account(db, name="Reserve", account_type="savings")
        with pytest.raises(InsufficientFunds, match="cannot go below zero"):
            ledger.post_transaction(db, savings.id, type="debit", category="other_expense", amount="10")
        db.expire_all()
        assert db.get(LedgerAccount, savings.id).balance == Decimal("0.00")
        assert _txns(db, savings.id) == []

    def test_main_account_may_go_negative(self, db):
        main = ledger.get_or_create_main_account(db)
        ledger.add_expense(db, "utilities", "300", "Electricity", "manager")
        assert _assert_balanced(db, main.id) == Decimal("-300.00")

    def test_inactive_account_rejected(self, db):
        petty = ledger.create_account(db, name="Old Till", account_type="petty_cash")
        petty.is_active = False
        db.commit()
        with pytest.raises(ValidationError, match="inactive"):
            ledger.manual_deposit(db, petty.id, "10", "late", "manager")

    def test_non_positive_amount_rejected(self, db):
        main = ledger.get_or_create_main_account(db)
        with pytest.raises(ValidationError, match="greater than zero"):
            ledger.manual_deposit(db, main.id, "0", "nothing", "manager")

    def test_transactions_are_immutable(self, db):
        main = _funded_main(db, "100")
        txn = _txns(db, main.id)[0]
        txn.amount = Decimal("1")
        with pytest.raises(RuntimeError, match="immutable"):
            db.flush()
        db.rollback()


class TestRevenuePostings:
    BREAKDOWN = {"accommodation": "2000", "spa": "360"}

    def test_recognition_and_reversal_round_trip(self, db, guest_user):
        out = ledger.process_payment_revenue(db, "bk-1", "2360", self.BREAKDOWN, "card", "frontdesk",
                                             guest_user_id=guest_user.id)
        assert len(out["transaction_ids"]) == 3
        main = ledger.get_or_create_main_account(db)
        assert _assert_balanced(db, main.id) == Decimal("2360.00")
        assert _assert_balanced(db, out["user_account_id"]) == Decimal("2360.00")
        categories = sorted(t.category for t in _txns(db, main.id))
        assert categories == ["accommodation_revenue", "spa_revenue"]

        ledger.reverse_payment_revenue(db, "bk-1", "2360", self.BREAKDOWN, "frontdesk", guest_user_id=guest_user.id)
        assert _assert_balanced(db, main.id) == Decimal("0.00")
        assert _assert_balanced(db, out["user_account_id"]) == Decimal("0.00")
        refunds = [t for t in _txns(db, main.id) if t.type == "debit"]
        assert {t.category for t in refunds} == {"refunds"}

    def test_breakdown_must_sum_to_total(self, db):
        with pytest.raises(ValidationError, match="sums to 90.00, expected 100.00"):
            ledger.process_payment_revenue(db, "bk-2", "100", {"accommodation": "90"}, "cash", "frontdesk")
        assert db.query(LedgerTransaction).count() == 0

    def test_inactive_guest_gets_no_allocation(self, db, guest_user):
        guest_user.is_active = False
        db.commit()
        out = ledger.process_payment_revenue(db, "bk-3", "100", {"accommodation": "100"}, "cash", "frontdesk",
                                             guest_user_id=guest_user.id)
        assert out["user_account_id"] is None
        assert len(out["transaction_ids"]) == 1


class TestPaymentModification:
    def test_increase_credits_the_difference(self, db):
        postings = ledger.process_payment_modification(db, "bk-1", "1000", "1200", "rate correction", "manager")
        assert len(postings) == 1
        txn = postings[0]
        assert (txn.type, txn.amount, txn.category) == ("credit", Decimal("200.00"), "payment_adjustment")
        assert txn.is_modification is True
        assert txn.original_amount == Decimal("1000.00")
        assert txn.modification_reason == "rate correction"

    def test_decrease_debits_the_difference(self, db):
        postings = ledger.process_payment_modification(db, "bk-1", "1200", "1000", "overcharge", "manager")
        assert (postings[0].type, postings[0].amount) == ("debit", Decimal("200.00"))

    def test_unchanged_amount_posts_nothing(self, db):
        assert ledger.process_payment_modification(db, "bk-1", "1000", "1000.00", "noop", "manager") == []
        assert db.query(LedgerTransaction).count() == 0

    def test_guest_account_follows_modification(self, db, guest_user):
        ledger.process_payment_revenue(db, "bk-1", "1000", {"accommodation": "1000"}, "cash", "frontdesk",
                                       guest_user_id=guest_user.id)
        postings = ledger.process_payment_modification(db, "bk-1", "1000", "1100", "extra night", "manager",
                                                       guest_user_id=guest_user.id)
        assert len(postings) == 2
        account = ledger.get_or_create_user_account(db, guest_user.id)
        assert _assert_balanced(db, account.id) == Decimal("1100.00")


class TestTransfers:
    def test_insufficient_source_changes_nothing(self, db):
        main = _funded_main(db, "50")
        petty = ledger.create_account(db, name="Petty Cash", account_type="petty_cash")
        with pytest.raises(InsufficientFunds):
            ledger.transfer_between_accounts(db, main.id, petty.id, "100", "float", "manager")
        assert _assert_balanced(db, main.id) == Decimal("50.00")
        assert _assert_balanced(db, petty.id) == Decimal("0.00")

    def test_transfer_pairs_share_reference(self, db):
        main = _funded_main(db, "50")
        petty = ledger.create_account(db, name="Petty Cash", account_type="petty_cash")
        out = ledger.transfer_between_accounts(db, main.id, petty.id, "50", "float", "manager")
        assert out["reference"].startswith("TRF-")
        assert out["debit"]["reference_id"] == out["credit"]["reference_id"] == out["reference"]
        assert out["debit"]["category"] == "transfer_out"
        assert out["credit"]["category"] == "transfer_in"
        assert _assert_balanced(db, main.id) == Decimal("0.00")
        assert _assert_balanced(db, petty.id) == Decimal("50.00")

    def test_same_account_rejected(self, db):
        main = _funded_main(db)
        with pytest.raises(ValidationError, match="same account"):
            ledger.transfer_between_accounts(db, main.id, main.id, "1", "loop", "manager")

    def test_withdrawal_beyond_balance(self, db):
        main = _funded_main(db, "20")
        with pytest.raises(InsufficientFunds):
            ledger.manual_withdrawal(db, main.id, "20.01", "too much", "manager")


class TestExpenses:
    def test_expense_hits_main_account(self, db):
        txn = ledger.add_expense(db, "maintenance", "450", "AC repair", "manager", payment_method="upi")
        main = ledger.get_or_create_main_account(db)
        assert txn.account_id == main.id
        assert (txn.type, txn.category, txn.reference_type) == ("debit", "maintenance", "expense")

    def test_non_expense_category_rejected(self, db):
        with pytest.raises(ValidationError, match="expense category must be one of"):
            ledger.add_expense(db, "refunds", "10", "nope", "manager")


class TestStaffCredit:
    REF = re.compile(r"^BILL-CREDIT-\d+-[A-Z0-9]{6}$")

    def test_credit_by_id(self, db, staff_user):
        out = ledger.credit_bill_to_staff(db, "500", booking_id="bk-9", payment_method="cash",
                                          staff_user_id=staff_user.id)
        assert self.REF.match(out["reference_number"])
        assert out["account"]["owner_user_id"] == staff_user.id
        assert out["transaction"]["category"] == "staff_collection"
        assert out["transaction"]["processed_by"] == "Asha Rao"
        assert _assert_balanced(db, out["account"]["id"]) == Decimal("500.00")

    def test_credit_by_unique_name(self, db, staff_user):
        out = ledger.credit_bill_to_staff(db, "120", booking_id="bk-9", payment_method="upi", staff_name="Asha Rao")
        assert out["account"]["owner_user_id"] == staff_user.id

    def test_ambiguous_name_rejected(self, db, staff_user):
        db.add(User(email="asha.r@seaside.example", full_name="Asha Rao", is_active=True, roles=[]))
        db.commit()
        with pytest.raises(ValidationError, match="ambiguous"):
            ledger.credit_bill_to_staff(db, "120", booking_id="bk-9", payment_method="cash", staff_name="Asha Rao")

    def test_unknown_staff(self, db):
        with pytest.raises(NotFound):
            ledger.credit_bill_to_staff(db, "120", booking_id="bk-9", payment_method="cash", staff_name="Nobody")

    def test_caller_reference_is_kept(self, db, staff_user):
        out = ledger.credit_bill_to_staff(db, "80", booking_id="bk-9", payment_method="card",
                                          staff_user_id=staff_user.id, reference="DESK-42")
        assert out["reference_number"] == "DESK-42"


class TestReads:
    def test_history_filters(self, db):
        main = _funded_main(db, "300")
        ledger.add_expense(db, "supplies", "40", "Soap", "manager")
        debits = ledger.get_transaction_history(db, account_id=main.id, type="debit")
        assert [t.category for t in debits] == ["supplies"]
        assert len(ledger.get_transaction_history(db, account_id=main.id)) == 2

    def test_history_for_user_without_account(self, db, guest_user):
        assert ledger.get_transaction_history(db, user_id=guest_user.id) == []

    def test_summary(self, db):
        _funded_main(db, "300")
        ledger.add_expense(db, "supplies", "40", "Soap", "manager")
        now = utcnow()
        out = ledger.get_transaction_summary(db, now - timedelta(hours=1), now + timedelta(hours=1))
        assert out["total_credits"] == 300.0
        assert out["total_debits"] == 40.0
        assert out["net_amount"] == 260.0
        assert out["transaction_count"] == 2
        assert out["by_category"] == {"manual_deposit": 300.0, "supplies": 40.0}

    def test_daily_cash_flow_covers_each_day(self, db):
        _funded_main(db, "300")
        flow = ledger.get_daily_cash_flow(db, days=7)
        assert len(flow) == 7
        assert flow[-1]["date"] == utcnow().date().isoformat()
        assert flow[-1]["credits"] == 300.0
        assert sum(day["net"] for day in flow[:-1]) == 0.0
