"""Multi-account ledger.

Every balance change is a ``LedgerTransaction`` row written in the same unit
of work as the balance update, with the account row locked first, so for
each account ``balance == sum(credits) - sum(debits)`` holds after every
commit. Corrections are new transactions, never edits.
"""
from __future__ import annotations

import logging
import secrets
import string
import uuid
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.audit import audit
from app.core.clock import as_utc, utcnow
from app.core.errors import Conflict, InsufficientFunds, NotFound, ValidationError
from app.core.money import ZERO, dec, positive, q
from app.db.models.auth import User
from app.db.models.enums import (
    EXPENSE_CATEGORIES,
    LEDGER_CATEGORY_FOR_REVENUE,
    NON_NEGATIVE_ACCOUNT_TYPES,
    AccountType,
    PaymentMethod,
    ReferenceType,
    RevenueCategory,
    TransactionCategory,
    TransactionType,
    parse_enum,
)
from app.db.models.ledger import LedgerAccount, LedgerTransaction
from services._crud import atomic

log = logging.getLogger("hotel.ledger")

MAIN_ACCOUNT_NAME = "Main Hotel Account"


# ---------- accounts ----------

def _active_main(db: Session) -> LedgerAccount | None:
    return (
        db.query(LedgerAccount)
        .filter(LedgerAccount.is_main_account == True)  # noqa: E712
        .filter(LedgerAccount.is_active == True)  # noqa: E712
        .first()
    )


def _active_for_owner(db: Session, user_id: str) -> LedgerAccount | None:
    return (
        db.query(LedgerAccount)
        .filter(LedgerAccount.owner_user_id == user_id)
        .filter(LedgerAccount.is_active == True)  # noqa: E712
        .first()
    )


def _insert_or_reread(db: Session, account: LedgerAccount, reread) -> LedgerAccount:
    # The partial unique indexes decide concurrent first calls; the loser re-reads the winner.
    try:
        with db.begin_nested():
            db.add(account)
            db.flush()
        return account
    except IntegrityError:
        existing = reread()
        if existing is None:
            raise Conflict(f"could not create account {account.name!r}")
        return existing


def get_or_create_main_account(db: Session) -> LedgerAccount:
    with atomic(db):
        existing = _active_main(db)
        if existing:
            return existing
        account = LedgerAccount(
            name=MAIN_ACCOUNT_NAME,
            account_type=AccountType.MAIN.value,
            balance=ZERO,
            is_main_account=True,
            is_active=True,
            description="Primary hotel account for all revenue",
        )
        account = _insert_or_reread(db, account, lambda: _active_main(db))
    return account


def get_or_create_user_account(db: Session, user_id: str) -> LedgerAccount:
    with atomic(db):
        existing = _active_for_owner(db, user_id)
        if existing:
            return existing
        user = db.get(User, user_id)
        if not user:
            raise NotFound(f"user {user_id} not found", user_id=user_id)
        account = LedgerAccount(
            name=f"{user.full_name or user.email}'s Account",
            account_type=AccountType.CURRENT.value,
            balance=ZERO,
            owner_user_id=user_id,
            is_main_account=False,
            is_active=True,
        )
        account = _insert_or_reread(db, account, lambda: _active_for_owner(db, user_id))
    return account


def create_account(
    db: Session,
    *,
    name: str,
    account_type: str,
    owner_user_id: str | None = None,
    description: str | None = None,
) -> LedgerAccount:
    acct_type = parse_enum(AccountType, account_type, "account_type")
    if acct_type == AccountType.MAIN:
        raise ValidationError("the main account is created by the ledger itself", field="account_type")
    if not (name or "").strip():
        raise ValidationError("name is required", field="name")
    with atomic(db):
        if owner_user_id:
            if not db.get(User, owner_user_id):
                raise NotFound(f"user {owner_user_id} not found", user_id=owner_user_id)
            if _active_for_owner(db, owner_user_id):
                raise Conflict(f"user {owner_user_id} already has an active account", user_id=owner_user_id)
        account = LedgerAccount(
            name=name.strip(),
            account_type=acct_type.value,
            balance=ZERO,
            owner_user_id=owner_user_id,
            is_main_account=False,
            is_active=True,
            description=description,
        )
        db.add(account)
        db.flush()
    return account


def get_account(db: Session, account_id: str) -> LedgerAccount:
    account = db.get(LedgerAccount, account_id)
    if not account:
        raise NotFound(f"account {account_id} not found", account_id=account_id)
    return account


def _lock_account(db: Session, account_id: str) -> LedgerAccount:
    account = (
        db.query(LedgerAccount)
        .filter(LedgerAccount.id == account_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not account:
        raise NotFound(f"account {account_id} not found", account_id=account_id)
    return account


def account_out(a: LedgerAccount) -> dict:
    return {
        "id": a.id,
        "name": a.name,
        "account_type": a.account_type,
        "balance": float(a.balance or 0),
        "owner_user_id": a.owner_user_id,
        "is_main_account": a.is_main_account,
        "is_active": a.is_active,
    }


def transaction_out(t: LedgerTransaction) -> dict:
    return {
        "id": t.id,
        "account_id": t.account_id,
        "type": t.type,
        "category": t.category,
        "amount": float(t.amount),
        "balance_after": float(t.balance_after),
        "description": t.description,
        "reference_id": t.reference_id,
        "reference_type": t.reference_type,
        "payment_method": t.payment_method,
        "processed_by": t.processed_by,
        "notes": t.notes,
        "transaction_date": as_utc(t.transaction_date).isoformat(),
        "is_modification": t.is_modification,
        "original_amount": float(t.original_amount) if t.original_amount is not None else None,
        "modification_reason": t.modification_reason,
    }


def get_all_account_balances(db: Session) -> dict:
    main = get_or_create_main_account(db)
    others = (
        db.query(LedgerAccount)
        .filter(LedgerAccount.is_active == True)  # noqa: E712
        .filter(LedgerAccount.id != main.id)
        .order_by(LedgerAccount.created_at.asc())
        .all()
    )
    total = dec(main.balance) + sum((dec(a.balance) for a in others), ZERO)
    return {
        "main_account": account_out(main),
        "accounts": [account_out(a) for a in others],
        "total_balance": float(total),
    }


def get_user_account_balance(db: Session, user_id: str) -> dict:
    if not db.get(User, user_id):
        raise NotFound(f"user {user_id} not found", user_id=user_id)
    account = _active_for_owner(db, user_id)
    if not account:
        return {"user_id": user_id, "account": None, "balance": 0.0}
    return {"user_id": user_id, "account": account_out(account), "balance": float(account.balance)}


# ---------- posting ----------

def post_transaction(
    db: Session,
    account_id: str,
    *,
    type: str | TransactionType,
    category: str | TransactionCategory,
    amount: Any,
    description: str = "",
    reference_id: str | None = None,
    reference_type: str | ReferenceType | None = None,
    payment_method: str | PaymentMethod | None = None,
    processed_by: str = "system",
    notes: str | None = None,
    is_modification: bool = False,
    original_amount: Any = None,
    modification_reason: str | None = None,
    transaction_date: datetime | None = None,
) -> LedgerTransaction:
    """Lock the account, apply the signed amount and insert the transaction row atomically."""
    txn_type = parse_enum(TransactionType, type, "type")
    txn_category = parse_enum(TransactionCategory, category, "category")
    value = positive(amount)
    ref_type = parse_enum(ReferenceType, reference_type, "reference_type") if reference_type else None
    method = parse_enum(PaymentMethod, payment_method, "payment_method") if payment_method else None

    with atomic(db):
        account = _lock_account(db, account_id)
        if not account.is_active:
            raise ValidationError(f"account {account.name!r} is inactive", account_id=account_id)

        balance = dec(account.balance)
        new_balance = balance + value if txn_type == TransactionType.CREDIT else balance - value
        if (
            txn_type == TransactionType.DEBIT
            and AccountType(account.account_type) in NON_NEGATIVE_ACCOUNT_TYPES
            and new_balance < 0
        ):
            raise InsufficientFunds(
                f"{account.account_type} account {account.name!r} cannot go below zero",
                account_id=account_id,
                balance=str(balance),
                amount=str(value),
            )

        account.balance = new_balance
        txn = LedgerTransaction(
            account_id=account.id,
            type=txn_type.value,
            category=txn_category.value,
            amount=value,
            balance_after=new_balance,
            description=description or "",
            reference_id=reference_id,
            reference_type=ref_type.value if ref_type else None,
            payment_method=method.value if method else None,
            processed_by=processed_by or "system",
            notes=notes,
            transaction_date=transaction_date or utcnow(),
            is_modification=is_modification,
            original_amount=q(original_amount) if original_amount is not None else None,
            modification_reason=modification_reason,
        )
        db.add(txn)
        db.flush()

    log.info(
        "posted %s %s %s on account %s (ref %s) balance=%s",
        txn.type, txn.amount, txn.category, account.id, reference_id, new_balance,
    )
    return txn


def normalize_breakdown(breakdown: Mapping[Any, Any]) -> dict[RevenueCategory, Decimal]:
    """Enum-keyed, cent-rounded category amounts with zero entries dropped."""
    out: dict[RevenueCategory, Decimal] = {}
    for key, raw in (breakdown or {}).items():
        category = parse_enum(RevenueCategory, key, "category")
        amount = q(raw)
        if amount < 0:
            raise ValidationError(f"{category.value} amount must not be negative", field="category_breakdown")
        if amount == 0:
            continue
        out[category] = out.get(category, ZERO) + amount
    return out


def _checked_breakdown(total: Decimal, breakdown: Mapping[Any, Any]) -> dict[RevenueCategory, Decimal]:
    normalized = normalize_breakdown(breakdown)
    allocated = sum(normalized.values(), ZERO)
    if allocated != total:
        raise ValidationError(
            f"category breakdown sums to {allocated}, expected {total}",
            field="category_breakdown",
        )
    return normalized


def _resolve_user_account(db: Session, user_id: str | None) -> LedgerAccount | None:
    if not user_id:
        return None
    user = db.get(User, user_id)
    if not user or not user.is_active:
        return None
    return get_or_create_user_account(db, user_id)


def process_payment_revenue(
    db: Session,
    booking_id: str,
    total_amount: Any,
    category_breakdown: Mapping[Any, Any],
    payment_method: str | PaymentMethod,
    processed_by: str,
    guest_user_id: str | None = None,
) -> dict:
    """Credit the main account once per revenue category and the guest's account with the total."""
    total = positive(total_amount, "total_amount")
    breakdown = _checked_breakdown(total, category_breakdown)
    method = parse_enum(PaymentMethod, payment_method, "payment_method")

    with atomic(db):
        main = get_or_create_main_account(db)
        user_account = _resolve_user_account(db, guest_user_id)
        postings = []
        for category, amount in breakdown.items():
            postings.append(
                post_transaction(
                    db,
                    main.id,
                    type=TransactionType.CREDIT,
                    category=LEDGER_CATEGORY_FOR_REVENUE[category],
                    amount=amount,
                    description=f"{category.value.replace('_', ' ').title()} revenue from booking {booking_id}",
                    reference_id=booking_id,
                    reference_type=ReferenceType.BOOKING,
                    payment_method=method,
                    processed_by=processed_by,
                )
            )
        if user_account:
            postings.append(
                post_transaction(
                    db,
                    user_account.id,
                    type=TransactionType.CREDIT,
                    category=TransactionCategory.GUEST_PAYMENT,
                    amount=total,
                    description=f"Revenue from booking {booking_id}",
                    reference_id=booking_id,
                    reference_type=ReferenceType.BOOKING,
                    payment_method=method,
                    processed_by=processed_by,
                    notes="Revenue allocation to user account",
                )
            )

    log.info("recognized revenue %s for booking %s across %d categories", total, booking_id, len(breakdown))
    return {
        "booking_id": booking_id,
        "main_account_id": main.id,
        "user_account_id": user_account.id if user_account else None,
        "transaction_ids": [t.id for t in postings],
    }


def reverse_payment_revenue(
    db: Session,
    booking_id: str,
    total_amount: Any,
    category_breakdown: Mapping[Any, Any],
    processed_by: str,
    guest_user_id: str | None = None,
) -> dict:
    """Mirror a prior ``process_payment_revenue`` with debits categorized as refunds."""
    total = positive(total_amount, "total_amount")
    breakdown = _checked_breakdown(total, category_breakdown)

    with atomic(db):
        main = get_or_create_main_account(db)
        postings = []
        for category, amount in breakdown.items():
            postings.append(
                post_transaction(
                    db,
                    main.id,
                    type=TransactionType.DEBIT,
                    category=TransactionCategory.REFUNDS,
                    amount=amount,
                    description=f"Reversal of {category.value.replace('_', ' ')} revenue for booking {booking_id}",
                    reference_id=booking_id,
                    reference_type=ReferenceType.REFUND,
                    processed_by=processed_by,
                    notes=f"reverses {LEDGER_CATEGORY_FOR_REVENUE[category].value}",
                )
            )
        user_account = _active_for_owner(db, guest_user_id) if guest_user_id else None
        if user_account:
            postings.append(
                post_transaction(
                    db,
                    user_account.id,
                    type=TransactionType.DEBIT,
                    category=TransactionCategory.REFUNDS,
                    amount=total,
                    description=f"Reversal of revenue from booking {booking_id}",
                    reference_id=booking_id,
                    reference_type=ReferenceType.REFUND,
                    processed_by=processed_by,
                )
            )

    log.info("reversed revenue %s for booking %s", total, booking_id)
    return {
        "booking_id": booking_id,
        "main_account_id": main.id,
        "user_account_id": user_account.id if user_account else None,
        "transaction_ids": [t.id for t in postings],
    }


def process_payment_modification(
    db: Session,
    booking_id: str,
    original_amount: Any,
    new_amount: Any,
    reason: str,
    processed_by: str,
    guest_user_id: str | None = None,
) -> list[LedgerTransaction]:
    original = q(original_amount)
    new = q(new_amount)
    if original < 0 or new < 0:
        raise ValidationError("amounts must not be negative", field="amount")
    delta = new - original
    if delta == 0:
        return []

    txn_type = TransactionType.CREDIT if delta > 0 else TransactionType.DEBIT
    postings: list[LedgerTransaction] = []
    with atomic(db):
        main = get_or_create_main_account(db)
        targets = [main]
        user_account = _active_for_owner(db, guest_user_id) if guest_user_id else None
        if user_account:
            targets.append(user_account)
        for account in targets:
            postings.append(
                post_transaction(
                    db,
                    account.id,
                    type=txn_type,
                    category=TransactionCategory.PAYMENT_ADJUSTMENT,
                    amount=abs(delta),
                    description=f"Payment modification for booking {booking_id}",
                    reference_id=booking_id,
                    reference_type=ReferenceType.ADJUSTMENT,
                    processed_by=processed_by,
                    notes=reason,
                    is_modification=True,
                    original_amount=original,
                    modification_reason=reason,
                )
            )
        audit(
            db,
            actor=processed_by,
            action="ledger.payment_modified",
            entity_type="booking",
            entity_id=booking_id,
            payload={"original_amount": original, "new_amount": new, "reason": reason},
        )
    return postings


# ---------- transfers and adjustments ----------

def transfer_between_accounts(
    db: Session,
    from_account_id: str,
    to_account_id: str,
    amount: Any,
    description: str,
    processed_by: str,
) -> dict:
    value = positive(amount)
    if from_account_id == to_account_id:
        raise ValidationError("cannot transfer to the same account", field="to_account_id")

    with atomic(db):
        # Lock in id order so opposite transfers cannot deadlock.
        locked = {a: _lock_account(db, a) for a in sorted([from_account_id, to_account_id])}
        source = locked[from_account_id]
        target = locked[to_account_id]
        if dec(source.balance) < value:
            raise InsufficientFunds(
                f"insufficient balance in {source.name!r}",
                account_id=source.id,
                balance=str(source.balance),
                amount=str(value),
            )
        transfer_id = f"TRF-{uuid.uuid4().hex[:12].upper()}"
        debit = post_transaction(
            db,
            source.id,
            type=TransactionType.DEBIT,
            category=TransactionCategory.TRANSFER_OUT,
            amount=value,
            description=f"Transfer to {target.name}: {description}",
            reference_id=transfer_id,
            reference_type=ReferenceType.TRANSFER,
            processed_by=processed_by,
        )
        credit = post_transaction(
            db,
            target.id,
            type=TransactionType.CREDIT,
            category=TransactionCategory.TRANSFER_IN,
            amount=value,
            description=f"Transfer from {source.name}: {description}",
            reference_id=transfer_id,
            reference_type=ReferenceType.TRANSFER,
            processed_by=processed_by,
        )
        audit(
            db,
            actor=processed_by,
            action="ledger.transfer",
            entity_type="ledger_account",
            entity_id=source.id,
            payload={"to_account_id": target.id, "amount": value, "reference": transfer_id},
        )
    return {"reference": transfer_id, "debit": transaction_out(debit), "credit": transaction_out(credit)}


def manual_deposit(
    db: Session,
    account_id: str,
    amount: Any,
    description: str,
    processed_by: str,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
) -> LedgerTransaction:
    with atomic(db):
        txn = post_transaction(
            db,
            account_id,
            type=TransactionType.CREDIT,
            category=TransactionCategory.MANUAL_DEPOSIT,
            amount=amount,
            description=description or "Manual deposit",
            reference_type=ReferenceType.ADJUSTMENT,
            payment_method=payment_method,
            processed_by=processed_by,
            notes=notes,
        )
        audit(
            db,
            actor=processed_by,
            action="ledger.manual_deposit",
            entity_type="ledger_account",
            entity_id=account_id,
            payload={"amount": txn.amount, "transaction_id": txn.id},
        )
    return txn


def manual_withdrawal(
    db: Session,
    account_id: str,
    amount: Any,
    description: str,
    processed_by: str,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
) -> LedgerTransaction:
    value = positive(amount)
    with atomic(db):
        account = _lock_account(db, account_id)
        if value > dec(account.balance):
            raise InsufficientFunds(
                f"insufficient balance in {account.name!r}",
                account_id=account_id,
                balance=str(account.balance),
                amount=str(value),
            )
        txn = post_transaction(
            db,
            account_id,
            type=TransactionType.DEBIT,
            category=TransactionCategory.MANUAL_WITHDRAWAL,
            amount=value,
            description=description or "Manual withdrawal",
            reference_type=ReferenceType.ADJUSTMENT,
            payment_method=payment_method,
            processed_by=processed_by,
            notes=notes,
        )
        audit(
            db,
            actor=processed_by,
            action="ledger.manual_withdrawal",
            entity_type="ledger_account",
            entity_id=account_id,
            payload={"amount": value, "transaction_id": txn.id},
        )
    return txn


def add_expense(
    db: Session,
    category: str,
    amount: Any,
    description: str,
    processed_by: str,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
    account_id: str | None = None,
) -> LedgerTransaction:
    expense_category = parse_enum(TransactionCategory, category, "category")
    if expense_category not in EXPENSE_CATEGORIES:
        allowed = ", ".join(sorted(c.value for c in EXPENSE_CATEGORIES))
        raise ValidationError(f"expense category must be one of: {allowed}", field="category")
    with atomic(db):
        target = account_id or get_or_create_main_account(db).id
        txn = post_transaction(
            db,
            target,
            type=TransactionType.DEBIT,
            category=expense_category,
            amount=amount,
            description=description,
            reference_type=ReferenceType.EXPENSE,
            payment_method=payment_method,
            processed_by=processed_by,
            notes=notes,
        )
    return txn


def _bill_credit_reference() -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"BILL-CREDIT-{int(utcnow().timestamp() * 1000)}-{suffix}"


def _resolve_staff(db: Session, staff_user_id: str | None, staff_name: str | None) -> User:
    if staff_user_id:
        user = db.get(User, staff_user_id)
        if not user:
            raise NotFound(f"staff user {staff_user_id} not found", user_id=staff_user_id)
        return user
    name = (staff_name or "").strip()
    if not name:
        raise ValidationError("staff_user_id or staff_name is required", field="staff_user_id")
    matches = db.query(User).filter(User.full_name == name).limit(2).all()
    if not matches:
        raise NotFound(f"staff member {name!r} not found", staff_name=name)
    if len(matches) > 1:
        raise ValidationError(f"staff name {name!r} is ambiguous; pass staff_user_id", field="staff_name")
    return matches[0]


def credit_bill_to_staff(
    db: Session,
    amount: Any,
    *,
    booking_id: str,
    payment_method: str,
    staff_user_id: str | None = None,
    staff_name: str | None = None,
    reference: str | None = None,
) -> dict:
    value = positive(amount)
    method = parse_enum(PaymentMethod, payment_method, "payment_method")
    with atomic(db):
        staff = _resolve_staff(db, staff_user_id, staff_name)
        account = get_or_create_user_account(db, staff.id)
        reference_number = reference or _bill_credit_reference()
        txn = post_transaction(
            db,
            account.id,
            type=TransactionType.CREDIT,
            category=TransactionCategory.STAFF_COLLECTION,
            amount=value,
            description=f"Bill collection - Booking {booking_id}",
            reference_id=booking_id,
            reference_type=ReferenceType.BOOKING,
            payment_method=method,
            processed_by=staff.full_name or staff.email,
            notes=f"Bill amount credited to staff account. Reference: {reference_number}",
        )
        audit(
            db,
            actor=staff.full_name or staff.email,
            action="ledger.staff_credit",
            entity_type="booking",
            entity_id=booking_id,
            payload={"amount": value, "reference": reference_number, "account_id": account.id},
        )
    return {"reference_number": reference_number, "account": account_out(account), "transaction": transaction_out(txn)}


# ---------- reads ----------

def get_transaction_history(
    db: Session,
    *,
    account_id: str | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    type: str | None = None,
    category: str | None = None,
    limit: int = 50,
) -> list[LedgerTransaction]:
    qy = db.query(LedgerTransaction)
    if user_id:
        account = _active_for_owner(db, user_id)
        if not account:
            return []
        account_id = account.id
    if account_id:
        qy = qy.filter(LedgerTransaction.account_id == account_id)
    if start:
        qy = qy.filter(LedgerTransaction.transaction_date >= start)
    if end:
        qy = qy.filter(LedgerTransaction.transaction_date <= end)
    if type:
        qy = qy.filter(LedgerTransaction.type == parse_enum(TransactionType, type, "type").value)
    if category:
        qy = qy.filter(LedgerTransaction.category == parse_enum(TransactionCategory, category, "category").value)
    return qy.order_by(LedgerTransaction.transaction_date.desc()).limit(limit).all()


def get_transaction_summary(
    db: Session,
    start: datetime,
    end: datetime,
    account_id: str | None = None,
) -> dict:
    qy = db.query(LedgerTransaction).filter(
        LedgerTransaction.transaction_date >= start,
        LedgerTransaction.transaction_date <= end,
    )
    if account_id:
        qy = qy.filter(LedgerTransaction.account_id == account_id)
    credits = ZERO
    debits = ZERO
    credit_count = 0
    debit_count = 0
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in qy.all():
        if t.type == TransactionType.CREDIT.value:
            credits += dec(t.amount)
            credit_count += 1
        else:
            debits += dec(t.amount)
            debit_count += 1
        by_category[t.category] += dec(t.amount)
    return {
        "total_credits": float(credits),
        "total_debits": float(debits),
        "net_amount": float(credits - debits),
        "credit_count": credit_count,
        "debit_count": debit_count,
        "transaction_count": credit_count + debit_count,
        "by_category": {k: float(v) for k, v in sorted(by_category.items())},
    }


def get_daily_cash_flow(db: Session, days: int = 30, *, until: date | None = None) -> list[dict]:
    end_day = until or utcnow().date()
    start_day = end_day - timedelta(days=days - 1)
    start_dt = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
    rows = db.query(LedgerTransaction).filter(LedgerTransaction.transaction_date >= start_dt).all()

    flow: dict[date, list[Decimal]] = {start_day + timedelta(days=i): [ZERO, ZERO] for i in range(days)}
    for t in rows:
        day = as_utc(t.transaction_date).date()
        if day not in flow:
            continue
        slot = 0 if t.type == TransactionType.CREDIT.value else 1
        flow[day][slot] += dec(t.amount)
    return [
        {"date": d.isoformat(), "credits": float(c), "debits": float(dr), "net": float(c - dr)}
        for d, (c, dr) in sorted(flow.items())
    ]
