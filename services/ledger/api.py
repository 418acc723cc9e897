from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.security import Principal, get_principal
from app.db.session import get_db
from services.ledger import service as ledger

router = APIRouter(prefix="/accounts", tags=["accounts"])


class AccountIn(BaseModel):
    name: str = Field(..., max_length=128)
    account_type: str = "current"
    owner_user_id: str | None = None
    description: str | None = None


class TransferIn(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: Decimal = Field(..., gt=0)
    description: str = ""


class AdjustmentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    payment_method: str | None = None
    notes: str | None = None


class ExpenseIn(AdjustmentIn):
    category: str
    account_id: str | None = None


class StaffCreditIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    booking_id: str
    payment_method: str
    staff_user_id: str | None = None
    staff_name: str | None = None
    reference: str | None = None


@router.get("")
def all_balances(db: Session = Depends(get_db)):
    return ledger.get_all_account_balances(db)


@router.post("")
def create_account(payload: AccountIn, db: Session = Depends(get_db)):
    return ledger.account_out(ledger.create_account(db, **payload.model_dump()))


@router.get("/users/{user_id}")
def user_balance(user_id: str, db: Session = Depends(get_db)):
    return ledger.get_user_account_balance(db, user_id)


# ---- Transactions ----
@router.get("/transactions")
def transaction_history(
    account_id: str | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    type: str | None = None,
    category: str | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    rows = ledger.get_transaction_history(
        db,
        account_id=account_id,
        user_id=user_id,
        start=start,
        end=end,
        type=type,
        category=category,
        limit=limit,
    )
    return [ledger.transaction_out(t) for t in rows]


@router.get("/transactions/summary")
def transaction_summary(start: datetime, end: datetime, account_id: str | None = None, db: Session = Depends(get_db)):
    return ledger.get_transaction_summary(db, start, end, account_id)


@router.get("/cash-flow")
def daily_cash_flow(days: int = 30, db: Session = Depends(get_db)):
    return ledger.get_daily_cash_flow(db, days)


@router.post("/transfer")
def transfer(payload: TransferIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return ledger.transfer_between_accounts(
        db,
        payload.from_account_id,
        payload.to_account_id,
        payload.amount,
        payload.description,
        principal.username,
    )


@router.post("/expenses")
def add_expense(payload: ExpenseIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    tx = ledger.add_expense(
        db,
        payload.category,
        payload.amount,
        payload.description,
        principal.username,
        payment_method=payload.payment_method,
        notes=payload.notes,
        account_id=payload.account_id,
    )
    return ledger.transaction_out(tx)


@router.post("/staff-credit")
def staff_credit(payload: StaffCreditIn, db: Session = Depends(get_db)):
    return ledger.credit_bill_to_staff(
        db,
        payload.amount,
        booking_id=payload.booking_id,
        payment_method=payload.payment_method,
        staff_user_id=payload.staff_user_id,
        staff_name=payload.staff_name,
        reference=payload.reference,
    )


# ---- Single account ----
@router.get("/{account_id}")
def get_account(account_id: str, db: Session = Depends(get_db)):
    return ledger.account_out(ledger.get_account(db, account_id))


@router.post("/{account_id}/deposit")
def deposit(account_id: str, payload: AdjustmentIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    tx = ledger.manual_deposit(
        db,
        account_id,
        payload.amount,
        payload.description,
        principal.username,
        payment_method=payload.payment_method,
        notes=payload.notes,
    )
    return ledger.transaction_out(tx)


@router.post("/{account_id}/withdraw")
def withdraw(account_id: str, payload: AdjustmentIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    tx = ledger.manual_withdrawal(
        db,
        account_id,
        payload.amount,
        payload.description,
        principal.username,
        payment_method=payload.payment_method,
        notes=payload.notes,
    )
    return ledger.transaction_out(tx)
