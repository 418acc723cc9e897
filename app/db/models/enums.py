from __future__ import annotations

import enum
from typing import Any, TypeVar

from app.core.errors import ValidationError

E = TypeVar("E", bound=enum.Enum)


class RevenueCategory(str, enum.Enum):
    ACCOMMODATION = "accommodation"
    FOOD_BEVERAGE = "food_beverage"
    SPA = "spa"
    TRANSPORT = "transport"
    LAUNDRY = "laundry"
    MINIBAR = "minibar"
    CONFERENCE = "conference"
    OTHER = "other"


class ServiceCategory(str, enum.Enum):
    ACCOMMODATION = "accommodation"
    FOOD_BEVERAGE = "food_beverage"
    SPA = "spa"
    TRANSPORT = "transport"
    LAUNDRY = "laundry"
    MINIBAR = "minibar"
    CONFERENCE = "conference"
    OTHER = "other"


class TransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, enum.Enum):
    ACCOMMODATION_REVENUE = "accommodation_revenue"
    FOOD_BEVERAGE_REVENUE = "food_beverage_revenue"
    SPA_REVENUE = "spa_revenue"
    TRANSPORT_REVENUE = "transport_revenue"
    LAUNDRY_REVENUE = "laundry_revenue"
    MINIBAR_REVENUE = "minibar_revenue"
    CONFERENCE_REVENUE = "conference_revenue"
    OTHER_SERVICES_REVENUE = "other_services_revenue"
    GUEST_PAYMENT = "guest_payment"
    PAYMENT_ADJUSTMENT = "payment_adjustment"
    STAFF_COLLECTION = "staff_collection"
    MANUAL_DEPOSIT = "manual_deposit"
    MANUAL_WITHDRAWAL = "manual_withdrawal"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    REFUNDS = "refunds"
    SALARY = "salary"
    UTILITIES = "utilities"
    MAINTENANCE = "maintenance"
    SUPPLIES = "supplies"
    MARKETING = "marketing"
    OTHER_EXPENSE = "other_expense"


EXPENSE_CATEGORIES = frozenset(
    {
        TransactionCategory.SALARY,
        TransactionCategory.UTILITIES,
        TransactionCategory.MAINTENANCE,
        TransactionCategory.SUPPLIES,
        TransactionCategory.MARKETING,
        TransactionCategory.OTHER_EXPENSE,
    }
)


class ReferenceType(str, enum.Enum):
    BOOKING = "booking"
    INVOICE = "invoice"
    PAYMENT = "payment"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"


class AccountType(str, enum.Enum):
    MAIN = "main"
    CURRENT = "current"
    SAVINGS = "savings"
    PETTY_CASH = "petty_cash"


# Account types whose balance may never go below zero.
NON_NEGATIVE_ACCOUNT_TYPES = frozenset({AccountType.SAVINGS})


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    ONLINE_GATEWAY = "online_gateway"
    CHEQUE = "cheque"
    WALLET = "wallet"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class BookingSource(str, enum.Enum):
    WEBSITE = "website"
    PHONE = "phone"
    WALK_IN = "walk_in"
    OTA = "ota"
    CORPORATE = "corporate"
    AGENT = "agent"
    REFERRAL = "referral"


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PeriodType(str, enum.Enum):
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def exhaustive(enum_cls: type[E], mapping: dict[E, Any]) -> dict[E, Any]:
    """Fail at import time when a fan-out mapping misses a member."""
    missing = [m.value for m in enum_cls if m not in mapping]
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} mapping is missing {missing}")
    return mapping


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field, value=value) from e


REVENUE_CATEGORY_FOR_SERVICE = exhaustive(
    ServiceCategory,
    {
        ServiceCategory.ACCOMMODATION: RevenueCategory.ACCOMMODATION,
        ServiceCategory.FOOD_BEVERAGE: RevenueCategory.FOOD_BEVERAGE,
        ServiceCategory.SPA: RevenueCategory.SPA,
        ServiceCategory.TRANSPORT: RevenueCategory.TRANSPORT,
        ServiceCategory.LAUNDRY: RevenueCategory.LAUNDRY,
        ServiceCategory.MINIBAR: RevenueCategory.MINIBAR,
        ServiceCategory.CONFERENCE: RevenueCategory.CONFERENCE,
        ServiceCategory.OTHER: RevenueCategory.OTHER,
    },
)

LEDGER_CATEGORY_FOR_REVENUE = exhaustive(
    RevenueCategory,
    {
        RevenueCategory.ACCOMMODATION: TransactionCategory.ACCOMMODATION_REVENUE,
        RevenueCategory.FOOD_BEVERAGE: TransactionCategory.FOOD_BEVERAGE_REVENUE,
        RevenueCategory.SPA: TransactionCategory.SPA_REVENUE,
        RevenueCategory.TRANSPORT: TransactionCategory.TRANSPORT_REVENUE,
        RevenueCategory.LAUNDRY: TransactionCategory.LAUNDRY_REVENUE,
        RevenueCategory.MINIBAR: TransactionCategory.MINIBAR_REVENUE,
        RevenueCategory.CONFERENCE: TransactionCategory.CONFERENCE_REVENUE,
        RevenueCategory.OTHER: TransactionCategory.OTHER_SERVICES_REVENUE,
    },
)
