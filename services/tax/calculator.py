"""Tax calculation from a hotel's configured rates.

``calculate_taxes`` is a pure function of its inputs: no session, no clock,
no module state. Every tax component is rounded half-up to cents once; the
totals are sums of those rounded components.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from app.core.errors import ValidationError
from app.core.money import ZERO, dec, percent_of, q


@dataclass(frozen=True)
class OtherTax:
    name: str
    percentage: Decimal
    description: str | None = None


@dataclass(frozen=True)
class TaxConfig:
    gst_percentage: Decimal = Decimal("0")
    service_tax_percentage: Decimal = Decimal("0")
    other_taxes: tuple[OtherTax, ...] = ()
    enabled: bool = True

    @classmethod
    def build(
        cls,
        *,
        gst_percentage: Any = 0,
        service_tax_percentage: Any = 0,
        other_taxes: Iterable[dict | OtherTax] | None = None,
        enabled: bool = True,
    ) -> "TaxConfig":
        """Validate raw configuration values and freeze them."""
        gst = _percentage(gst_percentage, "gst_percentage")
        service = _percentage(service_tax_percentage, "service_tax_percentage")
        others: list[OtherTax] = []
        for i, raw in enumerate(other_taxes or []):
            if isinstance(raw, OtherTax):
                others.append(raw)
                continue
            if not isinstance(raw, dict):
                raise ValidationError(f"other_taxes[{i}] must be an object", field="other_taxes")
            name = str(raw.get("name") or "").strip()
            if not name:
                raise ValidationError(f"other_taxes[{i}] requires a name", field="other_taxes")
            others.append(
                OtherTax(
                    name=name,
                    percentage=_percentage(raw.get("percentage"), f"other_taxes[{i}].percentage"),
                    description=raw.get("description"),
                )
            )
        return cls(gst_percentage=gst, service_tax_percentage=service, other_taxes=tuple(others), enabled=bool(enabled))

    @classmethod
    def from_hotel(cls, hotel) -> "TaxConfig":
        """Snapshot a HotelInfo row. No hotel profile means no taxes."""
        if hotel is None:
            return cls(enabled=False)
        return cls.build(
            gst_percentage=hotel.gst_percentage,
            service_tax_percentage=hotel.service_tax_percentage,
            other_taxes=hotel.other_taxes or [],
            enabled=hotel.tax_enabled,
        )


@dataclass(frozen=True)
class TaxLine:
    name: str
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class TaxBreakdown:
    base_amount: Decimal
    gst_amount: Decimal
    service_tax_amount: Decimal
    other_tax_amount: Decimal
    total_tax_amount: Decimal
    total_amount: Decimal
    taxes: tuple[TaxLine, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "base_amount": float(self.base_amount),
            "gst_amount": float(self.gst_amount),
            "service_tax_amount": float(self.service_tax_amount),
            "other_tax_amount": float(self.other_tax_amount),
            "total_tax_amount": float(self.total_tax_amount),
            "total_amount": float(self.total_amount),
            "taxes": [{"name": t.name, "percentage": float(t.percentage), "amount": float(t.amount)} for t in self.taxes],
        }


def _percentage(value: Any, name: str) -> Decimal:
    if value is None:
        return Decimal("0")
    pct = dec(value, name)
    if pct < 0:
        raise ValidationError(f"{name} must not be negative", field=name)
    return pct


def calculate_taxes(base_amount: Any, config: TaxConfig) -> TaxBreakdown:
    base = q(base_amount)
    if not config.enabled:
        return TaxBreakdown(
            base_amount=base,
            gst_amount=ZERO,
            service_tax_amount=ZERO,
            other_tax_amount=ZERO,
            total_tax_amount=ZERO,
            total_amount=base,
        )

    taxes: list[TaxLine] = []
    gst = percent_of(base, config.gst_percentage)
    if config.gst_percentage > 0:
        taxes.append(TaxLine("GST", config.gst_percentage, gst))

    service_tax = percent_of(base, config.service_tax_percentage)
    if config.service_tax_percentage > 0:
        taxes.append(TaxLine("Service Tax", config.service_tax_percentage, service_tax))

    other = ZERO
    for tax in config.other_taxes:
        if tax.percentage <= 0:
            continue
        amount = percent_of(base, tax.percentage)
        other += amount
        taxes.append(TaxLine(tax.name, tax.percentage, amount))

    total_tax = gst + service_tax + other
    return TaxBreakdown(
        base_amount=base,
        gst_amount=gst,
        service_tax_amount=service_tax,
        other_tax_amount=other,
        total_tax_amount=total_tax,
        total_amount=base + total_tax,
        taxes=tuple(taxes),
    )


def calculate_item_taxes(amount: Any, config: TaxConfig, *, taxable: bool = True) -> TaxBreakdown:
    if not taxable:
        return calculate_taxes(amount, TaxConfig(enabled=False))
    return calculate_taxes(amount, config)


def _fmt(x: Decimal) -> str:
    return f"{x:.2f}"


def format_tax_breakdown(breakdown: TaxBreakdown, currency: str = "₹") -> str:
    lines = [f"Base Amount: {currency}{_fmt(breakdown.base_amount)}"]
    for tax in breakdown.taxes:
        lines.append(f"{tax.name} ({tax.percentage.normalize():f}%): {currency}{_fmt(tax.amount)}")
    lines.append(f"Total Amount: {currency}{_fmt(breakdown.total_amount)}")
    return "\n".join(lines)
