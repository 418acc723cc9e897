from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.session import get_db
from services.tax.calculator import TaxConfig, calculate_taxes, format_tax_breakdown
from services.tax.config import load_tax_config

router = APIRouter(prefix="/tax", tags=["tax"])


class OtherTaxIn(BaseModel):
    name: str
    percentage: Decimal
    description: str | None = None


class TaxConfigIn(BaseModel):
    gst_percentage: Decimal = Decimal("0")
    service_tax_percentage: Decimal = Decimal("0")
    other_taxes: list[OtherTaxIn] = Field(default_factory=list)
    enabled: bool = True


class TaxCalculateIn(BaseModel):
    base_amount: Decimal = Field(..., ge=0)
    # Hotel configuration is used when omitted
    config: TaxConfigIn | None = None


def _config_out(config: TaxConfig) -> dict:
    return {
        "gst_percentage": float(config.gst_percentage),
        "service_tax_percentage": float(config.service_tax_percentage),
        "other_taxes": [
            {"name": t.name, "percentage": float(t.percentage), "description": t.description}
            for t in config.other_taxes
        ],
        "enabled": config.enabled,
    }


@router.get("/config")
def get_config(db: Session = Depends(get_db)):
    return _config_out(load_tax_config(db))


@router.post("/calculate")
def calculate(payload: TaxCalculateIn, db: Session = Depends(get_db)):
    if payload.config is None:
        config = load_tax_config(db)
    else:
        config = TaxConfig.build(**payload.config.model_dump())
    breakdown = calculate_taxes(payload.base_amount, config)
    return {**breakdown.to_dict(), "summary": format_tax_breakdown(breakdown)}
