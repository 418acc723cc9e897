from __future__ import annotations

import asyncio
import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.errors import BillingError, Conflict, UpstreamUnavailable
from app.db.base import Base
from app.db.session import engine

# Register models
from app.db import models  # noqa: F401

# Register outbox handlers
import services.revenue.handlers  # noqa: F401

from services.billing.api import router as billing_router
from services.ledger.api import router as accounts_router
from services.revenue.api import router as revenue_router
from services.invoicing.api import router as invoices_router, guest_router as guest_billing_router
from services.tax.api import router as tax_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("hotel")

OUTBOX_DISPATCHER_ENABLED = os.getenv("OUTBOX_DISPATCHER_ENABLED", "1").lower() not in ("0", "false", "no")
OUTBOX_POLL_SECONDS = float(os.getenv("OUTBOX_POLL_SECONDS", "1.0"))


app = FastAPI(title="Hotel Billing")


def _error_response(exc: BillingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "detail": exc.message})


@app.exception_handler(BillingError)
async def _billing_error(request: Request, exc: BillingError):
    return _error_response(exc)


@app.exception_handler(OperationalError)
async def _store_unavailable(request: Request, exc: OperationalError):
    log.error("data store unavailable on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(UpstreamUnavailable("data store unavailable"))


@app.exception_handler(IntegrityError)
async def _integrity_conflict(request: Request, exc: IntegrityError):
    log.warning("integrity conflict on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(Conflict("conflicting concurrent modification"))


app.include_router(billing_router)
app.include_router(accounts_router)
app.include_router(revenue_router)
app.include_router(invoices_router)
app.include_router(guest_billing_router)
app.include_router(tax_router)


@app.on_event("startup")
async def _startup():
    # Dev-friendly schema creation (migrations are available for real upgrades)
    Base.metadata.create_all(bind=engine)

    if OUTBOX_DISPATCHER_ENABLED:
        from app.events.dispatcher import run_dispatcher_forever

        asyncio.create_task(run_dispatcher_forever(poll_interval_seconds=OUTBOX_POLL_SECONDS))


@app.get("/health")
def health():
    return {"ok": True}
