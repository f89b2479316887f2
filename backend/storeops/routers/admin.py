from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storeops.database import get_db
from storeops.services.affiliate_expense import backfill_affiliate_expenses
from storeops.services.shippo_client import ShippoClient, ShippoError, get_shippo_client
from storeops.services.shippo_sync import resync_shippo_expenses, sync_shipping_from_shippo_orders, sync_shippo_invoices
from storeops.services.webhook_auth import require_api_key
from storeops.utils.logger import integration_log, logger

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_api_key)])


def _upstream_error(exc: ShippoError) -> HTTPException:
    logger.error(f"Shippo upstream failure: {exc.message} status={exc.status_code}")
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"error": exc.message, "upstream_status": exc.status_code},
    )


@router.get("/sync-shipping-from-shippo")
async def sync_shipping_from_shippo(
    max_pages: int = Query(10, ge=1, le=100),
    results_per_page: int = Query(100, ge=1, le=100),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: ShippoClient = Depends(get_shippo_client),
):
    try:
        return await sync_shipping_from_shippo_orders(
            db,
            client,
            max_pages=max_pages,
            results_per_page=results_per_page,
            start_date=start_date,
            end_date=end_date,
        )
    except ShippoError as exc:
        raise _upstream_error(exc)


class ResyncRequest(BaseModel):
    force: bool = False
    order_numbers: Optional[List[str]] = None


@router.post("/resync-shippo-expenses")
async def resync_shippo(
    body: ResyncRequest = Body(default=ResyncRequest()),
    db: Session = Depends(get_db),
    client: ShippoClient = Depends(get_shippo_client),
):
    return await resync_shippo_expenses(db, client, force=body.force, order_numbers=body.order_numbers)


@router.post("/sync-shippo-invoices")
async def sync_invoices(
    max_pages: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    client: ShippoClient = Depends(get_shippo_client),
):
    try:
        return await sync_shippo_invoices(db, client, max_pages=max_pages)
    except ShippoError as exc:
        raise _upstream_error(exc)


@router.post("/backfill-affiliate-expenses")
async def backfill_affiliate(db: Session = Depends(get_db)):
    return backfill_affiliate_expenses(db)


@router.get("/integration-log")
async def get_integration_log(limit: int = Query(100, ge=1, le=500), provider: Optional[str] = Query(None)):
    return {"entries": integration_log.get_entries(limit=limit, provider=provider)}
