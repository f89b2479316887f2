from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.database import get_db
from storeops.services.reports import empty_summary, product_performance, summarize
from storeops.utils.logger import logger

router = APIRouter(prefix="/reports", tags=["reports"])

# Dashboard reads degrade to empty data with a warning instead of failing.
DATA_UNAVAILABLE = "Data is temporarily unavailable; showing empty results."


@router.get("/summary")
async def get_summary(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        return {"summary": summarize(db, start, end), "warning": None}
    except SQLAlchemyError as exc:
        logger.error(f"Summary report failed: {exc}")
        return {"summary": empty_summary(), "warning": DATA_UNAVAILABLE}


@router.get("/products")
async def get_product_report(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    try:
        return {"products": product_performance(db, limit=limit), "warning": None}
    except SQLAlchemyError as exc:
        logger.error(f"Product report failed: {exc}")
        return {"products": [], "warning": DATA_UNAVAILABLE}
