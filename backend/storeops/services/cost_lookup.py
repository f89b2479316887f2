from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import ProductCostLookup
from storeops.utils.logger import logger

_KEYWORD_SPLIT = re.compile(r"[\s\-+]+")


@dataclass
class CostMatch:
    cost_per_unit: float = 0.0
    matched_name: str = ""
    matched_strength: str = ""

    @property
    def matched(self) -> bool:
        return bool(self.matched_name)


def split_product_name(product_name: str) -> Tuple[str, str]:
    """Split ``"Base Name - Strength"`` into its two halves."""
    name = (product_name or "").strip()
    if " - " not in name:
        return name, ""
    base, _, strength = name.partition(" - ")
    return base.strip(), strength.strip()


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _strength_matches(row_strength: Optional[str], wanted: str) -> bool:
    have = (row_strength or "").strip().lower()
    want = wanted.lower()
    if not have:
        return False
    return have in want or want in have


def _pick(rows: List[ProductCostLookup], strength: str, vendor: Optional[str]) -> ProductCostLookup:
    pool = rows
    if strength:
        preferred = [r for r in rows if _strength_matches(r.strength, strength)]
        if preferred:
            pool = preferred
    if vendor:
        wanted_vendor = vendor.strip().lower()
        for row in pool:
            if (row.vendor or "").strip().lower() == wanted_vendor:
                return row
    return pool[0]


def _to_match(row: ProductCostLookup) -> CostMatch:
    try:
        cost = float(row.cost_per_unit or 0)
    except (TypeError, ValueError):
        cost = 0.0
    return CostMatch(cost_per_unit=cost, matched_name=row.product_name or "", matched_strength=row.strength or "")


def _substring_rows(db: Session, needle: str) -> List[ProductCostLookup]:
    pattern = f"%{_like_escape(needle)}%"
    return (
        db.query(ProductCostLookup)
        .filter(ProductCostLookup.product_name.ilike(pattern, escape="\\"))
        .order_by(ProductCostLookup.id.asc())
        .all()
    )


def _lookup(db: Session, product_name: str, vendor: Optional[str]) -> CostMatch:
    base_name, strength = split_product_name(product_name)
    if not base_name:
        return CostMatch()

    # 1. exact base name; strength must agree when one was given
    exact_q = db.query(ProductCostLookup).filter(func.lower(ProductCostLookup.product_name) == base_name.lower())
    if strength:
        exact_q = exact_q.filter(func.lower(ProductCostLookup.strength) == strength.lower())
    exact = exact_q.order_by(ProductCostLookup.id.asc()).all()
    if exact:
        return _to_match(_pick(exact, "", vendor))

    # 2. base name as a substring of the lookup name
    partial = _substring_rows(db, base_name)
    if partial:
        return _to_match(_pick(partial, strength, vendor))

    # 3. individual keywords, first keyword with any hit wins
    for keyword in _KEYWORD_SPLIT.split(base_name):
        if len(keyword) <= 2:
            continue
        rows = _substring_rows(db, keyword)
        if rows:
            return _to_match(_pick(rows, strength, vendor))

    return CostMatch()


def lookup_cost(db: Session, product_name: str, vendor: Optional[str] = None) -> CostMatch:
    """Resolve a per-unit cost for a product display name.

    Tries an exact base-name match, then a substring match, then a keyword
    match. Never raises: any failure resolves to a zero cost with no match.
    The queries run inside a savepoint, so a failed statement leaves the
    caller's transaction usable.
    """
    try:
        with db.begin_nested():
            match = _lookup(db, product_name, vendor)
    except SQLAlchemyError as exc:
        logger.warning(f"Cost lookup failed for {product_name!r}: {exc}")
        return CostMatch()
    return match
