from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.utils.logger import logger


class PersistenceError(Exception):
    """Every attempt of an upsert cascade was rejected by the store."""

    def __init__(self, message: str, attempt_errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.attempt_errors = attempt_errors or []


@dataclass
class UpsertAttempt:
    """One step of an upsert cascade.

    ``conflict_target`` names the unique columns for ON CONFLICT; ``None``
    means a plain INSERT.
    """

    label: str
    conflict_target: Optional[Sequence[str]]
    values: Dict[str, Any] = field(default_factory=dict)


def _dialect_insert(db: Session, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise PersistenceError(f"ON CONFLICT upserts are not supported on {dialect}")


def build_statement(db: Session, model, attempt: UpsertAttempt):
    if not attempt.conflict_target:
        return insert(model).values(**attempt.values)

    stmt = _dialect_insert(db, model).values(**attempt.values)
    target = list(attempt.conflict_target)
    update_cols = {key: getattr(stmt.excluded, key) for key in attempt.values if key not in target}
    if not update_cols:
        return stmt.on_conflict_do_nothing(index_elements=target)
    return stmt.on_conflict_do_update(index_elements=target, set_=update_cols)


def run_upsert_cascade(db: Session, model, attempts: Sequence[UpsertAttempt]) -> UpsertAttempt:
    """Execute attempts in order until one succeeds and return it.

    Each attempt runs inside a SAVEPOINT so a rejected statement does not
    poison the surrounding transaction. Raises PersistenceError carrying the
    store's message for every failed attempt.
    """
    errors: List[str] = []
    for attempt in attempts:
        try:
            with db.begin_nested():
                db.execute(build_statement(db, model, attempt))
            if errors:
                logger.info(f"{model.__tablename__} upsert succeeded via fallback '{attempt.label}'")
            return attempt
        except SQLAlchemyError as exc:
            detail = str(getattr(exc, "orig", None) or exc)
            logger.warning(f"{model.__tablename__} upsert attempt '{attempt.label}' failed: {detail}")
            errors.append(f"{attempt.label}: {detail}")

    raise PersistenceError("; ".join(errors) or "no upsert attempts to run", errors)
