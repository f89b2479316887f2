from __future__ import annotations

from typing import Iterable, List, Optional

import regex
from sqlalchemy import func
from sqlalchemy.orm import Session

from storeops.config import settings
from storeops.models_sqlalchemy.models import ExpenseCategorizationRule, RulePatternType
from storeops.utils.logger import logger


def build_match_text(description: Optional[str], vendor: Optional[str]) -> str:
    return f"{description or ''} {vendor or ''}".upper()


def load_active_rules(db: Session) -> List[ExpenseCategorizationRule]:
    """Active rules, highest priority first (newest first on ties)."""
    return (
        db.query(ExpenseCategorizationRule)
        .filter(ExpenseCategorizationRule.active == True)  # noqa: E712
        .order_by(ExpenseCategorizationRule.priority.desc(), ExpenseCategorizationRule.id.desc())
        .all()
    )


def next_priority(db: Session) -> int:
    current = db.query(func.max(ExpenseCategorizationRule.priority)).scalar()
    return (current or 0) + 1


def validate_pattern(pattern: str, pattern_type: str) -> None:
    """Reject patterns that can never be evaluated safely. Raises ValueError."""
    if pattern_type not in {t.value for t in RulePatternType}:
        raise ValueError(f"Unknown pattern_type {pattern_type!r}")
    if not pattern or not pattern.strip():
        raise ValueError("pattern must not be empty")
    if len(pattern) > settings.RULE_PATTERN_MAX_LENGTH:
        raise ValueError(f"pattern is longer than {settings.RULE_PATTERN_MAX_LENGTH} characters")
    if pattern_type == RulePatternType.regex.value:
        try:
            regex.compile(pattern, regex.IGNORECASE)
        except regex.error as exc:
            raise ValueError(f"Invalid regular expression: {exc}") from exc


def _regex_matches(rule: ExpenseCategorizationRule, text: str) -> bool:
    if len(rule.pattern) > settings.RULE_PATTERN_MAX_LENGTH:
        logger.warning(f"Skipping over-long regex in expense rule {rule.id}")
        return False
    try:
        compiled = regex.compile(rule.pattern, regex.IGNORECASE)
    except regex.error:
        logger.warning(f"Invalid regex in expense rule {rule.id}: {rule.pattern}")
        return False
    try:
        return compiled.search(text, timeout=settings.RULE_REGEX_TIMEOUT_SECONDS) is not None
    except TimeoutError:
        logger.warning(f"Regex in expense rule {rule.id} timed out; treating as no match")
        return False


def rule_matches(rule: ExpenseCategorizationRule, text: str) -> bool:
    pattern = (rule.pattern or "").strip()
    if not pattern:
        return False

    if rule.pattern_type == RulePatternType.contains.value:
        return pattern.upper() in text
    if rule.pattern_type == RulePatternType.exact.value:
        return text.strip() == pattern.upper()
    if rule.pattern_type == RulePatternType.regex.value:
        return _regex_matches(rule, text)

    logger.warning(f"Unknown pattern_type {rule.pattern_type!r} on expense rule {rule.id}")
    return False


def categorize(description: Optional[str], vendor: Optional[str], rules: Iterable[ExpenseCategorizationRule]) -> Optional[str]:
    """Category of the first matching rule, or None.

    ``rules`` must already be ordered by evaluation order.
    """
    text = build_match_text(description, vendor)
    for rule in rules:
        if rule_matches(rule, text):
            return rule.category
    return None


def categorize_transaction(db: Session, description: Optional[str], vendor: Optional[str]) -> Optional[str]:
    return categorize(description, vendor, load_active_rules(db))
