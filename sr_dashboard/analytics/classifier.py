"""
Referrer Population Classifier

Decides which referrers (marketing persons / SRs) are genuine, and buckets
registrations by where they came from. The same rules are available as a pure
Python predicate and as SQL expressions, so every aggregate splits
"SR-linked" from "direct" activity identically.

A referrer is valid when all of these hold:
    1. status is the active sentinel
    2. name is not a known placeholder
    3. name does not contain "test"
    4. name does not contain "@"
    5. name is longer than 3 characters
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, FrozenSet, Mapping, Optional, Union

from sqlalchemy import and_, case, func, not_, or_
from sqlalchemy.sql.elements import ColumnElement

from sr_dashboard.analytics.sql import text_position
from sr_dashboard.config import get_settings
from sr_dashboard.database.models import ReferrerStatus

PLACEHOLDER_NAMES: FrozenSet[str] = frozenset({"ggh", "gmg", "gh", "tuii", "Marketing Person"})
TEST_MARKER = "test"
EMAIL_MARKER = "@"
MIN_NAME_LENGTH = 3


class SourceClass(str, Enum):
    """Where a registration came from"""
    VALID_SR = "Valid SR"
    INVALID_OR_TEST_SR = "Invalid/Test SR"
    NO_REFERRAL_CODE = "No Referral Code"
    UNKNOWN_CODE = "Random/Unknown Code"


@dataclass(frozen=True)
class Referrer:
    """Plain referrer record; ORM MarketingPerson rows satisfy the same shape"""
    id: Optional[int]
    name: Optional[str]
    referral_code: Optional[str]
    status: Any = ReferrerStatus.ACTIVE


@dataclass(frozen=True)
class Registration:
    """Plain registration record; ORM User rows satisfy the same shape"""
    user_id: Optional[int]
    referral_code: Optional[str]


@dataclass(frozen=True)
class ReferrerRules:
    """Validity rules, shared by the Python predicate and the SQL rendering"""
    placeholder_names: FrozenSet[str] = PLACEHOLDER_NAMES
    min_name_length: int = MIN_NAME_LENGTH
    case_insensitive_test: bool = False

    @classmethod
    def from_settings(cls) -> "ReferrerRules":
        settings = get_settings()
        return cls(case_insensitive_test=settings.dashboard.case_insensitive_test_filter)


DEFAULT_RULES = ReferrerRules()

ReferrerLookup = Union[Mapping[str, Any], Callable[[str], Optional[Any]]]


def is_valid_referrer(referrer: Any, rules: ReferrerRules = DEFAULT_RULES) -> bool:
    """Apply the five validity conditions to a referrer-shaped object"""
    if ReferrerStatus.from_raw(getattr(referrer, "status", None)) is not ReferrerStatus.ACTIVE:
        return False

    name = getattr(referrer, "name", None)
    if not isinstance(name, str):
        return False
    if name in rules.placeholder_names:
        return False

    haystack = name.lower() if rules.case_insensitive_test else name
    if TEST_MARKER in haystack:
        return False
    if EMAIL_MARKER in name:
        return False

    return len(name) > rules.min_name_length


def classify_source(
    registration: Any,
    referrer_lookup: ReferrerLookup,
    rules: ReferrerRules = DEFAULT_RULES,
) -> SourceClass:
    """
    Bucket a registration by its referral code.

    Args:
        registration: Object with a referral_code attribute
        referrer_lookup: Mapping or callable from referral code to referrer
        rules: Validity rules
    """
    code = getattr(registration, "referral_code", None)
    referrer = _lookup(referrer_lookup, code) if code else None

    if referrer is not None:
        if is_valid_referrer(referrer, rules):
            return SourceClass.VALID_SR
        return SourceClass.INVALID_OR_TEST_SR
    if code is None or code == "":
        return SourceClass.NO_REFERRAL_CODE
    return SourceClass.UNKNOWN_CODE


def _lookup(referrer_lookup: ReferrerLookup, code: str) -> Optional[Any]:
    if callable(referrer_lookup):
        return referrer_lookup(code)
    return referrer_lookup.get(code)


# =============================================================================
# SQL RENDERING
# =============================================================================

def valid_referrer_clause(referrer_table: Any, rules: Optional[ReferrerRules] = None) -> ColumnElement:
    """
    SQL predicate that is TRUE exactly for valid referrer rows.

    Null-extended rows from an outer join evaluate to FALSE (never NULL), so
    not_(valid_referrer_clause(...)) is the exact complement.

    Args:
        referrer_table: MarketingPerson entity or an alias of it
        rules: Validity rules, defaults to the configured rules
    """
    rules = rules or ReferrerRules.from_settings()
    name = func.coalesce(referrer_table.name, "")
    haystack = func.lower(name) if rules.case_insensitive_test else name

    return and_(
        func.coalesce(referrer_table.referral_code, "") != "",
        func.coalesce(referrer_table.status, ReferrerStatus.INACTIVE.value) == ReferrerStatus.ACTIVE.value,
        name.notin_(sorted(rules.placeholder_names)),
        text_position(haystack, TEST_MARKER) == 0,
        text_position(name, EMAIL_MARKER) == 0,
        func.length(name) > rules.min_name_length,
    )


def source_class_case(
    referrer_table: Any,
    user_table: Any,
    rules: Optional[ReferrerRules] = None,
) -> ColumnElement:
    """SQL CASE mapping a user row (outer-joined to its referrer) to its SourceClass value"""
    return case(
        (valid_referrer_clause(referrer_table, rules), SourceClass.VALID_SR.value),
        (referrer_table.referral_code.isnot(None), SourceClass.INVALID_OR_TEST_SR.value),
        (
            or_(user_table.referral_code.is_(None), user_table.referral_code == ""),
            SourceClass.NO_REFERRAL_CODE.value,
        ),
        else_=SourceClass.UNKNOWN_CODE.value,
    )


def direct_clause(referrer_table: Any, rules: Optional[ReferrerRules] = None) -> ColumnElement:
    """Complement of valid_referrer_clause: no referrer, or an excluded one"""
    return not_(valid_referrer_clause(referrer_table, rules))
