"""Interest rate policy and term arithmetic for fixed deposits."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Mapping, Optional, Tuple

from .exceptions import ValidationError
from .models import UserProfile
from .money import AmountLike, CENT, to_rate

DEFAULT_INTEREST_RATE = Decimal("5.0")
MIN_RATE = Decimal("0")
MAX_RATE = Decimal("50")
DAYS_PER_MONTH = Decimal("30.44")

# (term in months, label, days)
TERM_OPTIONS: List[Tuple[Decimal, str, int]] = [
    (Decimal("0.25"), "1 week", 7),
    (Decimal("0.5"), "2 weeks", 14),
    (Decimal("1"), "1 month", 30),
    (Decimal("3"), "3 months", 90),
]
TERM_LOOKUP: Dict[Decimal, Tuple[str, int]] = {term: (label, days) for term, label, days in TERM_OPTIONS}
DEFAULT_TERM_RATES: Dict[Decimal, Decimal] = {
    Decimal("0.25"): Decimal("5.0"),
    Decimal("0.5"): Decimal("7.0"),
    Decimal("1"): Decimal("10.0"),
    Decimal("3"): Decimal("15.0"),
}


def to_term(value: AmountLike) -> Decimal:
    """Normalise a term given in (possibly fractional) months."""

    if isinstance(value, bool):
        raise ValidationError(f"Unsupported term type: {type(value)!r}", code="invalid_term")
    try:
        term = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Term {value!r} is not a number.", code="invalid_term") from exc
    if not term.is_finite() or term <= 0:
        raise ValidationError("Term must be greater than zero.", code="invalid_term")
    return term


def term_key(term: Decimal) -> str:
    """Render ``term`` the way it is keyed in stored rate tables (``"0.25"``, ``"1"``)."""

    return format(term.normalize(), "f")


def term_days(term_months: Decimal) -> int:
    if term_months in TERM_LOOKUP:
        return TERM_LOOKUP[term_months][1]
    return int((term_months * DAYS_PER_MONTH).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def term_label(term_months: Decimal) -> str:
    if term_months in TERM_LOOKUP:
        return TERM_LOOKUP[term_months][0]
    days = term_days(term_months)
    if days % 30 == 0:
        months = days // 30
        return f"{months} month{'s' if months != 1 else ''}"
    if days % 7 == 0:
        weeks = days // 7
        return f"{weeks} week{'s' if weeks != 1 else ''}"
    return f"{days} day{'s' if days != 1 else ''}"


def maturity_date(start: datetime, term_months: Decimal) -> datetime:
    """Date the term ends; terms too long for a calendar date are rejected."""

    try:
        return start + timedelta(days=term_days(term_months))
    except (InvalidOperation, OverflowError) as exc:
        raise ValidationError(f"Term {term_months} months is too long.", code="invalid_term") from exc


def total_return(amount: Decimal, interest_rate: Decimal, term_months: Decimal) -> Decimal:
    """Principal plus simple interest prorated linearly over the term."""

    interest = amount * interest_rate * term_months / Decimal(1200)
    return (amount + interest).quantize(CENT, rounding=ROUND_HALF_UP)


class RatePolicy:
    """Resolve the annual rate offered for a term.

    Lookup order: the profile's per-term table, the built-in rate for that
    term, the profile's generic rate, then :data:`DEFAULT_INTEREST_RATE`.
    """

    def __init__(self, defaults: Optional[Mapping[Decimal, Decimal]] = None) -> None:
        self._defaults: Dict[Decimal, Decimal] = dict(defaults or DEFAULT_TERM_RATES)

    def rate_for_term(self, term_months: AmountLike, profile: Optional[UserProfile]) -> Decimal:
        term = to_term(term_months)
        generic = profile.interest_rate if profile is not None else DEFAULT_INTEREST_RATE
        if term not in TERM_LOOKUP:
            return generic
        if profile is not None:
            configured = profile.term_interest_rates.get(term)
            if configured is not None:
                return configured
        return self._defaults.get(term, generic)

    def all_rates(self, profile: Optional[UserProfile]) -> List[Dict[str, object]]:
        return [
            {
                "term_months": term,
                "label": label,
                "days": days,
                "rate": self.rate_for_term(term, profile),
            }
            for term, label, days in TERM_OPTIONS
        ]

    def validate_term_rates(self, rates: Mapping[AmountLike, AmountLike]) -> Dict[Decimal, Decimal]:
        """Return ``rates`` normalised, rejecting unknown terms and out-of-range values."""

        validated: Dict[Decimal, Decimal] = {}
        for raw_term, raw_rate in rates.items():
            term = to_term(raw_term)
            if term not in TERM_LOOKUP:
                raise ValidationError(f"Unsupported term: {raw_term!r}.", code="invalid_term")
            validated[term] = self.validate_rate(raw_rate)
        return validated

    @staticmethod
    def validate_rate(raw_rate: AmountLike) -> Decimal:
        rate = to_rate(raw_rate)
        if rate < MIN_RATE or rate > MAX_RATE:
            raise ValidationError(
                f"Rates must be between {MIN_RATE}% and {MAX_RATE}%.", code="invalid_rate"
            )
        return rate


def default_profile() -> UserProfile:
    return UserProfile(
        interest_rate=DEFAULT_INTEREST_RATE,
        term_interest_rates=dict(DEFAULT_TERM_RATES),
    )


__all__ = [
    "DEFAULT_INTEREST_RATE",
    "DEFAULT_TERM_RATES",
    "RatePolicy",
    "TERM_LOOKUP",
    "TERM_OPTIONS",
    "default_profile",
    "maturity_date",
    "term_days",
    "term_key",
    "term_label",
    "to_term",
    "total_return",
]
