from datetime import datetime, timezone
from decimal import Decimal

import pytest

from kidledger.exceptions import ValidationError
from kidledger.models import UserProfile
from kidledger.rates import (
    RatePolicy,
    default_profile,
    maturity_date,
    term_days,
    term_key,
    term_label,
    total_return,
)


def test_term_days_use_fixed_table_then_average_month() -> None:
    assert term_days(Decimal("0.25")) == 7
    assert term_days(Decimal("0.5")) == 14
    assert term_days(Decimal("1")) == 30
    assert term_days(Decimal("3")) == 90
    assert term_days(Decimal("2")) == 61
    assert term_days(Decimal("6")) == 183


def test_term_labels_and_keys() -> None:
    assert term_label(Decimal("0.25")) == "1 week"
    assert term_label(Decimal("3")) == "3 months"
    assert term_key(Decimal("0.50")) == "0.5"
    assert term_key(Decimal("1.0")) == "1"


def test_maturity_date_counts_days() -> None:
    start = datetime(2024, 1, 31, tzinfo=timezone.utc)
    assert maturity_date(start, Decimal("1")) == datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_total_return_is_simple_prorated_interest() -> None:
    assert total_return(Decimal("60"), Decimal("10"), Decimal("1")) == Decimal("60.50")
    assert total_return(Decimal("100"), Decimal("15"), Decimal("3")) == Decimal("103.75")
    assert total_return(Decimal("10"), Decimal("5"), Decimal("0.25")) == Decimal("10.01")
    assert total_return(Decimal("10"), Decimal("0"), Decimal("1")) == Decimal("10.00")


def test_rate_lookup_order() -> None:
    policy = RatePolicy()
    assert policy.rate_for_term("1", None) == Decimal("10.0")
    assert policy.rate_for_term("2", None) == Decimal("5.0")

    profile = UserProfile(interest_rate=Decimal("4"), term_interest_rates={"1": "12", "0.25": "0"})
    assert policy.rate_for_term("1", profile) == Decimal("12")
    assert policy.rate_for_term("0.25", profile) == Decimal("0")
    assert policy.rate_for_term("3", profile) == Decimal("15.0")
    assert policy.rate_for_term("6", profile) == Decimal("4")


def test_all_rates_lists_every_offered_term() -> None:
    rates = RatePolicy().all_rates(default_profile())
    assert [row["label"] for row in rates] == ["1 week", "2 weeks", "1 month", "3 months"]
    assert [row["days"] for row in rates] == [7, 14, 30, 90]
    assert [row["rate"] for row in rates] == [Decimal("5.0"), Decimal("7.0"), Decimal("10.0"), Decimal("15.0")]


def test_rate_validation_bounds() -> None:
    assert RatePolicy.validate_rate("0") == Decimal("0")
    assert RatePolicy.validate_rate("50") == Decimal("50")
    for bad in ("-1", "50.5", "lots"):
        with pytest.raises(ValidationError) as excinfo:
            RatePolicy.validate_rate(bad)
        assert excinfo.value.code == "invalid_rate"


def test_term_rate_table_rejects_unknown_terms() -> None:
    policy = RatePolicy()
    assert policy.validate_term_rates({"0.5": "8"}) == {Decimal("0.5"): Decimal("8")}
    with pytest.raises(ValidationError) as excinfo:
        policy.validate_term_rates({"2": "8"})
    assert excinfo.value.code == "invalid_term"


def test_default_profile_matches_first_launch_settings() -> None:
    profile = default_profile()
    assert profile.parental_password == "1234"
    assert profile.app_style.value == "girls"
    assert profile.language.value == "en"
    assert profile.interest_rate == Decimal("5.0")
    assert profile.term_interest_rates[Decimal("3")] == Decimal("15.0")
