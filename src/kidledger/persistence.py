"""Serialise ledger state to a key-value store and read it back."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .clock import ensure_aware
from .exceptions import PersistenceError
from .models import FixedDeposit, Transaction, UserProfile
from .ops import StructuredLogger
from .rates import default_profile, term_key
from .storage import KeyValueStore

TRANSACTIONS_KEY = "transactions"
DEPOSITS_KEY = "deposits"
PROFILE_KEY = "userProfile"
LAUNCHED_KEY = "hasLaunched"
STORAGE_KEYS: Tuple[str, ...] = (TRANSACTIONS_KEY, DEPOSITS_KEY, PROFILE_KEY, LAUNCHED_KEY)

_DECODE_ERRORS = (KeyError, TypeError, ValueError, InvalidOperation, AttributeError)


@dataclass(slots=True)
class LedgerState:
    """Everything read back from the store; transactions oldest-first."""

    transactions: List[Transaction] = field(default_factory=list)
    deposits: List[FixedDeposit] = field(default_factory=list)
    profile: Optional[UserProfile] = None
    has_launched: bool = False

    @property
    def is_first_launch(self) -> bool:
        return self.profile is None and not self.has_launched


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------
def parse_datetime(value: Any) -> datetime:
    """Turn a stored date back into an aware datetime.

    Accepts ISO-8601 text (a trailing ``Z`` included) and epoch milliseconds.
    """

    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_aware(datetime.fromisoformat(text))
    raise TypeError(f"Cannot interpret {value!r} as a date.")


def _decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError(f"Cannot interpret {value!r} as a number.")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def transaction_to_dict(transaction: Transaction) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": transaction.id,
        "title": transaction.title,
        "amount": _money(transaction.amount),
        "type": transaction.type.value,
        "category": transaction.category.value,
        "date": transaction.date.isoformat(),
    }
    if transaction.deposit_id is not None:
        payload["depositId"] = transaction.deposit_id
    return payload


def transaction_from_dict(data: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        amount=_decimal(data["amount"]),
        type=data["type"],
        category=data.get("category", "Other"),
        date=parse_datetime(data["date"]),
        deposit_id=data.get("depositId"),
    )


def deposit_to_dict(deposit: FixedDeposit) -> Dict[str, Any]:
    return {
        "id": deposit.id,
        "amount": _money(deposit.amount),
        "interestRate": str(deposit.interest_rate),
        "termMonths": term_key(deposit.term_months),
        "startDate": deposit.start_date.isoformat(),
        "maturityDate": deposit.maturity_date.isoformat(),
        "status": deposit.status.value,
        "totalReturn": _money(deposit.total_return),
    }


def deposit_from_dict(data: Mapping[str, Any]) -> FixedDeposit:
    return FixedDeposit(
        id=str(data["id"]),
        amount=_decimal(data["amount"]),
        interest_rate=_decimal(data["interestRate"]),
        term_months=_decimal(data["termMonths"]),
        start_date=parse_datetime(data["startDate"]),
        maturity_date=parse_datetime(data["maturityDate"]),
        total_return=_decimal(data["totalReturn"]),
        status=data.get("status", "active"),
    )


def profile_to_dict(profile: UserProfile) -> Dict[str, Any]:
    return {
        "parentName": profile.parent_name,
        "childName": profile.child_name,
        "parentalPassword": profile.parental_password,
        "notificationsEnabled": profile.notifications_enabled,
        "appStyle": profile.app_style.value,
        "interestRate": str(profile.interest_rate),
        "termInterestRates": {
            term_key(term): str(rate) for term, rate in sorted(profile.term_interest_rates.items())
        },
        "language": profile.language.value,
    }


def migrate_profile(stored: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merge a stored profile over the current defaults.

    Fields introduced after the document was written, such as a newly offered
    term in the rate table, are backfilled from the default profile.
    """

    merged = profile_to_dict(default_profile())
    for key, value in stored.items():
        if key == "termInterestRates" and isinstance(value, Mapping):
            rates = dict(merged["termInterestRates"])
            for term, rate in value.items():
                if rate is None:
                    continue
                rates[term_key(_decimal(term))] = rate
            merged["termInterestRates"] = rates
        elif value is not None:
            merged[key] = value
    return merged


def profile_from_dict(data: Mapping[str, Any]) -> UserProfile:
    merged = migrate_profile(data)
    return UserProfile(
        parent_name=str(merged["parentName"]),
        child_name=str(merged["childName"]),
        parental_password=str(merged["parentalPassword"]),
        notifications_enabled=bool(merged["notificationsEnabled"]),
        app_style=merged["appStyle"],
        interest_rate=_decimal(merged["interestRate"]),
        term_interest_rates={
            _decimal(term): _decimal(rate) for term, rate in merged["termInterestRates"].items()
        },
        language=merged["language"],
    )


def _encode(document: Any) -> bytes:
    return json.dumps(document, ensure_ascii=False).encode("utf-8")


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------
class PersistenceAdapter:
    """Flush ledger documents to a store, retrying with exponential backoff.

    A write or delete that still fails after the last attempt is kept as
    pending and :attr:`saved` turns false until a later flush of that key
    succeeds. Failures are logged, never raised.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        logger: Optional[StructuredLogger] = None,
        retry_attempts: int = 3,
        backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self.store = store
        self._logger = logger or StructuredLogger()
        self._attempts = retry_attempts
        self._backoff = backoff_seconds
        self._sleep = sleep
        # None marks a pending delete.
        self._pending: Dict[str, Optional[bytes]] = {}

    @property
    def saved(self) -> bool:
        return not self._pending

    @property
    def pending(self) -> Tuple[str, ...]:
        return tuple(sorted(self._pending))

    # Loading ---------------------------------------------------------------
    def load(self) -> LedgerState:
        """Read every document; missing keys are a normal first run."""

        state = LedgerState()
        raw_transactions = self._read_json(TRANSACTIONS_KEY)
        raw_deposits = self._read_json(DEPOSITS_KEY)
        raw_profile = self._read_json(PROFILE_KEY)
        launched = self._read(LAUNCHED_KEY)
        try:
            if raw_transactions is not None:
                # Stored most-recent-first.
                state.transactions = [transaction_from_dict(item) for item in reversed(raw_transactions)]
            if raw_deposits is not None:
                state.deposits = [deposit_from_dict(item) for item in raw_deposits]
            if raw_profile is not None:
                state.profile = profile_from_dict(raw_profile)
        except _DECODE_ERRORS as exc:
            raise PersistenceError(f"Stored ledger state is malformed: {exc}") from exc
        state.has_launched = (launched or b"").strip() == b"true" or state.profile is not None
        return state

    def _read(self, key: str) -> Optional[bytes]:
        last_error: Exception | None = None
        for attempt in range(self._attempts):
            try:
                return self.store.get(key)
            except (PersistenceError, OSError) as exc:
                last_error = exc
                self._backoff_after(attempt)
        self._logger.log("persistence_read_failed", key=key, error=str(last_error))
        raise PersistenceError(f"Could not read '{key}': {last_error}") from last_error

    def _read_json(self, key: str) -> Any:
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Stored document '{key}' is not valid JSON: {exc}") from exc

    # Saving ----------------------------------------------------------------
    def save_transactions(self, transactions: Sequence[Transaction]) -> bool:
        """Persist ``transactions`` given most-recent-first."""

        return self._write(TRANSACTIONS_KEY, _encode([transaction_to_dict(tx) for tx in transactions]))

    def save_deposits(self, deposits: Iterable[FixedDeposit]) -> bool:
        return self._write(DEPOSITS_KEY, _encode([deposit_to_dict(deposit) for deposit in deposits]))

    def save_profile(self, profile: UserProfile) -> bool:
        saved = self._write(PROFILE_KEY, _encode(profile_to_dict(profile)))
        launched = self._write(LAUNCHED_KEY, b"true")
        return saved and launched

    def flush_pending(self, *, skip: Iterable[str] = ()) -> bool:
        """Retry every write or delete that previously gave up, except keys in ``skip``."""

        skipped = set(skip)
        for key, payload in list(self._pending.items()):
            if key not in skipped:
                self._apply(key, payload)
        return self.saved

    def clear(self) -> bool:
        """Delete every ledger key; a delete that keeps failing stays pending."""

        results = [self._apply(key, None) for key in STORAGE_KEYS]
        return all(results)

    def _write(self, key: str, payload: bytes) -> bool:
        return self._apply(key, payload)

    def _apply(self, key: str, payload: Optional[bytes]) -> bool:
        """Store ``payload`` under ``key``, or delete the key when ``payload`` is None."""

        last_error: Exception | None = None
        for attempt in range(self._attempts):
            try:
                if payload is None:
                    self.store.delete(key)
                else:
                    self.store.set(key, payload)
            except (PersistenceError, OSError) as exc:
                last_error = exc
                self._backoff_after(attempt)
                continue
            self._pending.pop(key, None)
            return True
        self._pending[key] = payload
        self._logger.log(
            "persistence_delete_failed" if payload is None else "persistence_write_failed",
            key=key,
            attempts=self._attempts,
            error=str(last_error),
        )
        return False

    def _backoff_after(self, attempt: int) -> None:
        if attempt < self._attempts - 1 and self._backoff > 0:
            self._sleep(self._backoff * (2**attempt))


__all__ = [
    "DEPOSITS_KEY",
    "LAUNCHED_KEY",
    "LedgerState",
    "PROFILE_KEY",
    "PersistenceAdapter",
    "STORAGE_KEYS",
    "TRANSACTIONS_KEY",
    "deposit_from_dict",
    "deposit_to_dict",
    "migrate_profile",
    "parse_datetime",
    "profile_from_dict",
    "profile_to_dict",
    "transaction_from_dict",
    "transaction_to_dict",
]
