import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from kidledger.clock import ManualClock
from kidledger.exceptions import PersistenceError
from kidledger.models import DepositStatus, Language, TransactionType
from kidledger.ops import StructuredLogger
from kidledger.persistence import (
    DEPOSITS_KEY,
    LAUNCHED_KEY,
    PROFILE_KEY,
    TRANSACTIONS_KEY,
    PersistenceAdapter,
    migrate_profile,
    parse_datetime,
    profile_from_dict,
)
from kidledger.rates import default_profile
from kidledger.service import KidLedger
from kidledger.storage import MemoryStore, SQLModelStore


class FlakyStore(MemoryStore):
    """Memory store whose writes fail while ``offline`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.offline = False
        self.attempts = 0

    def set(self, key: str, value: bytes) -> None:
        self.attempts += 1
        if self.offline:
            raise PersistenceError("disk unavailable")
        super().set(key, value)


def test_first_run_loads_empty_state() -> None:
    state = PersistenceAdapter(MemoryStore()).load()
    assert state.transactions == []
    assert state.deposits == []
    assert state.profile is None
    assert state.is_first_launch


def test_reads_documents_written_by_the_app() -> None:
    store = MemoryStore(
        {
            TRANSACTIONS_KEY: json.dumps(
                [
                    {
                        "id": "2",
                        "title": "Snack",
                        "amount": 4.5,
                        "type": "expense",
                        "category": "Food",
                        "date": "2024-05-02T10:00:00.000Z",
                    },
                    {
                        "id": "1",
                        "title": "Allowance",
                        "amount": "20",
                        "type": "income",
                        "category": "Pocket Money",
                        "date": "2024-05-01T10:00:00.000Z",
                    },
                ]
            ).encode(),
            DEPOSITS_KEY: json.dumps(
                [
                    {
                        "id": "dep_1",
                        "amount": 10,
                        "interestRate": 7,
                        "termMonths": 0.5,
                        "startDate": "2024-05-01T10:00:00.000Z",
                        "maturityDate": "2024-05-15T10:00:00.000Z",
                        "status": "active",
                        "totalReturn": 10.03,
                    }
                ]
            ).encode(),
            PROFILE_KEY: json.dumps({"childName": "Mia", "language": "zh-Hant"}).encode(),
        }
    )
    state = PersistenceAdapter(store).load()

    assert [tx.id for tx in state.transactions] == ["1", "2"]
    assert state.transactions[1].amount == Decimal("4.50")
    assert state.transactions[1].type is TransactionType.EXPENSE
    assert state.transactions[0].date == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    deposit = state.deposits[0]
    assert deposit.term_months == Decimal("0.5")
    assert deposit.total_return == Decimal("10.03")
    assert deposit.status is DepositStatus.ACTIVE
    assert state.profile is not None
    assert state.profile.child_name == "Mia"
    assert state.profile.language is Language.ZH_HANT
    assert not state.is_first_launch


def test_profile_migration_backfills_new_fields() -> None:
    merged = migrate_profile({"parentalPassword": "9999", "termInterestRates": {"1": 12, "3": None}})
    assert merged["parentalPassword"] == "9999"
    assert merged["appStyle"] == "girls"
    assert merged["termInterestRates"]["1"] == 12
    assert merged["termInterestRates"]["3"] == "15.0"
    assert merged["termInterestRates"]["0.25"] == "5.0"

    profile = profile_from_dict({"interestRate": 6})
    assert profile.interest_rate == Decimal("6")
    assert profile.term_interest_rates[Decimal("0.5")] == Decimal("7.0")


def test_parse_datetime_formats() -> None:
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime("2024-01-01T00:00:00Z") == expected
    assert parse_datetime("2024-01-01T00:00:00") == expected
    assert parse_datetime(1704067200000) == expected


def test_malformed_documents_raise() -> None:
    store = MemoryStore({TRANSACTIONS_KEY: b"{not json"})
    with pytest.raises(PersistenceError):
        PersistenceAdapter(store).load()

    store = MemoryStore({DEPOSITS_KEY: json.dumps([{"id": "dep_1"}]).encode()})
    with pytest.raises(PersistenceError):
        PersistenceAdapter(store).load()


def test_round_trip_keeps_every_field() -> None:
    store = MemoryStore()
    clock = ManualClock(datetime(2024, 6, 1, tzinfo=timezone.utc))
    ledger = KidLedger(store, clock=clock)
    ledger.update_user_profile(default_profile())
    ledger.add_income("50")
    clock.advance(hours=1)
    ledger.spend("5", "Food", "Ice cream")
    active = ledger.create_deposit("20", "0.5")
    matured = ledger.create_deposit("10", "0.25")
    withdrawn = ledger.create_deposit("5", "3")
    ledger.withdraw_deposit(withdrawn.id)
    clock.advance(days=8)
    assert ledger.check_and_credit_matured_deposits() == 1

    reloaded = KidLedger(store, clock=clock)
    assert reloaded.transactions == ledger.transactions
    assert [(tx.date, tx.deposit_id) for tx in reloaded.transactions] == [
        (tx.date, tx.deposit_id) for tx in ledger.transactions
    ]
    assert reloaded.deposits == ledger.deposits
    assert [deposit.status for deposit in reloaded.deposits] == [
        DepositStatus.ACTIVE,
        DepositStatus.MATURED,
        DepositStatus.WITHDRAWN,
    ]
    restored = reloaded.get_deposit(active.id)
    assert restored.start_date == active.start_date
    assert restored.maturity_date == active.maturity_date
    assert restored.interest_rate == Decimal("7.0")
    assert restored.term_months == Decimal("0.5")
    assert reloaded.get_deposit(matured.id).total_return == Decimal("10.01")
    assert reloaded.get_balance() == Decimal("25.01")
    assert reloaded.profile == ledger.profile
    assert not reloaded.is_first_launch
    assert store.get(LAUNCHED_KEY) == b"true"


def test_launch_flag_must_read_true() -> None:
    assert PersistenceAdapter(MemoryStore({LAUNCHED_KEY: b"false"})).load().is_first_launch
    assert not PersistenceAdapter(MemoryStore({LAUNCHED_KEY: b"true"})).load().is_first_launch


def test_failed_writes_stay_pending_until_flushed() -> None:
    store = FlakyStore()
    logger = StructuredLogger()
    delays: list[float] = []
    adapter = PersistenceAdapter(store, logger=logger, retry_attempts=3, backoff_seconds=0.1, sleep=delays.append)

    store.offline = True
    assert adapter.save_deposits([]) is False
    assert store.attempts == 3
    assert delays == [0.1, 0.2]
    assert not adapter.saved
    assert adapter.pending == (DEPOSITS_KEY,)
    assert logger.events("persistence_write_failed")[0]["key"] == DEPOSITS_KEY

    store.offline = False
    assert adapter.flush_pending() is True
    assert adapter.saved
    assert store.get(DEPOSITS_KEY) == b"[]"


def test_clear_deletes_every_key() -> None:
    store = MemoryStore({key: b"x" for key in (TRANSACTIONS_KEY, DEPOSITS_KEY, PROFILE_KEY, LAUNCHED_KEY)})
    store.set("unrelated", b"keep")
    assert PersistenceAdapter(store).clear() is True
    assert store.keys() == ("unrelated",)


def test_sqlmodel_store_round_trip(tmp_path) -> None:
    path = tmp_path / "ledger.db"
    store = SQLModelStore.from_path(str(path))
    assert store.get("missing") is None
    store.set("doc", b"one")
    store.set("doc", b"two")
    assert store.get("doc") == b"two"

    reopened = SQLModelStore.from_path(str(path))
    assert reopened.get("doc") == b"two"
    reopened.delete("doc")
    assert reopened.get("doc") is None


def test_in_memory_sqlmodel_store_shares_one_connection() -> None:
    store = SQLModelStore.from_path(":memory:")
    store.set(PROFILE_KEY, b"{}")
    assert store.get(PROFILE_KEY) == b"{}"
