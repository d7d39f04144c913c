"""High level service coordinating the ledger, rates, persistence and scheduling."""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, tzinfo
from decimal import Decimal
from functools import partial
from typing import Callable, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from . import config
from .admin import AuditLog
from .clock import Clock, SystemClock
from .exceptions import ValidationError
from .i18n import Translator
from .ledger import Ledger
from .models import AppStyle, Category, FixedDeposit, Language, Transaction, TransactionType, UserProfile
from .money import AmountLike, require_positive, to_decimal
from .ops import HealthMonitor, StructuredLogger
from .persistence import DEPOSITS_KEY, LAUNCHED_KEY, PROFILE_KEY, TRANSACTIONS_KEY, PersistenceAdapter
from .rates import RatePolicy, default_profile, term_key
from .reports import export_transactions_csv, month_summary, top_categories
from .scheduler import MaturityScheduler
from .storage import KeyValueStore, MemoryStore, SQLModelStore


class KidLedger:
    """The allowance ledger exposed to the app.

    Every mutation updates the in-memory ledger first and then flushes the
    affected documents. A flush that keeps failing leaves :attr:`is_saved`
    false instead of raising, so the app keeps working on in-memory state.
    """

    __slots__ = (
        "_clock",
        "_ledger",
        "_profile",
        "_first_launch",
        "_rates",
        "_persistence",
        "_scheduler",
        "_logger",
        "_audit_log",
        "_health",
        "_translator",
        "_report_tz",
    )

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        clock: Optional[Clock] = None,
        rate_policy: Optional[RatePolicy] = None,
        logger: Optional[StructuredLogger] = None,
        translator: Optional[Translator] = None,
        maturity_interval_seconds: float = config.MATURITY_CHECK_INTERVAL_SECONDS,
        retry_attempts: int = config.PERSISTENCE_RETRY_ATTEMPTS,
        retry_backoff_seconds: float = config.PERSISTENCE_RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        report_timezone: Optional[tzinfo] = None,
    ) -> None:
        self._clock: Clock = clock or SystemClock()
        self._report_tz = report_timezone or config.REPORT_TIMEZONE
        self._logger = logger or StructuredLogger(path=config.LOG_PATH)
        self._audit_log = AuditLog(clock=self._clock)
        self._health = HealthMonitor()
        self._translator = translator or Translator()
        self._rates = rate_policy or RatePolicy()
        self._ledger = Ledger()
        self._persistence = PersistenceAdapter(
            store if store is not None else MemoryStore(),
            logger=self._logger,
            retry_attempts=retry_attempts,
            backoff_seconds=retry_backoff_seconds,
            sleep=sleep,
        )
        state = self._persistence.load()
        self._ledger.restore(state.transactions, state.deposits)
        self._profile: Optional[UserProfile] = state.profile
        self._first_launch = state.is_first_launch
        self._scheduler = MaturityScheduler(
            partial(self.check_and_credit_matured_deposits, source="auto"),
            interval_seconds=maturity_interval_seconds,
            logger=self._logger,
        )
        self._logger.log(
            "ledger_loaded",
            transactions=len(state.transactions),
            deposits=len(state.deposits),
            first_launch=self._first_launch,
        )
        self.check_and_credit_matured_deposits(source="auto")

    @classmethod
    def from_config(cls, **kwargs: object) -> "KidLedger":
        """Build a ledger backed by the SQLite file named in the configuration."""

        return cls(SQLModelStore.from_path(config.SQLITE_FILE_NAME), **kwargs)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return self._ledger.transactions

    @property
    def deposits(self) -> Tuple[FixedDeposit, ...]:
        return self._ledger.deposits

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def is_first_launch(self) -> bool:
        return self._first_launch

    @property
    def is_saved(self) -> bool:
        return self._persistence.saved

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def translator(self) -> Translator:
        return self._translator

    @property
    def scheduler(self) -> MaturityScheduler:
        return self._scheduler

    @property
    def language(self) -> str:
        return (self._profile.language if self._profile else Language.EN).value

    def now(self) -> datetime:
        return self._clock()

    def get_deposit(self, deposit_id: str) -> FixedDeposit:
        return self._ledger.get_deposit(deposit_id)

    def get_balance(self) -> Decimal:
        return self._ledger.balance()

    def get_available_balance(self) -> Decimal:
        return self._ledger.available_balance()

    def get_total_savings(self) -> Decimal:
        return self._ledger.total_savings()

    def health(self) -> Dict[str, object]:
        status = self._health.status()
        status["transactions"] = len(self._ledger.transactions)
        status["deposits"] = len(self._ledger.deposits)
        return status

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def add_transaction(self, transaction: Transaction) -> Decimal:
        before = len(self._ledger.transactions)
        balance = self._ledger.add_transaction(transaction)
        if len(self._ledger.transactions) != before:
            self._save(transactions=True)
            self._logger.log(
                "transaction_added",
                id=transaction.id,
                type=transaction.type.value,
                amount=str(transaction.amount),
                balance=str(balance),
            )
        return balance

    def add_income(
        self,
        amount: AmountLike,
        title: str = "",
        *,
        category: Category = Category.POCKET_MONEY,
        actor: str = "parent",
    ) -> Transaction:
        """Fund the child's balance, e.g. a weekly allowance."""

        transaction = Transaction(
            id=str(uuid4()),
            title=title.strip() or "Allowance",
            amount=require_positive(to_decimal(amount)),
            type=TransactionType.INCOME,
            category=category,
            date=self._clock(),
        )
        self.add_transaction(transaction)
        self._audit_log.record("add_income", transaction.id, actor=actor, details={"amount": str(transaction.amount)})
        return transaction

    def spend(self, amount: AmountLike, category: Category | str, title: str = "") -> Transaction:
        """Record spending, rejecting it when the available balance is short."""

        try:
            spend_category = Category(category)
        except ValueError as exc:
            raise ValidationError(f"Unknown category: {category!r}.", code="invalid_category") from exc
        if spend_category is Category.DEPOSIT:
            raise ValidationError("Deposits are created with create_deposit().", code="invalid_category")
        transaction = Transaction(
            id=str(uuid4()),
            title=title.strip() or spend_category.value,
            amount=require_positive(to_decimal(amount)),
            type=TransactionType.EXPENSE,
            category=spend_category,
            date=self._clock(),
        )
        self.add_transaction(transaction)
        return transaction

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------
    def create_deposit(self, amount: AmountLike, term_months: AmountLike) -> FixedDeposit:
        rate = self.get_interest_rate_for_term(term_months)
        deposit = self._ledger.create_deposit(amount, term_months, interest_rate=rate, at=self._clock())
        self._save(transactions=True, deposits=True)
        self._logger.log(
            "deposit_created",
            deposit=deposit.id,
            amount=str(deposit.amount),
            term_months=term_key(deposit.term_months),
            rate=str(deposit.interest_rate),
            total_return=str(deposit.total_return),
        )
        return deposit

    def withdraw_deposit(self, deposit_id: str, *, actor: str = "parent") -> Decimal:
        deposit = self._ledger.get_deposit(deposit_id)
        previous = deposit.status
        balance = self._ledger.withdraw_deposit(deposit_id, at=self._clock())
        if deposit.status is not previous:
            self._save(transactions=True, deposits=True)
            self._audit_log.record("withdraw_deposit", deposit_id, actor=actor, details={"from": previous.value})
            self._logger.log("deposit_withdrawn", deposit=deposit_id, previous_status=previous.value)
        return balance

    def check_and_credit_matured_deposits(self, *, source: str = "manual") -> int:
        """Credit deposits whose term has ended; returns how many were newly credited."""

        now = self._clock()
        due = [deposit for deposit in self._ledger.deposits if deposit.is_due(now)]
        credited = self._ledger.credit_matured_deposits(at=now, source=source)
        self._health.record_maturity_check(now)
        if due:
            self._save(transactions=bool(credited), deposits=True)
        for deposit in credited:
            self._logger.log(
                "deposit_matured",
                deposit=deposit.id,
                total_return=str(deposit.total_return),
                source=source,
            )
        return len(credited)

    # ------------------------------------------------------------------
    # Rates & profile
    # ------------------------------------------------------------------
    def get_interest_rate_for_term(self, term_months: AmountLike) -> Decimal:
        return self._rates.rate_for_term(term_months, self._profile)

    def interest_rates(self) -> List[Dict[str, object]]:
        return self._rates.all_rates(self._profile)

    def update_term_interest_rates(
        self, rates: Mapping[AmountLike, AmountLike], *, actor: str = "parent"
    ) -> Dict[Decimal, Decimal]:
        """Merge ``rates`` into the per-term table; omitted terms keep their value."""

        validated = self._rates.validate_term_rates(rates)
        profile = self._profile or default_profile()
        table = dict(profile.term_interest_rates)
        table.update(validated)
        self._set_profile(replace(profile, term_interest_rates=table))
        self._audit_log.record(
            "update_term_rates",
            "profile",
            actor=actor,
            details={term_key(term): str(rate) for term, rate in validated.items()},
        )
        return table

    def update_interest_rate(self, rate: AmountLike, *, actor: str = "parent") -> Decimal:
        value = self._rates.validate_rate(rate)
        profile = self._profile or default_profile()
        self._set_profile(replace(profile, interest_rate=value))
        self._audit_log.record("update_interest_rate", "profile", actor=actor, details={"rate": str(value)})
        return value

    def update_rate_settings(
        self,
        *,
        interest_rate: Optional[AmountLike] = None,
        term_rates: Optional[Mapping[AmountLike, AmountLike]] = None,
        actor: str = "parent",
    ) -> UserProfile:
        """Apply a generic rate and per-term rates together, or neither if any is invalid."""

        value = self._rates.validate_rate(interest_rate) if interest_rate is not None else None
        validated = self._rates.validate_term_rates(term_rates or {})
        profile = self._profile or default_profile()
        table = dict(profile.term_interest_rates)
        table.update(validated)
        updated = replace(
            profile,
            interest_rate=value if value is not None else profile.interest_rate,
            term_interest_rates=table,
        )
        self._set_profile(updated)
        details = {term_key(term): str(rate) for term, rate in validated.items()}
        if value is not None:
            details["default"] = str(value)
        self._audit_log.record("update_rates", "profile", actor=actor, details=details)
        return updated

    def update_user_profile(self, profile: UserProfile, *, actor: str = "parent") -> UserProfile:
        self._rates.validate_rate(profile.interest_rate)
        self._rates.validate_term_rates(profile.term_interest_rates)
        self._set_profile(profile)
        self._audit_log.record("update_profile", "profile", actor=actor)
        return profile

    def set_app_style(self, style: AppStyle | str) -> None:
        profile = self._profile or default_profile()
        self._set_profile(replace(profile, app_style=AppStyle(style)))

    def set_language(self, language: Language | str) -> None:
        profile = self._profile or default_profile()
        self._set_profile(replace(profile, language=Language(language)))

    def verify_parental_password(self, password: str) -> bool:
        """Check the parent gate; this is a shared household secret, not authentication."""

        expected = self._profile.parental_password if self._profile else config.DEFAULT_PARENTAL_PASSWORD
        return password == expected

    def _set_profile(self, profile: UserProfile) -> None:
        self._profile = profile
        self._first_launch = False
        self._save(profile=True)
        self._logger.log("profile_updated", language=profile.language.value, style=profile.app_style.value)

    # ------------------------------------------------------------------
    # Reset, reports & lifecycle
    # ------------------------------------------------------------------
    def clear_transactions(self, *, actor: str = "parent") -> None:
        """Reset the account to its first-launch state and delete every stored key."""

        self._ledger.clear()
        self._profile = None
        self._first_launch = True
        cleared = self._persistence.clear()
        self._health.record_flush(pending=self._persistence.pending, at=self._clock())
        self._audit_log.record("clear_all_data", "ledger", actor=actor)
        self._logger.log("ledger_reset", storage_cleared=cleared)

    def summary(self) -> Dict[str, object]:
        now = self._clock()
        month = month_summary(self._ledger.transactions, at=now, tz=self._report_tz)
        return {
            "balance": self.get_balance(),
            "available_balance": self.get_available_balance(),
            "total_savings": self.get_total_savings(),
            "saved": self.is_saved,
            "month_spent": month.total_spent,
            "days_in_month": month.days_in_month,
            "daily": [(point.day, point.amount) for point in month.daily],
            "top_categories": [
                (item.name.value, item.amount, item.percentage)
                for item in top_categories(self._ledger.transactions, at=now, tz=self._report_tz)
            ],
        }

    def export_csv(self) -> str:
        return export_transactions_csv(self._ledger.transactions)

    def flush(self) -> bool:
        """Retry any writes that previously failed."""

        saved = self._persistence.flush_pending()
        self._health.record_flush(pending=self._persistence.pending, at=self._clock())
        return saved

    def start(self) -> None:
        """Begin periodic maturity checks on the running event loop."""

        self._scheduler.start()
        self._health.scheduler_running = True

    async def close(self) -> None:
        await self._scheduler.stop()
        self._health.scheduler_running = False
        self.flush()

    def _save(self, *, transactions: bool = False, deposits: bool = False, profile: bool = False) -> None:
        written: list[str] = []
        if transactions:
            self._persistence.save_transactions(self._ledger.transactions)
            written.append(TRANSACTIONS_KEY)
        if deposits:
            self._persistence.save_deposits(self._ledger.deposits)
            written.append(DEPOSITS_KEY)
        if profile and self._profile is not None:
            self._persistence.save_profile(self._profile)
            written.extend((PROFILE_KEY, LAUNCHED_KEY))
        if self._persistence.pending:
            self._persistence.flush_pending(skip=written)
        self._health.record_flush(pending=self._persistence.pending, at=self._clock())


__all__ = ["KidLedger"]
