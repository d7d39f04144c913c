"""Domain models used by the kidledger package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from .clock import utcnow
from .money import require_positive, to_decimal


class TransactionType(str, Enum):
    """Enumerates the balance-affecting event types in the ledger."""

    INCOME = "income"
    EXPENSE = "expense"
    DEPOSIT = "deposit"
    DEPOSIT_MATURED = "deposit_matured"

    @property
    def is_credit(self) -> bool:
        return self in (TransactionType.INCOME, TransactionType.DEPOSIT_MATURED)


class Category(str, Enum):
    """Spending and income categories shown to the child."""

    FOOD = "Food"
    TRANSPORT = "Transport"
    ENTERTAINMENT = "Entertainment"
    EDUCATION = "Education"
    POCKET_MONEY = "Pocket Money"
    GIFT = "Gift"
    OTHER = "Other"
    DEPOSIT = "Deposit"


class DepositStatus(str, Enum):
    """Lifecycle for fixed-term deposits."""

    ACTIVE = "active"
    MATURED = "matured"
    WITHDRAWN = "withdrawn"


class AppStyle(str, Enum):
    BOYS = "boys"
    GIRLS = "girls"


class Language(str, Enum):
    EN = "en"
    ZH_HANT = "zh-Hant"


@dataclass(frozen=True, slots=True)
class Transaction:
    """A single immutable ledger entry.

    ``amount`` is always positive; whether it adds to or subtracts from the
    balance is decided by ``type``.
    """

    id: str
    title: str
    amount: Decimal
    type: TransactionType
    category: Category
    date: datetime = field(default_factory=utcnow)
    deposit_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", require_positive(to_decimal(self.amount)))
        object.__setattr__(self, "type", TransactionType(self.type))
        object.__setattr__(self, "category", Category(self.category))

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type.is_credit else -self.amount


@dataclass(slots=True)
class FixedDeposit:
    """A principal locked for an elected term at a fixed annual rate."""

    id: str
    amount: Decimal
    interest_rate: Decimal
    term_months: Decimal
    start_date: datetime
    maturity_date: datetime
    total_return: Decimal
    status: DepositStatus = DepositStatus.ACTIVE

    def __post_init__(self) -> None:
        self.amount = require_positive(to_decimal(self.amount))
        self.total_return = to_decimal(self.total_return)
        self.status = DepositStatus(self.status)

    @property
    def interest(self) -> Decimal:
        return self.total_return - self.amount

    def is_due(self, at: datetime) -> bool:
        """True when the deposit is still active and its term has ended."""

        return self.status is DepositStatus.ACTIVE and at >= self.maturity_date

    def mark_matured(self) -> bool:
        if self.status is not DepositStatus.ACTIVE:
            return False
        self.status = DepositStatus.MATURED
        return True

    def mark_withdrawn(self) -> bool:
        if self.status is DepositStatus.WITHDRAWN:
            return False
        self.status = DepositStatus.WITHDRAWN
        return True


@dataclass(slots=True)
class UserProfile:
    """Parent-configured settings created when onboarding completes."""

    parent_name: str = ""
    child_name: str = ""
    parental_password: str = "1234"
    notifications_enabled: bool = True
    app_style: AppStyle = AppStyle.GIRLS
    interest_rate: Decimal = Decimal("5.0")
    term_interest_rates: Dict[Decimal, Decimal] = field(default_factory=dict)
    language: Language = Language.EN

    def __post_init__(self) -> None:
        self.app_style = AppStyle(self.app_style)
        self.language = Language(self.language)
        self.interest_rate = Decimal(str(self.interest_rate))
        self.term_interest_rates = {
            Decimal(str(term)): Decimal(str(rate)) for term, rate in self.term_interest_rates.items()
        }


__all__ = [
    "AppStyle",
    "Category",
    "DepositStatus",
    "FixedDeposit",
    "Language",
    "Transaction",
    "TransactionType",
    "UserProfile",
]
