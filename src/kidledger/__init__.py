"""KidLedger package for tracking a child's allowance and fixed deposits."""

from .admin import AuditLog
from .api import ApiExporter
from .clock import ManualClock, SystemClock
from .exceptions import (
    DepositNotFoundError,
    InsufficientFundsError,
    KidLedgerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .i18n import Translator
from .ledger import Ledger
from .models import (
    AppStyle,
    Category,
    DepositStatus,
    FixedDeposit,
    Language,
    Transaction,
    TransactionType,
    UserProfile,
)
from .ops import HealthMonitor, StructuredLogger
from .persistence import PersistenceAdapter
from .rates import TERM_OPTIONS, RatePolicy, default_profile
from .scheduler import MaturityScheduler
from .service import KidLedger
from .storage import KeyValueStore, MemoryStore, SQLModelStore

__all__ = [
    "ApiExporter",
    "AppStyle",
    "AuditLog",
    "Category",
    "DepositNotFoundError",
    "DepositStatus",
    "FixedDeposit",
    "HealthMonitor",
    "InsufficientFundsError",
    "KeyValueStore",
    "KidLedger",
    "KidLedgerError",
    "Language",
    "Ledger",
    "ManualClock",
    "MaturityScheduler",
    "MemoryStore",
    "NotFoundError",
    "PersistenceAdapter",
    "PersistenceError",
    "RatePolicy",
    "SQLModelStore",
    "StructuredLogger",
    "SystemClock",
    "TERM_OPTIONS",
    "Transaction",
    "TransactionType",
    "Translator",
    "UserProfile",
    "ValidationError",
    "default_profile",
]
