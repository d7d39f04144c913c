"""Ledger engine owning the transaction log and fixed deposits."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Tuple
from uuid import uuid4

from .exceptions import DepositNotFoundError, InsufficientFundsError, ValidationError
from .models import Category, DepositStatus, FixedDeposit, Transaction, TransactionType
from .money import ZERO, AmountLike, format_currency, require_positive, to_decimal
from .rates import maturity_date, term_label, to_term, total_return


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


class Ledger:
    """In-memory accounting state for the single child account.

    The balance is never cached: every read folds over the full transaction
    log so it cannot drift from the entries that produced it.
    """

    __slots__ = ("_transactions", "_deposits")

    def __init__(self) -> None:
        self._transactions: list[Transaction] = []
        self._deposits: Dict[str, FixedDeposit] = {}

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        """Return the log most-recent-first, the order the history screen shows."""

        return tuple(reversed(self._transactions))

    @property
    def deposits(self) -> Tuple[FixedDeposit, ...]:
        return tuple(self._deposits.values())

    def get_deposit(self, deposit_id: str) -> FixedDeposit:
        try:
            return self._deposits[deposit_id]
        except KeyError as exc:
            raise DepositNotFoundError(f"Deposit '{deposit_id}' does not exist.") from exc

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------
    def balance(self) -> Decimal:
        return sum((tx.signed_amount for tx in self._transactions), ZERO)

    def available_balance(self) -> Decimal:
        return max(ZERO, self.balance())

    def total_savings(self) -> Decimal:
        return sum(
            (deposit.amount for deposit in self._deposits.values() if deposit.status is DepositStatus.ACTIVE),
            ZERO,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_transaction(self, transaction: Transaction) -> Decimal:
        """Append ``transaction`` and return the recomputed balance.

        A second ``deposit_matured`` entry for the same deposit is dropped
        silently so maturation can be triggered any number of times.
        """

        if self._is_duplicate_maturity(transaction):
            return self.balance()
        if any(existing.id == transaction.id for existing in self._transactions):
            raise ValidationError(f"Transaction '{transaction.id}' already exists.", code="duplicate_transaction")
        if not transaction.type.is_credit:
            self._ensure_sufficient_funds(transaction.amount)
        self._transactions.append(transaction)
        return self.balance()

    def create_deposit(
        self,
        amount: AmountLike,
        term_months: AmountLike,
        *,
        interest_rate: Decimal,
        at: datetime,
    ) -> FixedDeposit:
        """Lock ``amount`` away for ``term_months`` at ``interest_rate`` percent per year."""

        value = require_positive(to_decimal(amount))
        term = to_term(term_months)
        matures = maturity_date(at, term)
        self._ensure_sufficient_funds(value)
        deposit = FixedDeposit(
            id=_new_id("dep"),
            amount=value,
            interest_rate=interest_rate,
            term_months=term,
            start_date=at,
            maturity_date=matures,
            total_return=total_return(value, interest_rate, term),
        )
        founding = Transaction(
            id=_new_id("dep_trans"),
            title=f"Fixed Deposit ({term_label(term)})",
            amount=value,
            type=TransactionType.DEPOSIT,
            category=Category.DEPOSIT,
            date=at,
            deposit_id=deposit.id,
        )
        # Both records are fully built before either collection changes.
        self._deposits[deposit.id] = deposit
        self._transactions.append(founding)
        return deposit

    def withdraw_deposit(self, deposit_id: str, *, at: datetime) -> Decimal:
        """Close a deposit, returning principal only when it has not matured."""

        deposit = self.get_deposit(deposit_id)
        if deposit.status is DepositStatus.WITHDRAWN:
            return self.balance()
        if deposit.status is DepositStatus.MATURED:
            deposit.mark_withdrawn()
            return self.balance()
        refund = Transaction(
            id=_new_id("dep_withdraw"),
            title="Deposit Withdrawn",
            amount=deposit.amount,
            type=TransactionType.INCOME,
            category=Category.DEPOSIT,
            date=at,
            deposit_id=deposit.id,
        )
        deposit.mark_withdrawn()
        self._transactions.append(refund)
        return self.balance()

    def credit_matured_deposits(self, *, at: datetime, source: str = "auto") -> Tuple[FixedDeposit, ...]:
        """Credit every active deposit whose term has ended as of ``at``.

        Returns the deposits newly credited by this call.
        """

        credited: list[FixedDeposit] = []
        for deposit in list(self._deposits.values()):
            if not deposit.is_due(at):
                continue
            already_credited = self._has_maturity_credit(deposit.id)
            deposit.mark_matured()
            if already_credited:
                continue
            self.add_transaction(
                Transaction(
                    id=f"{source}_mature_{uuid4().hex}_{deposit.id}",
                    title="Deposit Matured!",
                    amount=deposit.total_return,
                    type=TransactionType.DEPOSIT_MATURED,
                    category=Category.DEPOSIT,
                    date=at,
                    deposit_id=deposit.id,
                )
            )
            credited.append(deposit)
        return tuple(credited)

    def restore(self, transactions: Iterable[Transaction], deposits: Iterable[FixedDeposit]) -> None:
        """Replace state with previously persisted records without re-validating them."""

        self._transactions = list(transactions)
        self._deposits = {deposit.id: deposit for deposit in deposits}

    def clear(self) -> None:
        self._transactions.clear()
        self._deposits.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def find_transactions(
        self,
        *,
        transaction_type: TransactionType | None = None,
        deposit_id: str | None = None,
    ) -> Tuple[Transaction, ...]:
        result: list[Transaction] = []
        for transaction in self._transactions:
            if transaction_type and transaction.type is not transaction_type:
                continue
            if deposit_id and transaction.deposit_id != deposit_id:
                continue
            result.append(transaction)
        return tuple(result)

    def _has_maturity_credit(self, deposit_id: str) -> bool:
        return any(
            existing.type is TransactionType.DEPOSIT_MATURED and existing.deposit_id == deposit_id
            for existing in self._transactions
        )

    def _is_duplicate_maturity(self, transaction: Transaction) -> bool:
        if transaction.type is not TransactionType.DEPOSIT_MATURED or transaction.deposit_id is None:
            return False
        return self._has_maturity_credit(transaction.deposit_id)

    def _ensure_sufficient_funds(self, amount: Decimal) -> None:
        available = self.available_balance()
        if amount > available:
            raise InsufficientFundsError(
                f"Available balance {format_currency(available)} is not enough for {format_currency(amount)}."
            )


__all__ = ["Ledger"]
