"""Spending summaries and exports built from the transaction log."""

from __future__ import annotations

import calendar
import csv
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from io import StringIO
from typing import Dict, Iterable, List, Sequence, Tuple

from .models import Category, Transaction, TransactionType
from .money import ZERO


@dataclass(slots=True)
class CategorySummary:
    name: Category
    amount: Decimal
    percentage: Decimal


@dataclass(slots=True)
class DailySpending:
    day: int
    amount: Decimal


@dataclass(slots=True)
class MonthSummary:
    total_spent: Decimal
    days_in_month: int
    daily: List[DailySpending]


def _expenses_in_month(
    transactions: Iterable[Transaction], at: datetime, tz: tzinfo
) -> List[Tuple[date, Transaction]]:
    """Expenses of the month containing ``at``, paired with their local calendar day."""

    local_now = at.astimezone(tz)
    dated = ((tx.date.astimezone(tz).date(), tx) for tx in transactions if tx.type is TransactionType.EXPENSE)
    return [(day, tx) for day, tx in dated if day.year == local_now.year and day.month == local_now.month]


def top_categories(
    transactions: Iterable[Transaction], *, at: datetime, limit: int = 3, tz: tzinfo = timezone.utc
) -> List[CategorySummary]:
    """Return the biggest spending categories of the month containing ``at``."""

    totals: Dict[Category, Decimal] = {}
    for _, tx in _expenses_in_month(transactions, at, tz):
        totals[tx.category] = totals.get(tx.category, ZERO) + tx.amount
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    spent = sum(totals.values(), ZERO)
    summaries: List[CategorySummary] = []
    for category, amount in ranked[:limit]:
        share = (amount / spent * Decimal(100)) if spent > ZERO else ZERO
        summaries.append(
            CategorySummary(
                name=category,
                amount=amount,
                percentage=share.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
            )
        )
    return summaries


def month_summary(transactions: Iterable[Transaction], *, at: datetime, tz: tzinfo = timezone.utc) -> MonthSummary:
    """Total and per-day spending for the month of ``at``, up to and including its day.

    Days are calendar days in ``tz``.
    """

    local_now = at.astimezone(tz)
    days_in_month = calendar.monthrange(local_now.year, local_now.month)[1]
    per_day: Dict[int, Decimal] = {day: ZERO for day in range(1, days_in_month + 1)}
    expenses = _expenses_in_month(transactions, at, tz)
    for day, tx in expenses:
        per_day[day.day] += tx.amount
    return MonthSummary(
        total_spent=sum((tx.amount for _, tx in expenses), ZERO),
        days_in_month=days_in_month,
        daily=[DailySpending(day=day, amount=per_day[day]) for day in range(1, local_now.day + 1)],
    )


def export_transactions_csv(transactions: Sequence[Transaction]) -> str:
    """Return a CSV export of the transaction log."""

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["date", "type", "category", "title", "amount", "deposit_id"])
    for tx in transactions:
        writer.writerow(
            [
                tx.date.isoformat(),
                tx.type.value,
                tx.category.value,
                tx.title,
                f"{tx.amount:.2f}",
                tx.deposit_id or "",
            ]
        )
    return buffer.getvalue()


__all__ = [
    "CategorySummary",
    "DailySpending",
    "MonthSummary",
    "export_transactions_csv",
    "month_summary",
    "top_categories",
]
