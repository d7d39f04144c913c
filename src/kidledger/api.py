"""Convert ledger data structures to JSON friendly dictionaries."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Optional

from .models import FixedDeposit, Transaction, UserProfile
from .rates import term_key, term_label

if TYPE_CHECKING:  # pragma: no cover
    from .service import KidLedger


class ApiExporter:
    """Shape ledger state for HTTP responses."""

    def balance_snapshot(self, ledger: "KidLedger") -> Dict[str, object]:
        return {
            "balance": float(ledger.get_balance()),
            "available_balance": float(ledger.get_available_balance()),
            "total_savings": float(ledger.get_total_savings()),
            "saved": ledger.is_saved,
        }

    def transaction(self, transaction: Transaction) -> Dict[str, object]:
        return {
            "id": transaction.id,
            "title": transaction.title,
            "amount": float(transaction.amount),
            "type": transaction.type.value,
            "category": transaction.category.value,
            "date": transaction.date.isoformat(),
            "deposit_id": transaction.deposit_id,
        }

    def deposit(self, deposit: FixedDeposit) -> Dict[str, object]:
        return {
            "id": deposit.id,
            "amount": float(deposit.amount),
            "interest_rate": float(deposit.interest_rate),
            "term_months": float(deposit.term_months),
            "term_label": term_label(deposit.term_months),
            "start_date": deposit.start_date.isoformat(),
            "maturity_date": deposit.maturity_date.isoformat(),
            "status": deposit.status.value,
            "total_return": float(deposit.total_return),
        }

    def profile(self, profile: Optional[UserProfile]) -> Optional[Dict[str, object]]:
        """Profile fields safe to show the child; the parental password is omitted."""

        if profile is None:
            return None
        return {
            "parent_name": profile.parent_name,
            "child_name": profile.child_name,
            "notifications_enabled": profile.notifications_enabled,
            "app_style": profile.app_style.value,
            "interest_rate": float(profile.interest_rate),
            "term_interest_rates": {
                term_key(term): float(rate) for term, rate in sorted(profile.term_interest_rates.items())
            },
            "language": profile.language.value,
        }

    def rate_option(self, option: Dict[str, object]) -> Dict[str, object]:
        return {
            "term_months": float(option["term_months"]),  # type: ignore[arg-type]
            "label": option["label"],
            "days": option["days"],
            "rate": float(option["rate"]),  # type: ignore[arg-type]
        }

    def summary(self, summary: Dict[str, object]) -> Dict[str, object]:
        return json.loads(self.to_json(summary))

    def to_json(self, payload: Dict[str, object]) -> str:
        return json.dumps(payload, sort_keys=True, default=_json_default)


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


__all__ = ["ApiExporter"]
