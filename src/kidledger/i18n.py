"""English and Traditional Chinese messages returned to the app."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from .models import Language

MESSAGES: Dict[str, Dict[str, str]] = {
    Language.EN.value: {
        "error.invalid_amount": "Please enter a valid amount.",
        "error.insufficient_funds": "Not enough money for this.",
        "error.invalid_term": "Please choose a valid deposit term.",
        "error.invalid_rate": "Interest rates must be between 0% and 50%.",
        "error.invalid_category": "Please choose a spending category.",
        "error.invalid_profile": "Please check the profile details.",
        "error.deposit_not_found": "That deposit could not be found.",
        "error.duplicate_transaction": "This transaction was already recorded.",
        "error.parent_required": "A parent needs to unlock this first.",
        "error.incorrect_password": "Incorrect password. Please try again.",
        "error.persistence_failed": "Your changes have not been saved yet.",
        "notice.deposit_created": "{amount} is now growing for {term}!",
        "notice.deposit_withdrawn": "The deposit has been withdrawn.",
        "notice.allowance_added": "{amount} added.",
        "notice.rates_updated": "Interest rates updated.",
    },
    Language.ZH_HANT.value: {
        "error.invalid_amount": "請輸入有效金額。",
        "error.insufficient_funds": "餘額不足。",
        "error.invalid_term": "請選擇有效的存款期。",
        "error.invalid_rate": "利率必須介乎 0% 至 50%。",
        "error.invalid_category": "請選擇消費類別。",
        "error.invalid_profile": "請檢查個人資料。",
        "error.deposit_not_found": "找不到該定期存款。",
        "error.duplicate_transaction": "此交易已經記錄。",
        "error.parent_required": "需要家長先解鎖。",
        "error.incorrect_password": "密碼錯誤，請再試一次。",
        "error.persistence_failed": "你的更改尚未儲存。",
        "notice.deposit_created": "{amount} 正在定期存款中增長（{term}）！",
        "notice.deposit_withdrawn": "定期存款已提取。",
        "notice.allowance_added": "已加入 {amount}。",
        "notice.rates_updated": "利率已更新。",
    },
}


class Translator:
    """Look up a message in the profile's language, falling back to English."""

    def __init__(self, *, overrides: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        self._messages: Dict[str, Dict[str, str]] = {locale: dict(table) for locale, table in MESSAGES.items()}
        for locale, table in (overrides or {}).items():
            self._messages.setdefault(locale, {}).update(table)

    def translate(self, key: str, *, locale: Optional[str] = None, **params: object) -> str:
        table = self._messages.get(locale or Language.EN.value, {})
        template = table.get(key) or self._messages[Language.EN.value].get(key, key)
        return template.format(**params) if params else template

    def error(self, code: str, *, locale: Optional[str] = None) -> str:
        return self.translate(f"error.{code}", locale=locale)


__all__ = ["MESSAGES", "Translator"]
