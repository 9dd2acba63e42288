"""Explicit account context threaded through every store call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adsbook.config import Settings


@dataclass(frozen=True, slots=True)
class AccountContext:
    """The seller account and marketplace a request operates on."""

    account_id: str
    marketplace: str

    @classmethod
    def from_settings(cls, settings: Settings) -> AccountContext:
        return cls(account_id=settings.account_id, marketplace=settings.marketplace)

    def matches(self, account_id: str, marketplace: str) -> bool:
        return self.account_id == account_id and self.marketplace == marketplace
