"""
Engine configuration schema.

Frozen dataclasses the loader parses YAML into.  The kernel never sees
these types directly; ``lease_config.bridges`` turns them into kernel
collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PostingAccounts:
    """Default accounts for the fixed two-account receipt posting."""

    debit_account: str
    credit_account: str


@dataclass(frozen=True)
class VoucherNumbering:
    prefix: str = "RV"
    reversal_prefix: str = "RRV"


@dataclass(frozen=True)
class EngineConfig:
    """Runtime configuration for the lease engine."""

    currency: str
    approval_threshold: Decimal | None
    default_installments: int
    vouchers: VoucherNumbering
    posting_accounts: PostingAccounts
    tax_rates: tuple[tuple[str, Decimal], ...] = ()
    authorizations: tuple[tuple[str, tuple[str, ...]], ...] = ()
    checksum: str = field(default="", compare=False)

    @property
    def tax_rate_map(self) -> dict[str, Decimal]:
        return dict(self.tax_rates)

    @property
    def authorization_map(self) -> dict[str, tuple[str, ...]]:
        return dict(self.authorizations)
