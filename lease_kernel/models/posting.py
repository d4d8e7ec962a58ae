"""
Module: lease_kernel.models.posting
Responsibility: ORM persistence for ledger posting legs.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: rows are never deleted and their financial columns never
      change.  The only permitted UPDATE is the one-way reversal mark
      (is_reversed False -> True with reversal_reason and
      reversed_by_voucher).  Enforced by db/immutability.py.
    - Balance: debits equal credits per voucher_no.  Checked by
      PostingLedger before flush.
    - Each leg is one-sided: exactly one of debit_amount and credit_amount
      is non-zero.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from lease_kernel.db.base import TrackedBase
from lease_kernel.db.types import UUIDString


class PostingModel(TrackedBase):
    """One leg of a voucher."""

    __tablename__ = "lease_postings"

    __table_args__ = (
        Index("idx_lease_postings_document", "document_id"),
        Index("idx_lease_postings_voucher", "voucher_no"),
    )

    voucher_no: Mapped[str] = mapped_column(String(40), nullable=False)
    document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    posting_date: Mapped[date] = mapped_column(Date, nullable=False)
    account_ref: Mapped[str] = mapped_column(String(50), nullable=False)
    debit_amount: Mapped[Decimal] = mapped_column(nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(nullable=False)
    narration: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Set on the original legs when their voucher is reversed.
    is_reversed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reversed_by_voucher: Mapped[str | None] = mapped_column(String(40), nullable=True)

    # Set on reversal legs: the voucher they offset.
    reverses_voucher: Mapped[str | None] = mapped_column(String(40), nullable=True)

    @property
    def is_reversal(self) -> bool:
        return self.reverses_voucher is not None

    def __repr__(self) -> str:
        return (
            f"<PostingModel {self.voucher_no} {self.account_ref} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
