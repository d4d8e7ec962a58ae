"""
Financial document value objects (``lease_kernel.domain.documents``).

Responsibility
--------------
Frozen dataclasses for the nouns of the engine: contract line items,
contracts, receipts, allocations and ledger postings, plus the status
enums that drive the approval and payment state machines.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects. ZERO I/O. Documents are
passed by value through pure functions; every change produces a new value
via ``dataclasses.replace``, so a rejected operation can never leave a
half-updated document behind.

Invariants enforced
-------------------
* All monetary fields are ``Decimal`` -- NEVER ``float``.
* ``Receipt.net_amount`` = round2(received + deposit + penalty - discount).
* ``Contract.grand_total`` = round2 sum of line ``total_amount``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID, uuid4

from lease_kernel.domain.money import ZERO, round2


# =========================================================================
# Status enums
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval protection states."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    """Receipt payment lifecycle states."""

    PENDING = "pending"
    RECEIVED = "received"
    DEPOSITED = "deposited"
    CLEARED = "cleared"
    BOUNCED = "bounced"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    """How the money arrived."""

    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    ONLINE = "online"
    MOBILE_PAYMENT = "mobile_payment"


class AllocationMode(str, Enum):
    """How a receipt's net amount is spread over invoices."""

    SINGLE = "single"
    MULTIPLE = "multiple"
    PROPORTIONAL = "proportional"


class LineItemKind(str, Enum):
    """Contract unit rent term or an additional flat charge."""

    UNIT_TERM = "unit_term"
    CHARGE = "charge"


class LineField(str, Enum):
    """Line item fields a user can edit directly."""

    BASE_AMOUNT = "base_amount"
    PERIOD_MULTIPLIER = "period_multiplier"
    DERIVED_ANNUAL_AMOUNT = "derived_annual_amount"
    TAX_RATE_ID = "tax_rate_id"
    FROM_DATE = "from_date"
    TO_DATE = "to_date"
    AMOUNT = "amount"


class DocumentType(str, Enum):
    CONTRACT = "contract"
    RECEIPT = "receipt"


# =========================================================================
# Contract line items
# =========================================================================


@dataclass(frozen=True)
class LineItem:
    """
    A unit rent term or an additional charge on a contract.

    For charges ``base_amount`` is the flat charge and ``period_multiplier``
    is 1. ``tax_rate_id`` of ``None`` means no tax is selected.
    """

    line_id: UUID
    kind: LineItemKind
    base_amount: Decimal = ZERO
    period_multiplier: int = 12
    derived_annual_amount: Decimal = ZERO
    tax_rate_id: str | None = None
    tax_percentage: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    from_date: date | None = None
    to_date: date | None = None
    duration_days: int = 0
    duration_months: int = 0
    duration_years: int = 0
    description: str = ""

    @classmethod
    def unit_term(cls, description: str = "", line_id: UUID | None = None) -> LineItem:
        return cls(line_id=line_id or uuid4(), kind=LineItemKind.UNIT_TERM, description=description)

    @classmethod
    def charge(cls, description: str = "", line_id: UUID | None = None) -> LineItem:
        return cls(
            line_id=line_id or uuid4(),
            kind=LineItemKind.CHARGE,
            period_multiplier=1,
            description=description,
        )


# =========================================================================
# Documents
# =========================================================================


@dataclass(frozen=True, kw_only=True)
class FinancialDocument(ABC):
    """Fields shared by every document the approval gate protects."""

    document_type: ClassVar[DocumentType]

    document_id: UUID = field(default_factory=uuid4)
    document_no: str
    approval_status: ApprovalStatus = ApprovalStatus.NOT_REQUIRED
    is_posted: bool = False
    version: int = 0
    approval_comment: str | None = None
    rejection_reason: str | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None

    @property
    @abstractmethod
    def approval_amount(self) -> Decimal:
        """Amount compared against the approval threshold."""

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED


@dataclass(frozen=True, kw_only=True)
class Contract(FinancialDocument):
    """A lease contract: unit rent terms plus additional charges."""

    document_type: ClassVar[DocumentType] = DocumentType.CONTRACT

    customer_ref: str
    line_items: tuple[LineItem, ...] = ()

    @property
    def units_total(self) -> Decimal:
        return round2(sum(
            (i.total_amount for i in self.line_items if i.kind == LineItemKind.UNIT_TERM),
            ZERO,
        ))

    @property
    def charges_total(self) -> Decimal:
        return round2(sum(
            (i.total_amount for i in self.line_items if i.kind == LineItemKind.CHARGE),
            ZERO,
        ))

    @property
    def grand_total(self) -> Decimal:
        return round2(self.units_total + self.charges_total)

    @property
    def approval_amount(self) -> Decimal:
        return self.grand_total

    def line(self, line_id: UUID) -> LineItem | None:
        for item in self.line_items:
            if item.line_id == line_id:
                return item
        return None


@dataclass(frozen=True)
class Allocation:
    """A portion of a receipt's net amount assigned to one invoice."""

    invoice_ref: str
    amount: Decimal
    notes: str = ""


@dataclass(frozen=True, kw_only=True)
class Receipt(FinancialDocument):
    """A payment received against lease invoices."""

    document_type: ClassVar[DocumentType] = DocumentType.RECEIPT

    customer_ref: str
    receipt_date: date
    payment_type: PaymentType = PaymentType.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    received_amount: Decimal = ZERO
    security_deposit: Decimal = ZERO
    penalty: Decimal = ZERO
    discount: Decimal = ZERO
    allocation_mode: AllocationMode = AllocationMode.SINGLE
    allocations: tuple[Allocation, ...] = ()
    cheque_no: str | None = None
    deposit_bank_ref: str | None = None
    deposit_date: date | None = None
    clearance_date: date | None = None
    notes: str = ""

    @property
    def net_amount(self) -> Decimal:
        return round2(
            self.received_amount + self.security_deposit + self.penalty - self.discount
        )

    @property
    def total_allocated(self) -> Decimal:
        return round2(sum((a.amount for a in self.allocations), ZERO))

    @property
    def unallocated_amount(self) -> Decimal:
        return max(ZERO, round2(self.net_amount - self.total_allocated))

    @property
    def approval_amount(self) -> Decimal:
        return self.net_amount


# =========================================================================
# Ledger postings
# =========================================================================


@dataclass(frozen=True)
class Posting:
    """One leg of a voucher. Read model of an append-only ledger row."""

    posting_id: UUID
    voucher_no: str
    document_id: UUID
    posting_date: date
    account_ref: str
    debit_amount: Decimal
    credit_amount: Decimal
    narration: str = ""
    is_reversed: bool = False
    reversal_reason: str | None = None
    reversed_by_voucher: str | None = None
    reverses_voucher: str | None = None

    @property
    def is_reversal(self) -> bool:
        return self.reverses_voucher is not None


@dataclass(frozen=True)
class PostingRequest:
    """Caller input for posting a document: one debit leg, one credit leg."""

    posting_date: date
    debit_account: str
    credit_account: str
    amount: Decimal
    narration: str = ""
