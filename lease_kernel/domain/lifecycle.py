"""
ReceiptLifecycle -- the legal operations on a receipt.

Responsibility:
    Combines ``PaymentStatus``, ``ApprovalStatus`` and ``is_posted`` into the
    rules for changing payment status, editing, deleting, posting and
    reversing a receipt.

    Pending ---> Received ---> Deposited ---> Cleared      (cash, cheque)
    Pending ---> Received ------------------> Cleared      (other types)
    any ------> Bounced | Cancelled
    Bounced | Cancelled ---> Pending | Received           (manual correction)

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Approval protection
    is delegated to ``ApprovalGate``.

Failure modes:
    - ProtectedDocumentError for any change to an Approved receipt.
    - IllegalTransitionError for a payment-status move the graph forbids.
    - ValidationError when a deposit or clearance is missing its data.
    - DocumentNotDeletableError for bounced or posted receipts.
    - DocumentNotEditableError for amount or allocation edits on a posted
      receipt.
    - PostingNotAllowedError / NotPostedError for posting and reversal.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date

from lease_kernel.domain.approval import ApprovalGate
from lease_kernel.domain.documents import (
    ApprovalStatus,
    PaymentStatus,
    PaymentType,
    Receipt,
)
from lease_kernel.domain.money import ZERO
from lease_kernel.exceptions import (
    DocumentNotDeletableError,
    DocumentNotEditableError,
    IllegalTransitionError,
    NotPostedError,
    PostingNotAllowedError,
    ValidationError,
)
from lease_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycle")

MACHINE = "payment_status"

# Payment types whose money physically goes to the bank.
DEPOSITABLE_TYPES: frozenset[PaymentType] = frozenset({PaymentType.CASH, PaymentType.CHEQUE})

_MANUAL_TARGETS = frozenset({PaymentStatus.BOUNCED, PaymentStatus.CANCELLED})

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.RECEIVED}) | _MANUAL_TARGETS,
    PaymentStatus.RECEIVED: frozenset({PaymentStatus.DEPOSITED, PaymentStatus.CLEARED})
    | _MANUAL_TARGETS,
    PaymentStatus.DEPOSITED: frozenset({PaymentStatus.CLEARED}) | _MANUAL_TARGETS,
    PaymentStatus.CLEARED: _MANUAL_TARGETS,
    PaymentStatus.BOUNCED: frozenset({
        PaymentStatus.PENDING, PaymentStatus.RECEIVED, PaymentStatus.CANCELLED,
    }),
    PaymentStatus.CANCELLED: frozenset({
        PaymentStatus.PENDING, PaymentStatus.RECEIVED, PaymentStatus.BOUNCED,
    }),
}

POSTABLE_PAYMENT_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.RECEIVED, PaymentStatus.CLEARED,
})

POSTABLE_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED, ApprovalStatus.NOT_REQUIRED,
})


@dataclass(frozen=True)
class StatusChangeData:
    """Auxiliary data some payment-status moves need."""

    deposit_bank_ref: str | None = None
    deposit_date: date | None = None
    clearance_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PostingEligibility:
    eligible: bool
    messages: tuple[str, ...] = ()


class ReceiptLifecycle:
    """Rules for payment status, edit, delete, post and reverse."""

    def __init__(self, gate: ApprovalGate):
        self._gate = gate

    @property
    def gate(self) -> ApprovalGate:
        return self._gate

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    def change_payment_status(
        self,
        receipt: Receipt,
        new_status: PaymentStatus,
        aux: StatusChangeData | None = None,
    ) -> Receipt:
        new_status = PaymentStatus(new_status)
        aux = aux or StatusChangeData()
        self._gate.guard(receipt, f"change_payment_status:{new_status.value}")

        current = receipt.payment_status
        if new_status not in PAYMENT_TRANSITIONS[current]:
            raise IllegalTransitionError(MACHINE, current.value, new_status.value)

        changes: dict[str, object] = {"payment_status": new_status}
        if new_status == PaymentStatus.DEPOSITED:
            if receipt.payment_type not in DEPOSITABLE_TYPES:
                raise IllegalTransitionError(
                    MACHINE, current.value, new_status.value,
                    f"{receipt.payment_type.value} receipts are not deposited",
                )
            if not aux.deposit_bank_ref:
                raise ValidationError("deposit_bank_ref", aux.deposit_bank_ref, "a bank is required")
            if aux.deposit_date is None:
                raise ValidationError("deposit_date", None, "a deposit date is required")
            if aux.deposit_date < receipt.receipt_date:
                raise ValidationError(
                    "deposit_date", aux.deposit_date, "must not precede the receipt date"
                )
            changes["deposit_bank_ref"] = aux.deposit_bank_ref
            changes["deposit_date"] = aux.deposit_date
        elif new_status == PaymentStatus.CLEARED:
            if current == PaymentStatus.RECEIVED and receipt.payment_type in DEPOSITABLE_TYPES:
                raise IllegalTransitionError(
                    MACHINE, current.value, new_status.value,
                    f"{receipt.payment_type.value} receipts must be deposited first",
                )
            if aux.clearance_date is None:
                raise ValidationError("clearance_date", None, "a clearance date is required")
            floor = receipt.deposit_date or receipt.receipt_date
            if aux.clearance_date < floor:
                raise ValidationError(
                    "clearance_date", aux.clearance_date,
                    f"must not precede {floor.isoformat()}",
                )
            changes["clearance_date"] = aux.clearance_date

        if aux.notes:
            changes["notes"] = aux.notes

        updated = replace(receipt, **changes)
        logger.debug(
            "payment_status_transition_validated",
            extra={
                "document_id": str(receipt.document_id),
                "from_status": current.value,
                "to_status": new_status.value,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Edit / delete
    # ------------------------------------------------------------------

    def ensure_editable(self, receipt: Receipt, operation: str = "edit") -> None:
        """Amounts and allocations stay fixed while a voucher records them."""
        self._gate.guard(receipt, operation)
        if receipt.is_posted:
            raise DocumentNotEditableError(
                str(receipt.document_id), operation, "receipt is posted; reverse it first"
            )

    def ensure_deletable(self, receipt: Receipt) -> None:
        self._gate.guard(receipt, "delete")
        if receipt.payment_status == PaymentStatus.BOUNCED:
            raise DocumentNotDeletableError(str(receipt.document_id), "receipt has bounced")
        if receipt.is_posted:
            raise DocumentNotDeletableError(
                str(receipt.document_id), "receipt is posted; reverse it first"
            )

    # ------------------------------------------------------------------
    # Post / reverse
    # ------------------------------------------------------------------

    def posting_eligibility(self, receipt: Receipt) -> PostingEligibility:
        messages: list[str] = []
        if receipt.approval_status not in POSTABLE_APPROVAL_STATUSES:
            messages.append(f"approval status is {receipt.approval_status.value}")
        if receipt.payment_status not in POSTABLE_PAYMENT_STATUSES:
            messages.append(f"payment status is {receipt.payment_status.value}")
        if receipt.is_posted:
            messages.append("receipt is already posted")
        if receipt.net_amount <= ZERO:
            messages.append("net amount must be positive")
        return PostingEligibility(eligible=not messages, messages=tuple(messages))

    def ensure_postable(self, receipt: Receipt) -> None:
        eligibility = self.posting_eligibility(receipt)
        if not eligibility.eligible:
            raise PostingNotAllowedError(str(receipt.document_id), eligibility.messages)

    def ensure_reversible(self, receipt: Receipt, live_postings: int) -> None:
        if not receipt.is_posted or live_postings <= 0:
            raise NotPostedError(str(receipt.document_id))
