"""
ReceiptService -- persisted receipts: allocation, payment status, posting.

Responsibility:
    Creates and edits receipts, proposes and applies invoice allocations,
    moves payment status, deletes, posts and reverses receipts, and runs the
    bulk status and bulk posting jobs.

Architecture position:
    Kernel > Services -- imperative shell over AllocationEngine,
    ReceiptLifecycle (which wraps ApprovalGate) and PostingLedger.

Invariants enforced:
    - sum(allocations) <= NetAmount whenever a receipt is saved; an
      amount edit that would break it is refused.
    - Approved receipts reject every edit, status change and delete.
    - Posting only from Approved/NotRequired + Received/Cleared + unposted.
    - Bulk jobs give each receipt its own savepoint; one failure never
      rolls back or blocks the others.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from lease_kernel.domain.allocation import AllocationEngine, AllocationInput, AllocationProposal
from lease_kernel.domain.clock import Clock, SystemClock
from lease_kernel.domain.documents import (
    AllocationMode,
    DocumentType,
    PaymentStatus,
    PaymentType,
    PostingRequest,
    Receipt,
)
from lease_kernel.domain.lifecycle import PostingEligibility, ReceiptLifecycle, StatusChangeData
from lease_kernel.domain.money import ZERO, round2
from lease_kernel.exceptions import (
    LeaseKernelError,
    OptimisticLockError,
    OverAllocationError,
    ValidationError,
)
from lease_kernel.logging_config import LogContext, get_logger
from lease_kernel.services.base import BaseService
from lease_kernel.services.document_store import DocumentStore
from lease_kernel.services.posting_ledger import PostingLedger, PostingResult

logger = get_logger("services.receipt")

_AMOUNT_FIELDS = ("received_amount", "security_deposit", "penalty", "discount")


@dataclass(frozen=True)
class BulkItemResult:
    document_id: UUID
    outcome: str  # "applied", "skipped" or "failed"
    error_code: str | None = None
    messages: tuple[str, ...] = ()
    voucher_no: str | None = None


@dataclass(frozen=True)
class BulkOperationResult:
    operation: str
    items: tuple[BulkItemResult, ...] = ()

    @property
    def applied(self) -> int:
        return sum(1 for i in self.items if i.outcome == "applied")

    @property
    def skipped(self) -> int:
        return sum(1 for i in self.items if i.outcome == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.outcome == "failed")

    def as_counts(self) -> dict[str, int]:
        return {"applied": self.applied, "skipped": self.skipped, "failed": self.failed}


@dataclass(frozen=True)
class UnpostedReceipt:
    receipt: Receipt
    eligibility: PostingEligibility
    suggested_narration: str


def suggested_narration(receipt: Receipt) -> str:
    return (
        f"Receipt {receipt.document_no} from {receipt.customer_ref} "
        f"({receipt.payment_type.value})"
    )


class ReceiptService(BaseService):
    def __init__(
        self,
        session: Session,
        store: DocumentStore,
        allocations: AllocationEngine,
        lifecycle: ReceiptLifecycle,
        ledger: PostingLedger,
        debit_account: str,
        credit_account: str,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._store = store
        self._allocations = allocations
        self._lifecycle = lifecycle
        self._ledger = ledger
        self._debit_account = debit_account
        self._credit_account = credit_account
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Create / read / edit / delete
    # ------------------------------------------------------------------

    def create_receipt(
        self,
        document_no: str,
        customer_ref: str,
        receipt_date: date,
        received_amount: Decimal | int | str,
        payment_type: PaymentType = PaymentType.CASH,
        security_deposit: Decimal | int | str = ZERO,
        penalty: Decimal | int | str = ZERO,
        discount: Decimal | int | str = ZERO,
        cheque_no: str | None = None,
        payment_status: PaymentStatus = PaymentStatus.RECEIVED,
        notes: str = "",
        actor_id: str | None = None,
    ) -> Receipt:
        """New receipt; Received on creation unless told otherwise."""
        if not document_no:
            raise ValidationError("document_no", document_no, "must not be empty")
        payment_type = PaymentType(payment_type)
        if payment_type == PaymentType.CHEQUE and not cheque_no:
            raise ValidationError("cheque_no", cheque_no, "required for cheque receipts")
        amounts = _validated_amounts({
            "received_amount": received_amount,
            "security_deposit": security_deposit,
            "penalty": penalty,
            "discount": discount,
        })
        receipt = Receipt(
            document_no=document_no,
            customer_ref=customer_ref,
            receipt_date=receipt_date,
            payment_type=payment_type,
            payment_status=PaymentStatus(payment_status),
            cheque_no=cheque_no,
            notes=notes,
            **amounts,
        )
        _check_net_amount(receipt)
        receipt = replace(
            receipt, approval_status=self._lifecycle.gate.initial_status(receipt.net_amount)
        )
        with self._atomic():
            receipt = self._store.add(receipt, actor_id)
        logger.info(
            "receipt_created",
            extra={
                "document_id": str(receipt.document_id),
                "document_no": document_no,
                "net_amount": str(receipt.net_amount),
                "payment_status": receipt.payment_status.value,
                "approval_status": receipt.approval_status.value,
            },
        )
        return receipt

    def get(self, receipt_id: UUID) -> Receipt:
        return self._store.get_receipt(receipt_id)

    def update_amounts(
        self,
        receipt_id: UUID,
        amounts: Mapping[str, Decimal | int | str],
        expected_version: int | None = None,
    ) -> Receipt:
        """Edit received amount, deposit, penalty or discount."""
        receipt = self._load(receipt_id, expected_version)
        self._lifecycle.ensure_editable(receipt, "update_amounts")
        unknown = set(amounts) - set(_AMOUNT_FIELDS)
        if unknown:
            raise ValidationError("amounts", sorted(unknown), "unknown amount fields")
        updated = replace(receipt, **_validated_amounts(amounts))
        _check_net_amount(updated)
        if updated.total_allocated > updated.net_amount:
            raise OverAllocationError(
                net_amount=str(updated.net_amount), requested=str(updated.total_allocated)
            )
        return self._save(updated, "receipt_amounts_updated")

    def delete_receipt(self, receipt_id: UUID, expected_version: int | None = None) -> None:
        receipt = self._load(receipt_id, expected_version)
        self._lifecycle.ensure_deletable(receipt)
        with self._atomic():
            self._store.soft_delete(receipt)
        logger.info("receipt_deleted", extra={"document_id": str(receipt_id)})

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def propose_allocation(
        self,
        receipt_id: UUID,
        mode: AllocationMode,
        entries: Iterable[AllocationInput] = (),
    ) -> AllocationProposal:
        """Read-only proposal; nothing is stored."""
        return self._allocations.propose(self._store.get_receipt(receipt_id), mode, entries)

    def apply_allocation(
        self,
        receipt_id: UUID,
        mode: AllocationMode,
        entries: Iterable[AllocationInput] = (),
        expected_version: int | None = None,
    ) -> Receipt:
        receipt = self._load(receipt_id, expected_version)
        self._lifecycle.ensure_editable(receipt, "apply_allocation")
        proposal = self._allocations.propose(receipt, mode, entries)
        updated = self._allocations.apply(receipt, proposal)
        return self._save(
            updated,
            "receipt_allocation_applied",
            unallocated_amount=str(proposal.unallocated_amount),
        )

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    def change_payment_status(
        self,
        receipt_id: UUID,
        new_status: PaymentStatus,
        aux: StatusChangeData | None = None,
        expected_version: int | None = None,
    ) -> Receipt:
        receipt = self._load(receipt_id, expected_version)
        with LogContext.bind(document_id=str(receipt_id)):
            updated = self._lifecycle.change_payment_status(receipt, new_status, aux)
            saved = self._save(updated, "payment_status_changed", from_status=receipt.payment_status.value)
        return saved

    def bulk_change_status(
        self,
        receipt_ids: Iterable[UUID],
        new_status: PaymentStatus,
        aux: StatusChangeData | None = None,
    ) -> BulkOperationResult:
        """Change many receipts; receipts already in ``new_status`` are skipped."""
        new_status = PaymentStatus(new_status)
        items: list[BulkItemResult] = []
        for receipt_id in dict.fromkeys(receipt_ids):
            try:
                receipt = self._store.get_receipt(receipt_id)
                if receipt.payment_status == new_status:
                    items.append(BulkItemResult(receipt_id, "skipped"))
                    continue
                self.change_payment_status(receipt_id, new_status, aux)
            except LeaseKernelError as e:
                items.append(BulkItemResult(receipt_id, "failed", e.code, (str(e),)))
                continue
            items.append(BulkItemResult(receipt_id, "applied"))
        result = BulkOperationResult(f"change_status:{new_status.value}", tuple(items))
        logger.info(
            "bulk_status_change_completed",
            extra={"to_status": new_status.value, **result.as_counts()},
        )
        return result

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def posting_eligibility(self, receipt_id: UUID) -> PostingEligibility:
        return self._lifecycle.posting_eligibility(self._store.get_receipt(receipt_id))

    def post_receipt(
        self,
        receipt_id: UUID,
        posting_date: date | None = None,
        narration: str | None = None,
        debit_account: str | None = None,
        credit_account: str | None = None,
        actor_id: str | None = None,
    ) -> PostingResult:
        receipt = self._store.get_receipt(receipt_id)
        with LogContext.bind(document_id=str(receipt_id), actor_id=actor_id):
            try:
                self._lifecycle.ensure_postable(receipt)
            except LeaseKernelError as e:
                logger.warning("receipt_posting_rejected", extra={"code": e.code})
                raise
            request = PostingRequest(
                posting_date=posting_date or receipt.receipt_date,
                debit_account=debit_account or self._debit_account,
                credit_account=credit_account or self._credit_account,
                amount=receipt.net_amount,
                narration=narration or suggested_narration(receipt),
            )
            result = self._ledger.post(receipt_id, request, actor_id)
            logger.info("receipt_posted", extra={"voucher_no": result.voucher_no})
            return result

    def reverse_posting(
        self,
        receipt_id: UUID,
        reason: str,
        actor_id: str | None = None,
        reversal_date: date | None = None,
    ) -> PostingResult:
        """Reverse the receipt's live voucher."""
        receipt = self._store.get_receipt(receipt_id)
        live = self._ledger.live_postings(receipt_id)
        self._lifecycle.ensure_reversible(receipt, len(live))
        result = self._ledger.reverse(live[0].posting_id, reason, actor_id, reversal_date)
        logger.info(
            "receipt_posting_reversed",
            extra={
                "document_id": str(receipt_id),
                "voucher_no": result.voucher_no,
                "reverses_voucher": result.reverses_voucher,
            },
        )
        return result

    def list_unposted(self) -> list[UnpostedReceipt]:
        receipts = self._store.list_documents(DocumentType.RECEIPT, is_posted=False)
        return [
            UnpostedReceipt(
                receipt=r,
                eligibility=self._lifecycle.posting_eligibility(r),
                suggested_narration=suggested_narration(r),
            )
            for r in receipts
        ]

    def bulk_post(
        self,
        receipt_ids: Iterable[UUID],
        posting_date: date | None = None,
        actor_id: str | None = None,
    ) -> BulkOperationResult:
        """Post every eligible receipt; ineligible ones are skipped."""
        items: list[BulkItemResult] = []
        for receipt_id in dict.fromkeys(receipt_ids):
            try:
                receipt = self._store.get_receipt(receipt_id)
                eligibility = self._lifecycle.posting_eligibility(receipt)
                if not eligibility.eligible:
                    items.append(BulkItemResult(
                        receipt_id, "skipped", messages=eligibility.messages
                    ))
                    continue
                result = self.post_receipt(receipt_id, posting_date, actor_id=actor_id)
            except LeaseKernelError as e:
                items.append(BulkItemResult(receipt_id, "failed", e.code, (str(e),)))
                continue
            items.append(BulkItemResult(receipt_id, "applied", voucher_no=result.voucher_no))
        result_set = BulkOperationResult("post", tuple(items))
        logger.info("bulk_posting_completed", extra=result_set.as_counts())
        return result_set

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, receipt_id: UUID, expected_version: int | None) -> Receipt:
        receipt = self._store.get_receipt(receipt_id)
        if expected_version is not None and expected_version != receipt.version:
            raise OptimisticLockError(
                "Receipt", str(receipt_id), expected_version, receipt.version
            )
        return receipt

    def _save(self, receipt: Receipt, event_name: str, **extra: str) -> Receipt:
        receipt = self._lifecycle.gate.reassess(receipt)
        with self._atomic():
            saved = self._store.save(receipt)
        logger.info(
            event_name,
            extra={
                "document_id": str(saved.document_id),
                "net_amount": str(saved.net_amount),
                "payment_status": saved.payment_status.value,
                "approval_status": saved.approval_status.value,
                "version": saved.version,
                **extra,
            },
        )
        return saved


def _validated_amounts(raw: Mapping[str, Decimal | int | str]) -> dict[str, Decimal]:
    amounts: dict[str, Decimal] = {}
    for name, value in raw.items():
        try:
            amount = round2(value)
        except ValueError as e:
            raise ValidationError(name, value, "must be a number") from e
        if amount < ZERO:
            raise ValidationError(name, amount, "must not be negative")
        amounts[name] = amount
    return amounts


def _check_net_amount(receipt: Receipt) -> None:
    if receipt.net_amount < ZERO:
        raise ValidationError(
            "discount", receipt.discount, "exceeds the amounts received"
        )
