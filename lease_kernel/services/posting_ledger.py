"""
PostingLedger -- balanced, append-only postings with reversal.

Responsibility:
    Writes the two legs of a document posting under one voucher, reverses a
    voucher with offsetting legs under a new voucher, and reads posting
    history back.  Keeps the document's ``is_posted`` flag in step.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes DocumentStore and
    SequenceService.  Document-type agnostic: lifecycle rules for when a
    receipt may be posted live in ReceiptLifecycle and are checked by
    ReceiptService before calling in here.

Invariants enforced:
    - Debits equal credits within every voucher, checked before flush.
    - Atomicity: the legs and the ``is_posted`` flip share one savepoint.
      Either all of them are written or none.
    - Append-only: originals are only ever marked reversed; offsetting legs
      are new rows.  db/immutability.py blocks anything else.
    - A reversed voucher stays reversed.  Re-posting the document produces
      a new voucher.

Failure modes:
    - ValidationError: non-positive amount, same debit and credit account,
      empty reversal reason.
    - AlreadyPostedError: the document already carries live postings.
    - PostingNotFoundError: unknown posting id.
    - PostingAlreadyReversedError: voucher already reversed, or is itself a
      reversal.
    - NotPostedError: the document is not flagged as posted.
    - UnbalancedEntryError: legs do not balance.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from lease_kernel.domain.clock import Clock, SystemClock
from lease_kernel.domain.documents import FinancialDocument, Posting, PostingRequest
from lease_kernel.domain.money import ZERO, round2
from lease_kernel.exceptions import (
    AlreadyPostedError,
    NotPostedError,
    PostingAlreadyReversedError,
    PostingNotFoundError,
    UnbalancedEntryError,
    ValidationError,
)
from lease_kernel.logging_config import LogContext, get_logger
from lease_kernel.models.posting import PostingModel
from lease_kernel.services.base import BaseService
from lease_kernel.services.document_store import DocumentStore
from lease_kernel.services.sequence_service import SequenceService

logger = get_logger("services.posting_ledger")

DEFAULT_VOUCHER_PREFIX = "RV"
DEFAULT_REVERSAL_PREFIX = "RRV"
DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class PostingResult:
    """Voucher written by ``post`` or ``reverse``."""

    voucher_no: str
    document: FinancialDocument
    postings: tuple[Posting, ...]
    reverses_voucher: str | None = None
    currency: str = DEFAULT_CURRENCY

    @property
    def total_debits(self) -> Decimal:
        return round2(sum((p.debit_amount for p in self.postings), ZERO))

    @property
    def total_credits(self) -> Decimal:
        return round2(sum((p.credit_amount for p in self.postings), ZERO))


def to_posting(model: PostingModel) -> Posting:
    return Posting(
        posting_id=model.id,
        voucher_no=model.voucher_no,
        document_id=model.document_id,
        posting_date=model.posting_date,
        account_ref=model.account_ref,
        debit_amount=model.debit_amount,
        credit_amount=model.credit_amount,
        narration=model.narration,
        is_reversed=model.is_reversed,
        reversal_reason=model.reversal_reason,
        reversed_by_voucher=model.reversed_by_voucher,
        reverses_voucher=model.reverses_voucher,
    )


class PostingLedger(BaseService):
    """Double-entry post and reverse for documents."""

    def __init__(
        self,
        session: Session,
        store: DocumentStore,
        sequence: SequenceService | None = None,
        clock: Clock | None = None,
        voucher_prefix: str = DEFAULT_VOUCHER_PREFIX,
        reversal_prefix: str = DEFAULT_REVERSAL_PREFIX,
        currency: str = DEFAULT_CURRENCY,
    ):
        super().__init__(session)
        if voucher_prefix == reversal_prefix:
            raise ValueError("posting and reversal voucher prefixes must differ")
        self._store = store
        self._sequence = sequence or SequenceService(session)
        self._clock = clock or SystemClock()
        self._voucher_prefix = voucher_prefix
        self._reversal_prefix = reversal_prefix
        self._currency = currency

    @property
    def currency(self) -> str:
        """ISO code every leg this ledger writes is denominated in."""
        return self._currency

    # ------------------------------------------------------------------
    # Post
    # ------------------------------------------------------------------

    def post(
        self,
        document_id: UUID,
        request: PostingRequest,
        actor_id: str | None = None,
    ) -> PostingResult:
        """Write one debit and one credit leg for ``request.amount``."""
        amount = round2(request.amount)
        if amount <= ZERO:
            raise ValidationError("amount", amount, "must be positive")
        if not request.debit_account or not request.credit_account:
            raise ValidationError("account_ref", "", "debit and credit accounts are required")
        if request.debit_account == request.credit_account:
            raise ValidationError(
                "credit_account", request.credit_account, "must differ from the debit account"
            )

        with LogContext.bind(document_id=str(document_id), actor_id=actor_id):
            document = self._store.get(document_id)
            if document.is_posted or self._live_models(document_id):
                logger.warning(
                    "posting_rejected",
                    extra={"code": AlreadyPostedError.code},
                )
                raise AlreadyPostedError(str(document_id))

            with self._atomic():
                voucher_no = self._sequence.next_voucher(self._voucher_prefix)
                legs = [
                    self._leg(voucher_no, document_id, request.posting_date,
                              request.debit_account, amount, ZERO,
                              request.narration, actor_id),
                    self._leg(voucher_no, document_id, request.posting_date,
                              request.credit_account, ZERO, amount,
                              request.narration, actor_id),
                ]
                _assert_balanced(legs)
                self.session.add_all(legs)
                self.session.flush()
                document = self._store.save(replace(document, is_posted=True))

            logger.info(
                "document_posted",
                extra={
                    "voucher_no": voucher_no,
                    "amount": str(amount),
                    "currency": self._currency,
                    "debit_account": request.debit_account,
                    "credit_account": request.credit_account,
                },
            )
            return PostingResult(
                voucher_no=voucher_no,
                document=document,
                postings=tuple(to_posting(m) for m in legs),
                currency=self._currency,
            )

    # ------------------------------------------------------------------
    # Reverse
    # ------------------------------------------------------------------

    def reverse(
        self,
        posting_id: UUID,
        reason: str,
        actor_id: str | None = None,
        reversal_date: date | None = None,
    ) -> PostingResult:
        """Offset the whole voucher ``posting_id`` belongs to."""
        if not reason or not reason.strip():
            raise ValidationError("reason", reason, "a reversal reason is required")
        reason = reason.strip()

        original = self.session.get(PostingModel, posting_id, populate_existing=True)
        if original is None:
            raise PostingNotFoundError(str(posting_id))
        if original.is_reversed or original.is_reversal:
            raise PostingAlreadyReversedError(original.voucher_no)

        with LogContext.bind(document_id=str(original.document_id), actor_id=actor_id):
            document = self._store.get(original.document_id)
            if not document.is_posted:
                raise NotPostedError(str(original.document_id))

            originals = self._voucher_models(original.voucher_no)
            on_date = reversal_date or self._clock.today()

            with self._atomic():
                voucher_no = self._sequence.next_voucher(self._reversal_prefix)
                offsets = []
                for leg in originals:
                    offset = self._leg(
                        voucher_no, leg.document_id, on_date, leg.account_ref,
                        leg.credit_amount, leg.debit_amount,
                        f"Reversal of {leg.voucher_no}: {reason}", actor_id,
                    )
                    offset.reverses_voucher = leg.voucher_no
                    offsets.append(offset)
                _assert_balanced(offsets)
                self.session.add_all(offsets)
                for leg in originals:
                    leg.is_reversed = True
                    leg.reversal_reason = reason
                    leg.reversed_by_voucher = voucher_no
                self.session.flush()
                still_live = bool(self._live_models(original.document_id))
                document = self._store.save(replace(document, is_posted=still_live))

            logger.info(
                "posting_reversed",
                extra={
                    "voucher_no": voucher_no,
                    "reverses_voucher": original.voucher_no,
                    "reason": reason,
                },
            )
            return PostingResult(
                voucher_no=voucher_no,
                document=document,
                postings=tuple(to_posting(m) for m in offsets),
                reverses_voucher=original.voucher_no,
                currency=self._currency,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def postings_for(self, document_id: UUID) -> tuple[Posting, ...]:
        models = self.session.execute(
            select(PostingModel)
            .where(PostingModel.document_id == document_id)
            .execution_options(populate_existing=True)
        ).scalars()
        return tuple(to_posting(m) for m in _debits_first(models))

    def voucher(self, voucher_no: str) -> tuple[Posting, ...]:
        return tuple(to_posting(m) for m in self._voucher_models(voucher_no))

    def live_postings(self, document_id: UUID) -> tuple[Posting, ...]:
        """Postings that are neither reversed nor reversals."""
        return tuple(to_posting(m) for m in self._live_models(document_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _leg(
        self,
        voucher_no: str,
        document_id: UUID,
        posting_date: date,
        account_ref: str,
        debit: Decimal,
        credit: Decimal,
        narration: str,
        actor_id: str | None,
    ) -> PostingModel:
        return PostingModel(
            voucher_no=voucher_no,
            document_id=document_id,
            posting_date=posting_date,
            account_ref=account_ref,
            debit_amount=debit,
            credit_amount=credit,
            narration=narration,
            is_reversed=False,
            created_by=actor_id,
        )

    def _voucher_models(self, voucher_no: str) -> list[PostingModel]:
        return _debits_first(self.session.execute(
            select(PostingModel)
            .where(PostingModel.voucher_no == voucher_no)
            .execution_options(populate_existing=True)
        ).scalars())

    def _live_models(self, document_id: UUID) -> list[PostingModel]:
        return list(self.session.execute(
            select(PostingModel)
            .where(PostingModel.document_id == document_id)
            .where(PostingModel.is_reversed.is_(False))
            .where(PostingModel.reverses_voucher.is_(None))
            .execution_options(populate_existing=True)
        ).scalars())


def _assert_balanced(legs: list[PostingModel]) -> None:
    debits = round2(sum((leg.debit_amount for leg in legs), ZERO))
    credits = round2(sum((leg.credit_amount for leg in legs), ZERO))
    if debits != credits:
        raise UnbalancedEntryError(str(debits), str(credits))


def _debits_first(models) -> list[PostingModel]:
    # Amounts are stored as text, so order in Python rather than SQL.
    return sorted(models, key=lambda m: (m.voucher_no, m.debit_amount == ZERO))
