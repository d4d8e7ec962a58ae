"""
ApprovalGate -- the approval state machine that protects documents.

Responsibility
--------------
Owns every ``ApprovalStatus`` transition of a ``FinancialDocument`` and
the guard that rejects mutations of an Approved document.

    NotRequired --submit--> Pending --approve--> Approved
    Rejected    --submit--> Pending --reject---> Rejected
    Approved    --reset---> Pending
    Rejected    --reset---> Pending

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Authorization is delegated to an
injected ``ActorAuthorizer``; timestamps come from an injected ``Clock``.
Every transition returns a new document value.

Invariants enforced
-------------------
* While a document is Approved, ``guard()`` raises
  ``ProtectedDocumentError`` for every mutating operation.  ``reset`` by an
  authorized actor is the only way out.
* A document whose approval amount meets the threshold starts Pending.
* Bulk actions process each document independently; one failure never
  aborts the batch.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from lease_kernel.domain.clock import Clock, SystemClock
from lease_kernel.domain.collaborators import ActorAuthorizer, ApprovalAction
from lease_kernel.domain.documents import ApprovalStatus, FinancialDocument
from lease_kernel.domain.money import to_decimal
from lease_kernel.exceptions import (
    IllegalTransitionError,
    LeaseKernelError,
    ProtectedDocumentError,
    UnauthorizedActorError,
    ValidationError,
)
from lease_kernel.logging_config import get_logger

logger = get_logger("domain.approval")

DocT = TypeVar("DocT", bound=FinancialDocument)

MACHINE = "approval"

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.NOT_REQUIRED: frozenset({ApprovalStatus.PENDING}),
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
    ApprovalStatus.APPROVED: frozenset({ApprovalStatus.PENDING}),
    ApprovalStatus.REJECTED: frozenset({ApprovalStatus.PENDING}),
}


@dataclass(frozen=True)
class BulkItemOutcome:
    document_id: UUID
    outcome: str  # "applied", "skipped" or "failed"
    status: ApprovalStatus | None
    error_code: str | None = None


@dataclass(frozen=True)
class BulkApprovalResult:
    """Aggregate result of ``ApprovalGate.bulk_action``."""

    action: str
    items: tuple[BulkItemOutcome, ...] = ()
    documents: tuple[FinancialDocument, ...] = field(default=(), repr=False)

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


class ApprovalGate:
    """Approval transitions plus the protection guard."""

    def __init__(
        self,
        authorizer: ActorAuthorizer,
        threshold: Decimal | int | str | None = None,
        clock: Clock | None = None,
    ):
        self._authorizer = authorizer
        self._threshold = to_decimal(threshold) if threshold is not None else None
        if self._threshold is not None and self._threshold < 0:
            raise ValueError("approval threshold must not be negative")
        self._clock = clock or SystemClock()

    @property
    def threshold(self) -> Decimal | None:
        return self._threshold

    # ------------------------------------------------------------------
    # Protection
    # ------------------------------------------------------------------

    def guard(self, document: FinancialDocument, operation: str) -> None:
        """Raise ``ProtectedDocumentError`` if ``document`` is Approved."""
        if document.approval_status == ApprovalStatus.APPROVED:
            logger.warning(
                "protected_document_mutation_blocked",
                extra={
                    "code": ProtectedDocumentError.code,
                    "document_id": str(document.document_id),
                    "operation": operation,
                },
            )
            raise ProtectedDocumentError(str(document.document_id), operation)

    # ------------------------------------------------------------------
    # Threshold
    # ------------------------------------------------------------------

    def requires_approval(self, amount: Decimal) -> bool:
        return self._threshold is not None and amount >= self._threshold

    def initial_status(self, amount: Decimal) -> ApprovalStatus:
        if self.requires_approval(amount):
            return ApprovalStatus.PENDING
        return ApprovalStatus.NOT_REQUIRED

    def reassess(self, document: DocT) -> DocT:
        """Move a NotRequired document to Pending once it crosses the threshold."""
        if (
            document.approval_status == ApprovalStatus.NOT_REQUIRED
            and self.requires_approval(document.approval_amount)
        ):
            logger.info(
                "approval_required_by_threshold",
                extra={
                    "document_id": str(document.document_id),
                    "amount": str(document.approval_amount),
                    "threshold": str(self._threshold),
                },
            )
            return replace(document, approval_status=ApprovalStatus.PENDING)
        return document

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, document: DocT) -> DocT:
        """NotRequired/Rejected -> Pending.  Submitting a Pending document is a no-op."""
        self.guard(document, "submit")
        if document.approval_status == ApprovalStatus.PENDING:
            return document
        self._check_transition(document, ApprovalStatus.PENDING)
        return replace(document, approval_status=ApprovalStatus.PENDING)

    def approve(self, document: DocT, actor_id: str, comment: str | None = None) -> DocT:
        self.guard(document, "approve")
        self._authorize(actor_id, ApprovalAction.APPROVE)
        self._check_transition(document, ApprovalStatus.APPROVED)
        return replace(
            document,
            approval_status=ApprovalStatus.APPROVED,
            approval_comment=comment or None,
            rejection_reason=None,
            decided_by=actor_id,
            decided_at=self._clock.now(),
        )

    def reject(self, document: DocT, actor_id: str, reason: str) -> DocT:
        self.guard(document, "reject")
        if not reason or not reason.strip():
            raise ValidationError("reason", reason, "a rejection reason is required")
        self._authorize(actor_id, ApprovalAction.REJECT)
        self._check_transition(document, ApprovalStatus.REJECTED)
        return replace(
            document,
            approval_status=ApprovalStatus.REJECTED,
            approval_comment=None,
            rejection_reason=reason.strip(),
            decided_by=actor_id,
            decided_at=self._clock.now(),
        )

    def reset(self, document: DocT, actor_id: str) -> DocT:
        """Approved/Rejected -> Pending.  Clears the decision trail."""
        self._authorize(actor_id, ApprovalAction.RESET)
        if document.approval_status not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            raise IllegalTransitionError(
                MACHINE,
                document.approval_status.value,
                ApprovalStatus.PENDING.value,
                "only approved or rejected documents can be reset",
            )
        return replace(
            document,
            approval_status=ApprovalStatus.PENDING,
            approval_comment=None,
            rejection_reason=None,
            decided_by=None,
            decided_at=None,
        )

    def bulk_action(
        self,
        documents: Iterable[FinancialDocument],
        action: str,
        actor_id: str,
        reason: str | None = None,
    ) -> BulkApprovalResult:
        """
        Approve or reject every Pending document in ``documents``.

        Documents not currently Pending are skipped.  ``reason`` is the
        rejection reason for ``reject`` and the comment for ``approve``.
        The actor and reason are checked once up front; after that every
        document is processed on its own.
        """
        if action not in (ApprovalAction.APPROVE, ApprovalAction.REJECT):
            raise ValidationError("action", action, "must be approve or reject")
        if action == ApprovalAction.REJECT and (not reason or not reason.strip()):
            raise ValidationError("reason", reason, "a rejection reason is required")
        self._authorize(actor_id, action)

        items: list[BulkItemOutcome] = []
        results: list[FinancialDocument] = []
        for document in documents:
            if document.approval_status != ApprovalStatus.PENDING:
                items.append(BulkItemOutcome(
                    document.document_id, "skipped", document.approval_status
                ))
                results.append(document)
                continue
            try:
                if action == ApprovalAction.APPROVE:
                    updated = self.approve(document, actor_id, reason)
                else:
                    updated = self.reject(document, actor_id, reason or "")
            except LeaseKernelError as e:
                items.append(BulkItemOutcome(
                    document.document_id, "failed", document.approval_status, e.code
                ))
                results.append(document)
                continue
            items.append(BulkItemOutcome(document.document_id, "applied", updated.approval_status))
            results.append(updated)

        return BulkApprovalResult(action=action, items=tuple(items), documents=tuple(results))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _authorize(self, actor_id: str, action: str) -> None:
        if not self._authorizer.is_authorized(actor_id, action):
            logger.warning(
                "approval_actor_unauthorized",
                extra={
                    "code": UnauthorizedActorError.code,
                    "actor_id": actor_id,
                    "action": action,
                },
            )
            raise UnauthorizedActorError(actor_id, action)

    def _check_transition(self, document: FinancialDocument, target: ApprovalStatus) -> None:
        current = document.approval_status
        if target not in APPROVAL_TRANSITIONS[current]:
            raise IllegalTransitionError(MACHINE, current.value, target.value)
