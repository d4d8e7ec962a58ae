"""
lease_kernel.services.approval_service -- persisted approval transitions.

Responsibility:
    Loads a document, applies an ``ApprovalGate`` transition and saves the
    result.  Bulk approve/reject processes each document in its own
    savepoint.

Architecture position:
    Kernel > Services.  Rule evaluation lives in the pure ApprovalGate.

Failure modes:
    - DocumentNotFoundError for unknown ids (single-document calls).
    - ProtectedDocumentError, IllegalTransitionError, ValidationError,
      UnauthorizedActorError from the gate.
    - OptimisticLockError when ``expected_version`` is stale.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from lease_kernel.domain.approval import ApprovalGate, BulkApprovalResult, BulkItemOutcome
from lease_kernel.domain.documents import FinancialDocument
from lease_kernel.exceptions import (
    DocumentNotFoundError,
    LeaseKernelError,
    OptimisticLockError,
)
from lease_kernel.logging_config import LogContext, get_logger
from lease_kernel.services.base import BaseService
from lease_kernel.services.document_store import DocumentStore

logger = get_logger("services.approval")


class ApprovalService(BaseService):
    """Submit, approve, reject and reset documents."""

    def __init__(self, session: Session, store: DocumentStore, gate: ApprovalGate):
        super().__init__(session)
        self._store = store
        self._gate = gate

    def submit(self, document_id: UUID, expected_version: int | None = None) -> FinancialDocument:
        document = self._load(document_id, expected_version)
        updated = self._gate.submit(document)
        return self._persist(document, updated, "approval_submitted", None)

    def approve(
        self,
        document_id: UUID,
        actor_id: str,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> FinancialDocument:
        document = self._load(document_id, expected_version)
        with LogContext.bind(document_id=str(document_id), actor_id=actor_id):
            updated = self._gate.approve(document, actor_id, comment)
            return self._persist(document, updated, "approval_granted", actor_id)

    def reject(
        self,
        document_id: UUID,
        actor_id: str,
        reason: str,
        expected_version: int | None = None,
    ) -> FinancialDocument:
        document = self._load(document_id, expected_version)
        with LogContext.bind(document_id=str(document_id), actor_id=actor_id):
            updated = self._gate.reject(document, actor_id, reason)
            return self._persist(document, updated, "approval_rejected", actor_id)

    def reset(
        self,
        document_id: UUID,
        actor_id: str,
        expected_version: int | None = None,
    ) -> FinancialDocument:
        document = self._load(document_id, expected_version)
        with LogContext.bind(document_id=str(document_id), actor_id=actor_id):
            updated = self._gate.reset(document, actor_id)
            return self._persist(document, updated, "approval_reset", actor_id)

    def bulk_action(
        self,
        document_ids: Iterable[UUID],
        action: str,
        actor_id: str,
        reason: str | None = None,
    ) -> BulkApprovalResult:
        """
        Approve or reject many documents.

        Non-pending documents are skipped.  Unknown ids and documents whose
        save fails are reported as failed; neither stops the batch.
        """
        ids = list(dict.fromkeys(document_ids))
        found = self._store.get_many(ids)
        decided = self._gate.bulk_action(
            (found[i] for i in ids if i in found), action, actor_id, reason
        )
        by_id = {
            item.document_id: (item, doc)
            for item, doc in zip(decided.items, decided.documents)
        }

        items: list[BulkItemOutcome] = []
        documents: list[FinancialDocument] = []
        for document_id in ids:
            if document_id not in by_id:
                items.append(BulkItemOutcome(
                    document_id, "failed", None, DocumentNotFoundError.code
                ))
                continue
            item, document = by_id[document_id]
            if item.outcome == "applied":
                try:
                    with self._atomic():
                        document = self._store.save(document)
                except LeaseKernelError as e:
                    logger.warning(
                        "bulk_approval_item_failed",
                        extra={"document_id": str(document_id), "code": e.code},
                    )
                    items.append(BulkItemOutcome(
                        document_id, "failed", found[document_id].approval_status, e.code
                    ))
                    documents.append(found[document_id])
                    continue
            items.append(item)
            documents.append(document)

        result = BulkApprovalResult(action=action, items=tuple(items), documents=tuple(documents))
        logger.info(
            "bulk_approval_completed",
            extra={"action": action, "actor_id": actor_id, **result.as_counts()},
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, document_id: UUID, expected_version: int | None) -> FinancialDocument:
        document = self._store.get(document_id)
        if expected_version is not None and expected_version != document.version:
            raise OptimisticLockError(
                "Document", str(document_id), expected_version, document.version
            )
        return document

    def _persist(
        self,
        before: FinancialDocument,
        after: FinancialDocument,
        event_name: str,
        actor_id: str | None,
    ) -> FinancialDocument:
        if after is before:
            return before
        with self._atomic():
            saved = self._store.save(after)
        logger.info(
            event_name,
            extra={
                "document_id": str(saved.document_id),
                "from_status": before.approval_status.value,
                "to_status": saved.approval_status.value,
                "actor_id": actor_id,
            },
        )
        return saved
