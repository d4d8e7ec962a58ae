"""
DocumentStore -- persistence for contracts and receipts.

Responsibility:
    Loads and saves ``FinancialDocument`` values.  A document is stored as
    a ``DocumentModel`` header row plus its serialized body; reading it back
    yields an equal frozen value.

Architecture position:
    Kernel > Services -- imperative shell.  The only service that touches
    ``DocumentModel`` directly.

Invariants enforced:
    - Per-document serialization: ``save`` refuses a document whose
      ``version`` differs from the stored one, and the UPDATE itself is
      conditional on the version (SQLAlchemy version_id_col).  A stale
      read can never overwrite a newer approval state.
    - Soft delete: deleted documents are hidden from reads, never removed.

Failure modes:
    - DocumentNotFoundError for unknown or deleted ids, or a type mismatch.
    - OptimisticLockError when the stored version moved on.
"""

from __future__ import annotations

import types
from collections.abc import Iterable
from dataclasses import fields, is_dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar, Union, get_args, get_origin, get_type_hints
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lease_kernel.domain.documents import (
    ApprovalStatus,
    Contract,
    DocumentType,
    FinancialDocument,
    Receipt,
)
from lease_kernel.exceptions import DocumentNotFoundError, OptimisticLockError
from lease_kernel.logging_config import get_logger
from lease_kernel.models.document import DocumentModel
from lease_kernel.services.base import BaseService

logger = get_logger("services.document_store")

DocT = TypeVar("DocT", bound=FinancialDocument)

DOCUMENT_CLASSES: dict[DocumentType, type[FinancialDocument]] = {
    DocumentType.CONTRACT: Contract,
    DocumentType.RECEIPT: Receipt,
}

# Stored in columns rather than the body.
_HEADER_ONLY_FIELDS = frozenset({"version"})


# =========================================================================
# Body codec
# =========================================================================


def encode_value(value: Any) -> Any:
    """Domain value -> JSON-compatible value."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: encode_value(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (tuple, list)):
        return [encode_value(v) for v in value]
    return value


def decode_value(tp: Any, raw: Any) -> Any:
    """JSON value -> domain value of type ``tp``."""
    if raw is None:
        return None
    origin = get_origin(tp)
    if origin in (Union, types.UnionType):
        inner = [a for a in get_args(tp) if a is not type(None)]
        return decode_value(inner[0], raw)
    if origin is tuple:
        item_type = get_args(tp)[0]
        return tuple(decode_value(item_type, r) for r in raw)
    if is_dataclass(tp):
        return decode_dataclass(tp, raw)
    if isinstance(tp, type) and issubclass(tp, Enum):
        return tp(raw)
    if tp is Decimal:
        return Decimal(raw)
    if tp is datetime:
        return datetime.fromisoformat(raw)
    if tp is date:
        return date.fromisoformat(raw)
    if tp is UUID:
        return UUID(raw)
    return raw


def decode_dataclass(cls: type, data: dict[str, Any], **overrides: Any) -> Any:
    hints = get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name in overrides:
            kwargs[f.name] = overrides[f.name]
        elif f.name in data:
            kwargs[f.name] = decode_value(hints[f.name], data[f.name])
    return cls(**kwargs)


def encode_document(document: FinancialDocument) -> dict[str, Any]:
    body = encode_value(document)
    for name in _HEADER_ONLY_FIELDS:
        body.pop(name, None)
    return body


# =========================================================================
# Store
# =========================================================================


class DocumentStore(BaseService):
    """Reads and writes documents with optimistic version checks."""

    def __init__(self, session: Session):
        super().__init__(session)

    def add(self, document: DocT, actor_id: str | None = None) -> DocT:
        model = DocumentModel(
            id=document.document_id,
            document_type=document.document_type.value,
            created_by=actor_id,
        )
        self._copy_into(model, document)
        self.session.add(model)
        self.session.flush()
        logger.debug(
            "document_added",
            extra={
                "document_id": str(document.document_id),
                "document_type": document.document_type.value,
                "version": model.version,
            },
        )
        return replace(document, version=model.version)

    def get(self, document_id: UUID) -> FinancialDocument:
        return self._to_domain(self._load_model(document_id))

    def get_contract(self, document_id: UUID) -> Contract:
        return self._typed(document_id, Contract)

    def get_receipt(self, document_id: UUID) -> Receipt:
        return self._typed(document_id, Receipt)

    def save(self, document: DocT) -> DocT:
        """Persist ``document`` if nobody else changed it since it was read."""
        model = self._load_model(document.document_id)
        if model.version != document.version:
            raise OptimisticLockError(
                "Document", str(document.document_id), document.version, model.version
            )
        self._copy_into(model, document)
        try:
            self.session.flush()
        except StaleDataError as e:
            raise OptimisticLockError(
                "Document", str(document.document_id), document.version, -1
            ) from e
        return replace(document, version=model.version)

    def soft_delete(self, document: FinancialDocument) -> None:
        model = self._load_model(document.document_id)
        if model.version != document.version:
            raise OptimisticLockError(
                "Document", str(document.document_id), document.version, model.version
            )
        model.is_deleted = True
        self.session.flush()

    def list_documents(
        self,
        document_type: DocumentType,
        *,
        approval_status: ApprovalStatus | None = None,
        is_posted: bool | None = None,
    ) -> list[FinancialDocument]:
        stmt = (
            select(DocumentModel)
            .where(DocumentModel.document_type == document_type.value)
            .where(DocumentModel.is_deleted.is_(False))
            .order_by(DocumentModel.document_no)
        )
        if approval_status is not None:
            stmt = stmt.where(DocumentModel.approval_status == approval_status.value)
        if is_posted is not None:
            stmt = stmt.where(DocumentModel.is_posted.is_(is_posted))
        models = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars()
        return [self._to_domain(m) for m in models]

    def get_many(self, document_ids: Iterable[UUID]) -> dict[UUID, FinancialDocument]:
        """Documents found among ``document_ids``; unknown ids are left out."""
        found: dict[UUID, FinancialDocument] = {}
        for document_id in document_ids:
            try:
                found[document_id] = self.get(document_id)
            except DocumentNotFoundError:
                continue
        return found

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _typed(self, document_id: UUID, cls: type[DocT]) -> DocT:
        document = self.get(document_id)
        if not isinstance(document, cls):
            raise DocumentNotFoundError(str(document_id))
        return document

    def _load_model(self, document_id: UUID) -> DocumentModel:
        model = self.session.execute(
            select(DocumentModel)
            .where(DocumentModel.id == document_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None or model.is_deleted:
            raise DocumentNotFoundError(str(document_id))
        return model

    @staticmethod
    def _copy_into(model: DocumentModel, document: FinancialDocument) -> None:
        model.document_no = document.document_no
        model.customer_ref = getattr(document, "customer_ref", "")
        model.approval_status = document.approval_status.value
        payment_status = getattr(document, "payment_status", None)
        model.payment_status = payment_status.value if payment_status else None
        model.is_posted = document.is_posted
        model.amount = document.approval_amount
        model.body = encode_document(document)

    @staticmethod
    def _to_domain(model: DocumentModel) -> FinancialDocument:
        cls = DOCUMENT_CLASSES[DocumentType(model.document_type)]
        return decode_dataclass(cls, model.body, version=model.version)
