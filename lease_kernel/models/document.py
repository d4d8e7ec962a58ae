"""
Module: lease_kernel.models.document
Responsibility: ORM persistence for contract and receipt headers.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Optimistic concurrency: ``version`` is SQLAlchemy's version_id_col.
      Every UPDATE is conditional on the version that was read, so two
      writers racing on one document cannot both win.
    - Soft delete: documents are flagged ``is_deleted``, never removed.

The header columns (status flags, amount) are queryable copies of values
held in ``body``, the serialized document.  DocumentStore keeps them in
step on every save.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from lease_kernel.db.base import TrackedBase


class DocumentModel(TrackedBase):
    """Contract or receipt header row."""

    __tablename__ = "lease_documents"

    __table_args__ = (
        Index("idx_lease_documents_type_status", "document_type", "approval_status"),
        Index("idx_lease_documents_posted", "document_type", "is_posted"),
    )

    document_type: Mapped[str] = mapped_column(String(20), nullable=False)
    document_no: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    customer_ref: Mapped[str] = mapped_column(String(100), nullable=False)

    approval_status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Grand total for contracts, net amount for receipts.
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    body: Mapped[dict] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<DocumentModel {self.document_type} {self.document_no} "
            f"v{self.version} {self.approval_status}>"
        )
