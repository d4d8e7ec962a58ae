"""SQLAlchemy ORM models for the lease kernel."""

from lease_kernel.models.document import DocumentModel
from lease_kernel.models.posting import PostingModel
from lease_kernel.models.sequence import SequenceCounter

__all__ = [
    "DocumentModel",
    "PostingModel",
    "SequenceCounter",
]
