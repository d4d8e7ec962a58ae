"""Imperative shell: persisted documents, approvals, postings."""

from lease_kernel.services.approval_service import ApprovalService
from lease_kernel.services.contract_service import ContractService
from lease_kernel.services.document_store import DocumentStore
from lease_kernel.services.posting_ledger import PostingLedger, PostingResult
from lease_kernel.services.receipt_service import (
    BulkItemResult,
    BulkOperationResult,
    ReceiptService,
    UnpostedReceipt,
)
from lease_kernel.services.sequence_service import SequenceService

__all__ = [
    "ApprovalService",
    "BulkItemResult",
    "BulkOperationResult",
    "ContractService",
    "DocumentStore",
    "PostingLedger",
    "PostingResult",
    "ReceiptService",
    "SequenceService",
    "UnpostedReceipt",
]
