"""
Pure domain layer.

Value objects and rules for lease contracts and receipts with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Every operation takes a document value and returns a new one.
"""

from lease_kernel.domain.allocation import AllocationEngine, AllocationProposal
from lease_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    ApprovalGate,
    BulkApprovalResult,
    BulkItemOutcome,
)
from lease_kernel.domain.calculations import (
    Duration,
    Installment,
    InstallmentFrequency,
    build_installment_schedule,
    duration_between,
)
from lease_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from lease_kernel.domain.collaborators import (
    ActorAuthorizer,
    ApprovalAction,
    InMemoryInvoiceBalances,
    InvoiceBalanceLookup,
    RoleAuthorizer,
    TaxRateLookup,
    TaxRateTable,
)
from lease_kernel.domain.documents import (
    Allocation,
    AllocationMode,
    ApprovalStatus,
    Contract,
    DocumentType,
    FinancialDocument,
    LineField,
    LineItem,
    LineItemKind,
    PaymentStatus,
    PaymentType,
    Posting,
    PostingRequest,
    Receipt,
)
from lease_kernel.domain.lifecycle import (
    PAYMENT_TRANSITIONS,
    PostingEligibility,
    ReceiptLifecycle,
    StatusChangeData,
)
from lease_kernel.domain.money import round2
from lease_kernel.domain.recalculation import RECOMPUTE_GRAPH, FieldRecalculator

__all__ = [
    "APPROVAL_TRANSITIONS",
    "PAYMENT_TRANSITIONS",
    "RECOMPUTE_GRAPH",
    "ActorAuthorizer",
    "Allocation",
    "AllocationEngine",
    "AllocationMode",
    "AllocationProposal",
    "ApprovalAction",
    "ApprovalGate",
    "ApprovalStatus",
    "BulkApprovalResult",
    "BulkItemOutcome",
    "Clock",
    "Contract",
    "DeterministicClock",
    "DocumentType",
    "Duration",
    "FieldRecalculator",
    "FinancialDocument",
    "InMemoryInvoiceBalances",
    "Installment",
    "InstallmentFrequency",
    "InvoiceBalanceLookup",
    "LineField",
    "LineItem",
    "LineItemKind",
    "PaymentStatus",
    "PaymentType",
    "Posting",
    "PostingEligibility",
    "PostingRequest",
    "Receipt",
    "ReceiptLifecycle",
    "RoleAuthorizer",
    "StatusChangeData",
    "SystemClock",
    "TaxRateLookup",
    "TaxRateTable",
    "build_installment_schedule",
    "duration_between",
    "round2",
]
