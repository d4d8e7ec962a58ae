"""
Kernel Invariants Contract.

These invariants are structural law. No configuration value, actor role or
caller flag may switch them off.

This module exists solely to declare the invariants explicitly. The
enforcement is distributed across the domain layer (FieldRecalculator,
AllocationEngine, ApprovalGate, ReceiptLifecycle), PostingLedger and the
ORM immutability listeners.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    LINE_TOTAL_CONSISTENCY = "line_total_consistency"
    """TotalAmount == round2(DerivedAnnualAmount + TaxAmount) on every line
    item, and TaxAmount == 0 whenever no tax is selected. Enforced by
    FieldRecalculator."""

    ALLOCATION_CEILING = "allocation_ceiling"
    """The sum of a receipt's allocations never exceeds its NetAmount.
    Enforced by AllocationEngine."""

    APPROVAL_PROTECTION = "approval_protection"
    """An Approved document rejects every mutation until an authorized
    reset. Enforced by ApprovalGate."""

    DOUBLE_ENTRY_BALANCE = "double_entry_balance"
    """Debits equal credits within every voucher. Enforced by
    PostingLedger before flush."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Posting rows are never deleted and never edited, apart from the
    one-way reversal mark. Enforced by db.immutability listeners."""

    DOCUMENT_SERIALIZATION = "document_serialization"
    """Concurrent writes to one document are serialized by an optimistic
    version check. Enforced by DocumentStore."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The domain layer may not import from these packages.
# Enforced by tests/architecture/test_domain_purity.py.
FORBIDDEN_DOMAIN_IMPORTS: tuple[str, ...] = (
    "sqlalchemy",
    "lease_kernel.db",
    "lease_kernel.models",
    "lease_kernel.services",
)
