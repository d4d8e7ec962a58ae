"""
Typed Exception Hierarchy for the Lease Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers branch on the kind of failure: a protected document needs a reset
request, an over-allocation needs the allocation grid re-opened, a stale
version needs a reload. Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

    try:
        receipts.change_payment_status(receipt_id, PaymentStatus.DEPOSITED)
    except ProtectedDocumentError as e:
        api_response(code=e.code, document=e.document_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LeaseKernelError (base)
    |
    +-- ValidationError
    +-- OverAllocationError
    +-- IllegalTransitionError
    |
    +-- ApprovalError
    |   +-- ProtectedDocumentError
    |   +-- UnauthorizedActorError
    |
    +-- PostingError
    |   +-- AlreadyPostedError
    |   +-- UnbalancedEntryError
    |   +-- PostingNotAllowedError
    |
    +-- ReversalError
    |   +-- NotPostedError
    |   +-- PostingAlreadyReversedError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- DocumentNotDeletableError
    |   +-- DocumentNotEditableError
    |   +-- PostingNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|------------------------------------------
Input        | VALIDATION_ERROR           | Negative amount, inverted date range, ...
             | OVER_ALLOCATION            | Allocations exceed the receipt NetAmount
             | ILLEGAL_TRANSITION         | Status change not allowed from this state
-------------|----------------------------|------------------------------------------
Approval     | PROTECTED_DOCUMENT         | Mutation attempted on an Approved document
             | UNAUTHORIZED_ACTOR         | Actor lacks the approve/reject/reset role
-------------|----------------------------|------------------------------------------
Posting      | ALREADY_POSTED             | Document already carries live postings
             | UNBALANCED_ENTRY           | Voucher debits != credits
             | POSTING_NOT_ALLOWED        | Lifecycle forbids posting right now
-------------|----------------------------|------------------------------------------
Reversal     | NOT_POSTED                 | Nothing posted to reverse
             | POSTING_ALREADY_REVERSED   | Voucher already reversed, or is a reversal
-------------|----------------------------|------------------------------------------
Document     | DOCUMENT_NOT_FOUND         | Unknown or deleted document id
             | DOCUMENT_NOT_DELETABLE     | Bounced or posted receipt
             | DOCUMENT_NOT_EDITABLE      | Posted receipt; reverse it first
             | POSTING_NOT_FOUND          | Unknown posting id
-------------|----------------------------|------------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT   | Document changed since it was read
-------------|----------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION     | UPDATE/DELETE of a ledger row

All errors are raised before any state is written, or inside a savepoint
that is rolled back, so a rejected operation never leaves partial state.
===============================================================================
"""


class LeaseKernelError(Exception):
    """
    Base exception for all lease kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEASE_KERNEL_ERROR"


# Input errors


class ValidationError(LeaseKernelError):
    """Malformed or out-of-range input. Always recoverable by the caller."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field}={value!s}: {reason}")


class OverAllocationError(LeaseKernelError):
    """Requested allocations exceed the receipt's NetAmount."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, net_amount: str, requested: str):
        self.net_amount = net_amount
        self.requested = requested
        super().__init__(
            f"Total allocation {requested} exceeds net received amount {net_amount}"
        )


class IllegalTransitionError(LeaseKernelError):
    """A status change is not permitted from the current state."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, machine: str, from_state: str, to_state: str, reason: str = ""):
        self.machine = machine
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        message = f"Illegal {machine} transition {from_state} -> {to_state}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Approval errors


class ApprovalError(LeaseKernelError):
    """Base exception for approval-related errors."""

    code: str = "APPROVAL_ERROR"


class ProtectedDocumentError(ApprovalError):
    """A mutation was attempted on an Approved document."""

    code: str = "PROTECTED_DOCUMENT"

    def __init__(self, document_id: str, operation: str):
        self.document_id = document_id
        self.operation = operation
        super().__init__(
            f"Document {document_id} is approved and cannot be changed ({operation}). "
            "Ask an authorized approver to reset the approval first."
        )


class UnauthorizedActorError(ApprovalError):
    """Actor does not hold a role allowed to perform the action."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"Actor {actor_id} is not authorized to {action}")


# Posting errors


class PostingError(LeaseKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class AlreadyPostedError(PostingError):
    """Document already carries live (non-reversed) postings."""

    code: str = "ALREADY_POSTED"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} is already posted")


class UnbalancedEntryError(PostingError):
    """Voucher debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Unbalanced voucher: debits={debits}, credits={credits}")


class PostingNotAllowedError(PostingError):
    """The document lifecycle does not allow posting in its current state."""

    code: str = "POSTING_NOT_ALLOWED"

    def __init__(self, document_id: str, messages: tuple[str, ...]):
        self.document_id = document_id
        self.messages = messages
        super().__init__(
            f"Document {document_id} cannot be posted: {'; '.join(messages)}"
        )


# Reversal errors


class ReversalError(LeaseKernelError):
    """Base exception for reversal-related errors."""

    code: str = "REVERSAL_ERROR"


class NotPostedError(ReversalError):
    """There is no live posting to reverse."""

    code: str = "NOT_POSTED"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} has no live postings to reverse")


class PostingAlreadyReversedError(ReversalError):
    """The voucher was already reversed, or is itself a reversal."""

    code: str = "POSTING_ALREADY_REVERSED"

    def __init__(self, voucher_no: str):
        self.voucher_no = voucher_no
        super().__init__(f"Voucher {voucher_no} is reversed or is a reversal")


# Document errors


class DocumentError(LeaseKernelError):
    """Base exception for document lookups and removal."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document id is unknown or the document was deleted."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class DocumentNotDeletableError(DocumentError):
    """Receipt is bounced or posted and must be kept."""

    code: str = "DOCUMENT_NOT_DELETABLE"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Document {document_id} cannot be deleted: {reason}")


class DocumentNotEditableError(DocumentError):
    """Posted receipt whose amounts would no longer match its voucher."""

    code: str = "DOCUMENT_NOT_EDITABLE"

    def __init__(self, document_id: str, operation: str, reason: str):
        self.document_id = document_id
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Document {document_id} cannot be changed ({operation}): {reason}"
        )


class PostingNotFoundError(DocumentError):
    """Posting id is unknown."""

    code: str = "POSTING_NOT_FOUND"

    def __init__(self, posting_id: str):
        self.posting_id = posting_id
        super().__init__(f"Posting not found: {posting_id}")


# Concurrency errors


class ConcurrencyError(LeaseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Document was modified by another writer since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected: int, actual: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"expected version {expected}, found {actual}"
        )


# Immutability errors


class ImmutabilityError(LeaseKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only ledger row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
