"""
ORM-Level Immutability Enforcement for ledger postings.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted ledger legs must be tamper-proof.  A posting is never edited and
never deleted; a mistake is corrected by a reversal voucher that leaves a
visible trail.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check the rules:

    session.flush()
         |
         v
    [before_update event] --> _check_posting_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_posting_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

If a check fails the flush is aborted and the database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|---------------------------------------------------------------
PostingModel  | Financial columns frozen from INSERT.  is_reversed may only go
              | False -> True; reversal_reason / reversed_by_voucher may only
              | be filled once, together with that flip.  DELETE always fails.

===============================================================================
USAGE
===============================================================================

Called once at startup:

    from lease_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from lease_kernel.exceptions import ImmutabilityViolationError
from lease_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

FROZEN_POSTING_FIELDS: tuple[str, ...] = (
    "voucher_no",
    "document_id",
    "posting_date",
    "account_ref",
    "debit_amount",
    "credit_amount",
    "narration",
    "reverses_voucher",
    "created_at",
    "created_by",
)

_REVERSAL_MARK_FIELDS: tuple[str, ...] = ("reversal_reason", "reversed_by_voucher")


def _block(target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Posting",
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Posting", entity_id=str(target.id), reason=reason
    )


def _check_posting_immutability(mapper, connection, target):
    """
    Allow only the one-way reversal mark on an existing posting row.

    Logic:
        1. Any change to a frozen field: block.
        2. is_reversed True -> False: block (reversals are permanent).
        3. reversal_reason / reversed_by_voucher overwritten after being
           set: block.
    """
    for field_name in FROZEN_POSTING_FIELDS:
        history = get_history(target, field_name)
        if history.has_changes():
            _block(target, "UPDATE", f"field '{field_name}' is immutable")

    reversed_history = get_history(target, "is_reversed")
    if reversed_history.has_changes() and reversed_history.deleted:
        if reversed_history.deleted[0] and not target.is_reversed:
            _block(target, "UPDATE", "a reversed posting cannot be un-reversed")

    for field_name in _REVERSAL_MARK_FIELDS:
        history = get_history(target, field_name)
        if history.has_changes() and history.deleted and history.deleted[0] is not None:
            _block(target, "UPDATE", f"field '{field_name}' is already set")


def _check_posting_delete(mapper, connection, target):
    _block(target, "DELETE", "postings are append-only")


def register_immutability_listeners() -> None:
    """Register the posting immutability listeners (idempotent)."""
    from lease_kernel.models.posting import PostingModel

    if not event.contains(PostingModel, "before_update", _check_posting_immutability):
        event.listen(PostingModel, "before_update", _check_posting_immutability)
    if not event.contains(PostingModel, "before_delete", _check_posting_delete):
        event.listen(PostingModel, "before_delete", _check_posting_delete)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove the posting immutability listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    from lease_kernel.models.posting import PostingModel

    for name, fn in (
        ("before_update", _check_posting_immutability),
        ("before_delete", _check_posting_delete),
    ):
        if event.contains(PostingModel, name, fn):
            event.remove(PostingModel, name, fn)
