"""
AllocationEngine -- distributes a receipt's net amount across invoices.

Responsibility:
    Proposes how a receipt's ``NetAmount`` is spread over outstanding
    invoices in one of three modes:

    * SINGLE       -- one invoice; amount = min(NetAmount, outstanding).
    * MULTIPLE     -- caller supplies (invoice, amount) pairs; the sum may
                      not exceed NetAmount.
    * PROPORTIONAL -- min(NetAmount, total outstanding) split in proportion
                      to each invoice's outstanding balance; shares are
                      cut to the cent, never exceed a balance, and the
                      leftover cents go to the largest balances.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Outstanding
    balances come from an injected ``InvoiceBalanceLookup``.

Invariants enforced:
    - sum(allocations) <= NetAmount for every accepted proposal.
    - Invoice balances are only read, never changed.

Failure modes:
    - OverAllocationError when MULTIPLE entries exceed NetAmount.  No
      allocation from the rejected set is kept.
    - ValidationError for negative amounts, duplicate invoices, a negative
      NetAmount, or the wrong number of entries for SINGLE mode.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import ROUND_DOWN, Decimal

from lease_kernel.domain.collaborators import InvoiceBalanceLookup
from lease_kernel.domain.documents import Allocation, AllocationMode, Receipt
from lease_kernel.domain.money import CENT, ZERO, round2, to_decimal
from lease_kernel.exceptions import OverAllocationError, ValidationError
from lease_kernel.logging_config import get_logger

logger = get_logger("domain.allocation")

AllocationInput = Allocation | tuple[str, object] | tuple[str, object, str] | str


@dataclass(frozen=True)
class AllocationProposal:
    """Result of ``AllocationEngine.propose``. Nothing is committed yet."""

    mode: AllocationMode
    net_amount: Decimal
    allocations: tuple[Allocation, ...]

    @property
    def total_allocated(self) -> Decimal:
        return round2(sum((a.amount for a in self.allocations), ZERO))

    @property
    def unallocated_amount(self) -> Decimal:
        return max(ZERO, round2(self.net_amount - self.total_allocated))


class AllocationEngine:
    """Proposes receipt-to-invoice allocations."""

    def __init__(self, balances: InvoiceBalanceLookup):
        self._balances = balances

    def propose(
        self,
        receipt: Receipt,
        mode: AllocationMode,
        entries: Iterable[AllocationInput] = (),
    ) -> AllocationProposal:
        mode = AllocationMode(mode)
        net_amount = receipt.net_amount
        if net_amount < ZERO:
            raise ValidationError(
                "net_amount", net_amount, "discount exceeds the amounts received"
            )
        normalized = [_normalize(entry) for entry in entries]
        _reject_duplicates(normalized)

        if mode == AllocationMode.SINGLE:
            allocations = self._single(net_amount, normalized)
        elif mode == AllocationMode.MULTIPLE:
            allocations = self._multiple(net_amount, normalized)
        else:
            allocations = self._proportional(net_amount, normalized)

        proposal = AllocationProposal(
            mode=mode, net_amount=net_amount, allocations=tuple(allocations)
        )
        logger.debug(
            "allocation_proposed",
            extra={
                "document_id": str(receipt.document_id),
                "mode": mode.value,
                "net_amount": str(net_amount),
                "total_allocated": str(proposal.total_allocated),
                "unallocated_amount": str(proposal.unallocated_amount),
            },
        )
        return proposal

    def apply(self, receipt: Receipt, proposal: AllocationProposal) -> Receipt:
        """Return ``receipt`` carrying the proposal's allocations."""
        if proposal.total_allocated > receipt.net_amount:
            raise OverAllocationError(
                net_amount=str(receipt.net_amount),
                requested=str(proposal.total_allocated),
            )
        return replace(
            receipt,
            allocation_mode=proposal.mode,
            allocations=proposal.allocations,
        )

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _single(self, net_amount: Decimal, entries: list[Allocation]) -> list[Allocation]:
        if len(entries) != 1:
            raise ValidationError(
                "entries", len(entries), "single mode takes exactly one invoice"
            )
        invoice_ref = entries[0].invoice_ref
        outstanding = round2(self._balances.get_outstanding_balance(invoice_ref))
        amount = max(ZERO, min(net_amount, outstanding))
        return [Allocation(invoice_ref=invoice_ref, amount=amount, notes=entries[0].notes)]

    def _multiple(self, net_amount: Decimal, entries: list[Allocation]) -> list[Allocation]:
        requested = round2(sum((e.amount for e in entries), ZERO))
        if requested > net_amount:
            logger.warning(
                "allocation_rejected",
                extra={
                    "code": OverAllocationError.code,
                    "net_amount": str(net_amount),
                    "requested": str(requested),
                },
            )
            raise OverAllocationError(net_amount=str(net_amount), requested=str(requested))
        return entries

    def _proportional(self, net_amount: Decimal, entries: list[Allocation]) -> list[Allocation]:
        if not entries:
            return []
        balances = [
            max(ZERO, round2(self._balances.get_outstanding_balance(e.invoice_ref)))
            for e in entries
        ]
        total_outstanding = round2(sum(balances, ZERO))
        if total_outstanding == ZERO:
            return [replace(e, amount=ZERO) for e in entries]

        distributable = min(net_amount, total_outstanding)
        # Shares are truncated to the cent, so none can exceed its balance.
        amounts = [
            (distributable * balance / total_outstanding).quantize(CENT, rounding=ROUND_DOWN)
            for balance in balances
        ]
        remainder = round2(distributable - sum(amounts, ZERO))
        # Leftover cents go to the largest balances first; ties go to the later invoice.
        order = sorted(reversed(range(len(entries))), key=lambda i: -balances[i])
        while remainder > ZERO:
            for index in order:
                if remainder == ZERO:
                    break
                if amounts[index] < balances[index]:
                    amounts[index] += CENT
                    remainder -= CENT
        return [replace(entry, amount=amount) for entry, amount in zip(entries, amounts)]


def _normalize(entry: AllocationInput) -> Allocation:
    if isinstance(entry, Allocation):
        ref, raw_amount, notes = entry.invoice_ref, entry.amount, entry.notes
    elif isinstance(entry, str):
        ref, raw_amount, notes = entry, ZERO, ""
    else:
        ref, raw_amount = entry[0], entry[1]
        notes = entry[2] if len(entry) > 2 else ""
    if not ref:
        raise ValidationError("invoice_ref", ref, "must not be empty")
    try:
        amount = round2(to_decimal(raw_amount))
    except ValueError as e:
        raise ValidationError("amount", raw_amount, "must be a number") from e
    if amount < ZERO:
        raise ValidationError("amount", amount, "must not be negative")
    return Allocation(invoice_ref=ref, amount=amount, notes=notes)


def _reject_duplicates(entries: Sequence[Allocation]) -> None:
    seen: set[str] = set()
    for entry in entries:
        if entry.invoice_ref in seen:
            raise ValidationError(
                "invoice_ref", entry.invoice_ref, "appears more than once"
            )
        seen.add(entry.invoice_ref)
