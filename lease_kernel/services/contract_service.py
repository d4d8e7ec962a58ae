"""
ContractService -- persisted contract drafts and line-item recalculation.

Responsibility:
    Creates contracts, adds and removes line items, applies single-field
    edits through FieldRecalculator, deletes contracts and derives the
    installment schedule for a contract total.

Architecture position:
    Kernel > Services -- imperative shell over the pure FieldRecalculator
    and ApprovalGate.

Invariants enforced:
    - Every mutation is refused on an Approved contract.
    - After every change the contract is re-checked against the approval
      threshold (NotRequired -> Pending when its grand total crosses it).
    - A rejected edit leaves the stored contract untouched.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from lease_kernel.domain.approval import ApprovalGate
from lease_kernel.domain.calculations import (
    Installment,
    InstallmentFrequency,
    build_installment_schedule,
)
from lease_kernel.domain.documents import Contract, LineField, LineItem, LineItemKind
from lease_kernel.domain.recalculation import FieldRecalculator
from lease_kernel.exceptions import OptimisticLockError, ValidationError
from lease_kernel.logging_config import LogContext, get_logger
from lease_kernel.services.base import BaseService
from lease_kernel.services.document_store import DocumentStore

logger = get_logger("services.contract")


class ContractService(BaseService):
    def __init__(
        self,
        session: Session,
        store: DocumentStore,
        recalculator: FieldRecalculator,
        gate: ApprovalGate,
    ):
        super().__init__(session)
        self._store = store
        self._recalculator = recalculator
        self._gate = gate

    def create_contract(
        self,
        document_no: str,
        customer_ref: str,
        line_items: tuple[LineItem, ...] = (),
        actor_id: str | None = None,
    ) -> Contract:
        if not document_no:
            raise ValidationError("document_no", document_no, "must not be empty")
        contract = Contract(
            document_no=document_no,
            customer_ref=customer_ref,
            line_items=tuple(self._recalculator.refresh(i) for i in line_items),
        )
        contract = replace(
            contract, approval_status=self._gate.initial_status(contract.grand_total)
        )
        with self._atomic():
            contract = self._store.add(contract, actor_id)
        logger.info(
            "contract_created",
            extra={
                "document_id": str(contract.document_id),
                "document_no": document_no,
                "grand_total": str(contract.grand_total),
                "approval_status": contract.approval_status.value,
            },
        )
        return contract

    def get(self, contract_id: UUID) -> Contract:
        return self._store.get_contract(contract_id)

    def add_line_item(
        self,
        contract_id: UUID,
        item: LineItem,
        expected_version: int | None = None,
    ) -> Contract:
        contract = self._load(contract_id, expected_version)
        self._gate.guard(contract, "add_line_item")
        if contract.line(item.line_id) is not None:
            raise ValidationError("line_id", item.line_id, "already on the contract")
        updated = replace(
            contract, line_items=contract.line_items + (self._recalculator.refresh(item),)
        )
        return self._save(updated, "line_item_added", line_id=str(item.line_id))

    def remove_line_item(
        self,
        contract_id: UUID,
        line_id: UUID,
        expected_version: int | None = None,
    ) -> Contract:
        contract = self._load(contract_id, expected_version)
        self._gate.guard(contract, "remove_line_item")
        if contract.line(line_id) is None:
            raise ValidationError("line_id", line_id, "not on the contract")
        updated = replace(
            contract,
            line_items=tuple(i for i in contract.line_items if i.line_id != line_id),
        )
        return self._save(updated, "line_item_removed", line_id=str(line_id))

    def recalculate_line_item(
        self,
        contract_id: UUID,
        line_id: UUID,
        changed_field: LineField | str,
        new_value: Any,
        expected_version: int | None = None,
    ) -> LineItem:
        """Apply one field edit and return the recomputed line item."""
        contract = self._load(contract_id, expected_version)
        with LogContext.bind(document_id=str(contract_id)):
            self._gate.guard(contract, "recalculate_line_item")
            item = contract.line(line_id)
            if item is None:
                raise ValidationError("line_id", line_id, "not on the contract")

            try:
                recalculated = self._recalculator.recalculate(item, changed_field, new_value)
            except ValidationError as e:
                logger.warning(
                    "line_item_recalculation_rejected",
                    extra={"code": e.code, "field": e.field, "reason": e.reason},
                )
                raise

            updated = replace(
                contract,
                line_items=tuple(
                    recalculated if i.line_id == line_id else i for i in contract.line_items
                ),
            )
            self._save(updated, "line_item_recalculated", line_id=str(line_id))
            return recalculated

    def delete_contract(self, contract_id: UUID, expected_version: int | None = None) -> None:
        contract = self._load(contract_id, expected_version)
        self._gate.guard(contract, "delete")
        with self._atomic():
            self._store.soft_delete(contract)
        logger.info("contract_deleted", extra={"document_id": str(contract_id)})

    def installment_schedule(
        self,
        contract_id: UUID,
        count: int | None = None,
        start_date: date | None = None,
        frequency: InstallmentFrequency = InstallmentFrequency.MONTHLY,
    ) -> tuple[Installment, ...]:
        """Split the contract's grand total into equal installments."""
        contract = self._store.get_contract(contract_id)
        if count is None:
            count = max(
                (i.period_multiplier for i in contract.line_items if i.kind == LineItemKind.UNIT_TERM),
                default=1,
            )
        return build_installment_schedule(contract.grand_total, count, start_date, frequency)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, contract_id: UUID, expected_version: int | None) -> Contract:
        contract = self._store.get_contract(contract_id)
        if expected_version is not None and expected_version != contract.version:
            raise OptimisticLockError(
                "Contract", str(contract_id), expected_version, contract.version
            )
        return contract

    def _save(self, contract: Contract, event_name: str, **extra: str) -> Contract:
        contract = self._gate.reassess(contract)
        with self._atomic():
            saved = self._store.save(contract)
        logger.info(
            event_name,
            extra={
                "document_id": str(saved.document_id),
                "grand_total": str(saved.grand_total),
                "approval_status": saved.approval_status.value,
                "version": saved.version,
                **extra,
            },
        )
        return saved
