"""
Bridges from ``EngineConfig`` to kernel collaborators.

The kernel never imports ``lease_config``; these helpers build the
kernel objects a deployment wires together.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from lease_config.schema import EngineConfig
from lease_kernel.domain.allocation import AllocationEngine
from lease_kernel.domain.approval import ApprovalGate
from lease_kernel.domain.clock import Clock
from lease_kernel.domain.collaborators import (
    ActorAuthorizer,
    InvoiceBalanceLookup,
    RoleAuthorizer,
    TaxRateTable,
)
from lease_kernel.domain.lifecycle import ReceiptLifecycle
from lease_kernel.domain.recalculation import FieldRecalculator
from lease_kernel.services import (
    ApprovalService,
    ContractService,
    DocumentStore,
    PostingLedger,
    ReceiptService,
)


def build_tax_rate_table(config: EngineConfig) -> TaxRateTable:
    return TaxRateTable(config.tax_rate_map)


def build_role_authorizer(config: EngineConfig) -> RoleAuthorizer:
    """Authorizer with the configured grants and no actors yet.

    Callers attach actors with ``RoleAuthorizer.assign``.
    """
    return RoleAuthorizer(config.authorization_map)


def build_approval_gate(
    config: EngineConfig,
    authorizer: ActorAuthorizer,
    clock: Clock | None = None,
) -> ApprovalGate:
    return ApprovalGate(authorizer, threshold=config.approval_threshold, clock=clock)


@dataclass(frozen=True)
class LeaseServices:
    """The service set for one session."""

    store: DocumentStore
    ledger: PostingLedger
    approvals: ApprovalService
    contracts: ContractService
    receipts: ReceiptService


def build_lease_services(
    session: Session,
    config: EngineConfig,
    authorizer: ActorAuthorizer,
    balances: InvoiceBalanceLookup,
    clock: Clock | None = None,
) -> LeaseServices:
    """Wire every kernel service for ``session`` from ``config``."""
    gate = build_approval_gate(config, authorizer, clock)
    store = DocumentStore(session)
    ledger = PostingLedger(
        session,
        store,
        clock=clock,
        voucher_prefix=config.vouchers.prefix,
        reversal_prefix=config.vouchers.reversal_prefix,
        currency=config.currency,
    )
    recalculator = FieldRecalculator(
        build_tax_rate_table(config), default_installments=config.default_installments
    )
    return LeaseServices(
        store=store,
        ledger=ledger,
        approvals=ApprovalService(session, store, gate),
        contracts=ContractService(session, store, recalculator, gate),
        receipts=ReceiptService(
            session,
            store,
            AllocationEngine(balances),
            ReceiptLifecycle(gate),
            ledger,
            debit_account=config.posting_accounts.debit_account,
            credit_account=config.posting_accounts.credit_account,
            clock=clock,
        ),
    )
