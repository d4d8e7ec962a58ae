"""
Collaborator contracts (``lease_kernel.domain.collaborators``).

Responsibility
--------------
Protocols for the three lookups the engine consumes but does not own:
tax rates, invoice outstanding balances and actor authorization.  Each
protocol ships with a small in-memory reference implementation that the
services use by default and tests use directly.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Production deployments inject their
own implementations (a tax table service, the receivables subledger, an
identity provider); the engine only depends on the protocol shape.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Protocol, runtime_checkable

from lease_kernel.domain.money import ZERO, to_decimal


class ApprovalAction:
    """Action names checked by ``ActorAuthorizer``."""

    APPROVE = "approve"
    REJECT = "reject"
    RESET = "reset"

    ALL = (APPROVE, REJECT, RESET)


@runtime_checkable
class TaxRateLookup(Protocol):
    def get_tax_rate(self, tax_rate_id: str) -> Decimal:
        """Percentage for ``tax_rate_id`` (5 means 5%)."""
        ...


@runtime_checkable
class InvoiceBalanceLookup(Protocol):
    def get_outstanding_balance(self, invoice_ref: str) -> Decimal:
        ...


@runtime_checkable
class ActorAuthorizer(Protocol):
    def is_authorized(self, actor_id: str, action: str) -> bool:
        ...


class TaxRateTable:
    """Flat tax-rate lookup backed by a mapping of id -> percentage.

    Unknown ids read as 0%, the same as selecting no tax.
    """

    def __init__(self, rates: Mapping[str, Decimal | int | str] | None = None):
        self._rates = {k: to_decimal(v) for k, v in (rates or {}).items()}
        for rate_id, pct in self._rates.items():
            if pct < 0:
                raise ValueError(f"Tax rate {rate_id} must not be negative: {pct}")

    def get_tax_rate(self, tax_rate_id: str) -> Decimal:
        return self._rates.get(tax_rate_id, ZERO)

    def __contains__(self, tax_rate_id: object) -> bool:
        return tax_rate_id in self._rates


class InMemoryInvoiceBalances:
    """Outstanding balances keyed by invoice reference."""

    def __init__(self, balances: Mapping[str, Decimal | int | str] | None = None):
        self._balances = {k: to_decimal(v) for k, v in (balances or {}).items()}

    def get_outstanding_balance(self, invoice_ref: str) -> Decimal:
        return self._balances.get(invoice_ref, ZERO)

    def set_balance(self, invoice_ref: str, amount: Decimal | int | str) -> None:
        self._balances[invoice_ref] = to_decimal(amount)


class RoleAuthorizer:
    """
    Role based authorization.

    ``grants`` maps an action to the roles allowed to perform it;
    ``actor_roles`` maps an actor id to the roles it holds.  An actor is
    authorized when the two sets intersect.
    """

    def __init__(
        self,
        grants: Mapping[str, Iterable[str]],
        actor_roles: Mapping[str, Iterable[str]] | None = None,
    ):
        self._grants = {action: frozenset(roles) for action, roles in grants.items()}
        self._actor_roles: dict[str, frozenset[str]] = {
            actor: frozenset(roles) for actor, roles in (actor_roles or {}).items()
        }

    def assign(self, actor_id: str, *roles: str) -> None:
        self._actor_roles[actor_id] = self._actor_roles.get(actor_id, frozenset()) | set(roles)

    def is_authorized(self, actor_id: str, action: str) -> bool:
        allowed = self._grants.get(action, frozenset())
        return bool(allowed & self._actor_roles.get(actor_id, frozenset()))
