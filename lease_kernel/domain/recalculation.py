"""
FieldRecalculator -- dependency-graph recompute for contract line items.

Responsibility:
    Given a ``LineItem`` and the single field the user just changed, apply
    the edit and recompute every dependent field in a fixed order, then
    return a new ``LineItem``.  The input value is never modified.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Tax percentages
    come from an injected ``TaxRateLookup``.

Invariants enforced:
    - total_amount == round2(derived_annual_amount + tax_amount)
    - tax_amount == round2(derived_annual_amount * tax_percentage / 100)
      when a tax is selected, else tax_percentage == tax_amount == 0
    - Recompute steps only flow downstream of the edited field, so no step
      can retrigger the field that started the pass.

Failure modes:
    - ValidationError for negative amounts, non-positive installment counts,
      inverted date ranges, or a field that does not apply to the line kind.
      Nothing is overwritten when this is raised.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import date
from typing import Any

from lease_kernel.domain.calculations import duration_between
from lease_kernel.domain.collaborators import TaxRateLookup
from lease_kernel.domain.documents import LineField, LineItem, LineItemKind
from lease_kernel.domain.money import ZERO, percentage_of, round2, to_decimal
from lease_kernel.exceptions import ValidationError
from lease_kernel.logging_config import get_logger

logger = get_logger("domain.recalculation")

DEFAULT_INSTALLMENTS = 12


# Downstream steps per edited field, in execution order.
RECOMPUTE_GRAPH: dict[LineField, tuple[str, ...]] = {
    LineField.BASE_AMOUNT: ("annual", "tax", "total"),
    LineField.PERIOD_MULTIPLIER: ("annual", "tax", "total"),
    LineField.DERIVED_ANNUAL_AMOUNT: ("tax", "total"),
    LineField.AMOUNT: ("tax", "total"),
    LineField.TAX_RATE_ID: ("tax_rate", "tax", "total"),
    LineField.FROM_DATE: ("duration",),
    LineField.TO_DATE: ("duration",),
}

_STEP_ORDER = ("annual", "tax_rate", "tax", "total", "duration")


class FieldRecalculator:
    """Applies one field edit and its downstream recomputation."""

    def __init__(
        self,
        tax_rates: TaxRateLookup,
        default_installments: int = DEFAULT_INSTALLMENTS,
    ):
        if default_installments <= 0:
            raise ValueError("default_installments must be positive")
        self._tax_rates = tax_rates
        self._default_installments = default_installments
        self._steps: dict[str, Callable[[dict[str, Any]], None]] = {
            "annual": self._derive_annual,
            "tax_rate": self._lookup_tax_rate,
            "tax": self._derive_tax,
            "total": self._derive_total,
            "duration": self._derive_duration,
        }

    def recalculate(self, item: LineItem, changed: LineField, value: Any) -> LineItem:
        """Return ``item`` with ``changed`` set to ``value`` and dependents recomputed."""
        changed = LineField(changed)
        fields = self._apply_edit(item, changed, value)
        for step in RECOMPUTE_GRAPH[changed]:
            self._steps[step](fields)
        result = replace(item, **fields)
        logger.debug(
            "line_item_recalculated",
            extra={
                "line_id": str(item.line_id),
                "changed_field": changed.value,
                "total_amount": str(result.total_amount),
            },
        )
        return result

    def refresh(self, item: LineItem) -> LineItem:
        """
        Recompute every derived field from the line's raw inputs.

        Used when a line is added with its values already filled in.
        """
        fields = _snapshot(item)
        fields["base_amount"] = _non_negative("base_amount", item.base_amount)
        if item.kind == LineItemKind.CHARGE:
            fields["period_multiplier"] = 1
        else:
            fields["period_multiplier"] = self._installments(item.period_multiplier)
        for step in ("annual", "tax_rate", "tax", "total"):
            if step == "annual" and item.kind == LineItemKind.CHARGE:
                fields["derived_annual_amount"] = round2(fields["base_amount"])
                continue
            self._steps[step](fields)
        if item.kind == LineItemKind.UNIT_TERM:
            self._derive_duration(fields)
        return replace(item, **fields)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def _apply_edit(self, item: LineItem, changed: LineField, value: Any) -> dict[str, Any]:
        fields = _snapshot(item)

        if changed == LineField.BASE_AMOUNT:
            fields["base_amount"] = _non_negative("base_amount", value)
        elif changed == LineField.PERIOD_MULTIPLIER:
            if item.kind == LineItemKind.CHARGE:
                raise ValidationError(
                    "period_multiplier", value, "charge lines are not multiplied"
                )
            fields["period_multiplier"] = self._installments(value)
        elif changed == LineField.DERIVED_ANNUAL_AMOUNT:
            fields["derived_annual_amount"] = _non_negative("derived_annual_amount", value)
        elif changed == LineField.AMOUNT:
            if item.kind != LineItemKind.CHARGE:
                raise ValidationError("amount", value, "only charge lines carry a flat amount")
            amount = _non_negative("amount", value)
            fields["base_amount"] = amount
            fields["derived_annual_amount"] = amount
        elif changed == LineField.TAX_RATE_ID:
            fields["tax_rate_id"] = value if value not in (None, "") else None
        elif changed in (LineField.FROM_DATE, LineField.TO_DATE):
            if item.kind != LineItemKind.UNIT_TERM:
                raise ValidationError(changed.value, value, "only unit terms carry a date range")
            if value is not None and not isinstance(value, date):
                raise ValidationError(changed.value, value, "must be a date")
            fields[changed.value] = value
        return fields

    def _installments(self, value: Any) -> int:
        if value is None or value == "":
            return self._default_installments
        try:
            count = int(value)
        except (TypeError, ValueError) as e:
            raise ValidationError("period_multiplier", value, "must be an integer") from e
        if count <= 0 or count != to_decimal(value):
            raise ValidationError("period_multiplier", value, "must be a positive integer")
        return count

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _derive_annual(self, fields: dict[str, Any]) -> None:
        fields["derived_annual_amount"] = round2(
            fields["base_amount"] * fields["period_multiplier"]
        )

    def _lookup_tax_rate(self, fields: dict[str, Any]) -> None:
        rate_id = fields["tax_rate_id"]
        if rate_id is None:
            fields["tax_percentage"] = ZERO
        else:
            fields["tax_percentage"] = to_decimal(self._tax_rates.get_tax_rate(rate_id))

    def _derive_tax(self, fields: dict[str, Any]) -> None:
        if fields["tax_rate_id"] is None:
            fields["tax_percentage"] = ZERO
            fields["tax_amount"] = ZERO
            return
        fields["tax_amount"] = percentage_of(
            fields["derived_annual_amount"], fields["tax_percentage"]
        )

    def _derive_total(self, fields: dict[str, Any]) -> None:
        fields["total_amount"] = round2(
            fields["derived_annual_amount"] + fields["tax_amount"]
        )

    def _derive_duration(self, fields: dict[str, Any]) -> None:
        from_date, to_date = fields["from_date"], fields["to_date"]
        if from_date is None or to_date is None:
            fields["duration_days"] = 0
            fields["duration_months"] = 0
            fields["duration_years"] = 0
            return
        duration = duration_between(from_date, to_date)
        fields["duration_days"] = duration.days
        fields["duration_months"] = duration.months
        fields["duration_years"] = duration.years


def _snapshot(item: LineItem) -> dict[str, Any]:
    return {
        "base_amount": item.base_amount,
        "period_multiplier": item.period_multiplier,
        "derived_annual_amount": item.derived_annual_amount,
        "tax_rate_id": item.tax_rate_id,
        "tax_percentage": item.tax_percentage,
        "tax_amount": item.tax_amount,
        "total_amount": item.total_amount,
        "from_date": item.from_date,
        "to_date": item.to_date,
        "duration_days": item.duration_days,
        "duration_months": item.duration_months,
        "duration_years": item.duration_years,
    }


def _non_negative(field_name: str, value: Any) -> Any:
    try:
        amount = round2(value)
    except ValueError as e:
        raise ValidationError(field_name, value, "must be a number") from e
    if amount < ZERO:
        raise ValidationError(field_name, value, "must not be negative")
    return amount
