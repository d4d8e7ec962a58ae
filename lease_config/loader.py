"""
Configuration Loader (``lease_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into the frozen ``EngineConfig``.  Runtime
code obtains configuration through ``lease_config.get_active_config()``
only.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Amounts and percentages are read as ``Decimal`` through ``str`` so YAML
  floats never leak binary noise into money.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from lease_config.schema import EngineConfig, PostingAccounts, VoucherNumbering

KNOWN_ACTIONS = frozenset({"approve", "reject", "reset"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _decimal(name: str, raw: Any) -> Decimal:
    if isinstance(raw, bool):
        raise ValueError(f"{name} must be a number, got {raw!r}")
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """Parse the raw YAML mapping into ``EngineConfig``."""
    currency = str(data.get("currency", "USD")).upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValueError(f"currency must be a 3-letter ISO code, got {currency!r}")

    threshold = None
    if data.get("approval_threshold") is not None:
        threshold = _decimal("approval_threshold", data["approval_threshold"])
        if threshold < 0:
            raise ValueError(f"approval_threshold must not be negative: {threshold}")

    installments = data.get("default_installments", 12)
    if isinstance(installments, bool) or not isinstance(installments, int) or installments <= 0:
        raise ValueError(f"default_installments must be a positive integer, got {installments!r}")

    vouchers_raw = data.get("vouchers") or {}
    vouchers = VoucherNumbering(
        prefix=str(vouchers_raw.get("prefix", "RV")),
        reversal_prefix=str(vouchers_raw.get("reversal_prefix", "RRV")),
    )
    if not vouchers.prefix or not vouchers.reversal_prefix:
        raise ValueError("voucher prefixes must not be empty")
    if vouchers.prefix == vouchers.reversal_prefix:
        raise ValueError("posting and reversal voucher prefixes must differ")

    accounts_raw = data["posting_accounts"]
    accounts = PostingAccounts(
        debit_account=str(accounts_raw["debit_account"]),
        credit_account=str(accounts_raw["credit_account"]),
    )
    if accounts.debit_account == accounts.credit_account:
        raise ValueError("debit_account and credit_account must differ")

    tax_rates: list[tuple[str, Decimal]] = []
    for rate_id, pct in sorted((data.get("tax_rates") or {}).items()):
        value = _decimal(f"tax_rates.{rate_id}", pct)
        if value < 0:
            raise ValueError(f"tax_rates.{rate_id} must not be negative: {value}")
        tax_rates.append((str(rate_id), value))

    authorizations: list[tuple[str, tuple[str, ...]]] = []
    for action, roles in sorted((data.get("authorizations") or {}).items()):
        if action not in KNOWN_ACTIONS:
            raise ValueError(f"unknown authorization action {action!r}")
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise ValueError(f"authorizations.{action} must be a list of role names")
        authorizations.append((action, tuple(roles)))

    return EngineConfig(
        currency=currency,
        approval_threshold=threshold,
        default_installments=installments,
        vouchers=vouchers,
        posting_accounts=accounts,
        tax_rates=tuple(tax_rates),
        authorizations=tuple(authorizations),
        checksum=compute_checksum(data),
    )


def load_engine_config(path: Path) -> EngineConfig:
    return parse_engine_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
