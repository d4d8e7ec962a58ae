"""
Tests for the configuration loader (``lease_config``).

Covers:
- Packaged defaults load into a frozen EngineConfig
- Path resolution: explicit path, LEASE_CONFIG_PATH, packaged default
- Validation failures raise ValueError / KeyError
- Checksum stability
- Bridges build working kernel collaborators
"""

import dataclasses
from decimal import Decimal

import pytest
import yaml

from lease_config import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    compute_checksum,
    get_active_config,
    parse_engine_config,
)
from lease_config.bridges import (
    build_approval_gate,
    build_lease_services,
    build_role_authorizer,
    build_tax_rate_table,
)
from lease_kernel.domain.documents import ApprovalStatus


def _minimal(**overrides) -> dict:
    data = {
        "currency": "usd",
        "approval_threshold": "1000",
        "posting_accounts": {"debit_account": "1100", "credit_account": "1200"},
    }
    data.update(overrides)
    return data


class TestPackagedDefaults:
    def test_defaults_load(self):
        config = get_active_config(DEFAULT_CONFIG_PATH)

        assert config.currency == "USD"
        assert config.approval_threshold == Decimal("50000.00")
        assert config.default_installments == 12
        assert config.vouchers.prefix == "RV"
        assert config.vouchers.reversal_prefix == "RRV"
        assert config.posting_accounts.debit_account == "1100-BANK"
        assert config.tax_rate_map["VAT5"] == Decimal("5")
        assert config.authorization_map["reset"] == ("controller",)

    def test_config_is_frozen(self):
        config = get_active_config(DEFAULT_CONFIG_PATH)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.currency = "EUR"

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "engine.yaml"
        path.write_text(yaml.safe_dump(_minimal(currency="EUR")))
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        assert get_active_config().currency == "EUR"

    def test_default_when_env_unset(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        assert get_active_config().currency == "USD"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_trace_logged(self, captured_logs):
        get_active_config(DEFAULT_CONFIG_PATH)
        traces = [r for r in captured_logs() if r["message"] == "LEASE_CONFIG_TRACE"]
        assert traces
        assert len(traces[0]["checksum"]) == 64


class TestParsing:
    def test_minimal_document(self):
        config = parse_engine_config(_minimal())
        assert config.currency == "USD"
        assert config.tax_rates == ()
        assert config.vouchers.prefix == "RV"

    def test_no_threshold(self):
        config = parse_engine_config(_minimal(approval_threshold=None))
        assert config.approval_threshold is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"approval_threshold": "-1"},
            {"approval_threshold": "lots"},
            {"default_installments": 0},
            {"default_installments": "12"},
            {"currency": "DOLLARS"},
            {"tax_rates": {"VAT": "-5"}},
            {"authorizations": {"delete": ["admin"]}},
            {"authorizations": {"approve": "admin"}},
            {"vouchers": {"prefix": "RV", "reversal_prefix": "RV"}},
            {"posting_accounts": {"debit_account": "1100", "credit_account": "1100"}},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            parse_engine_config(_minimal(**overrides))

    def test_missing_posting_accounts(self):
        data = _minimal()
        del data["posting_accounts"]
        with pytest.raises(KeyError):
            parse_engine_config(data)

    def test_yaml_float_read_exactly(self):
        config = parse_engine_config(_minimal(tax_rates={"VAT": 7.7}))
        assert config.tax_rate_map["VAT"] == Decimal("7.7")


class TestChecksum:
    def test_stable(self):
        assert compute_checksum(_minimal()) == compute_checksum(_minimal())

    def test_key_order_irrelevant(self):
        a = {"x": 1, "y": 2}
        b = {"y": 2, "x": 1}
        assert compute_checksum(a) == compute_checksum(b)

    def test_changes_with_content(self):
        assert compute_checksum(_minimal()) != compute_checksum(_minimal(currency="EUR"))


class TestBridges:
    def test_tax_table(self):
        table = build_tax_rate_table(get_active_config(DEFAULT_CONFIG_PATH))
        assert table.get_tax_rate("VAT15") == Decimal("15")

    def test_authorizer_grants(self):
        auth = build_role_authorizer(get_active_config(DEFAULT_CONFIG_PATH))
        auth.assign("ctl", "controller")
        auth.assign("fm", "finance_manager")

        assert auth.is_authorized("ctl", "reset")
        assert not auth.is_authorized("fm", "reset")
        assert auth.is_authorized("fm", "approve")

    def test_gate_threshold(self):
        config = get_active_config(DEFAULT_CONFIG_PATH)
        gate = build_approval_gate(config, build_role_authorizer(config))
        assert gate.initial_status(Decimal("50000")) == ApprovalStatus.PENDING

    def test_ledger_uses_configured_currency(self, session, authorizer, invoice_balances):
        config = dataclasses.replace(get_active_config(DEFAULT_CONFIG_PATH), currency="EUR")
        services = build_lease_services(session, config, authorizer, invoice_balances)
        assert services.ledger.currency == "EUR"
