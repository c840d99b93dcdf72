"""
Configuration tests: defaults, environment overrides, YAML loading and
validation.
"""

import pytest
import yaml

from hurupay.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    RelayConfig,
    get_config,
    get_config_manager,
)
from hurupay.fees import DEFAULT_MINIMUM_FEE, FeeDestination, FeePolicy

CONTRACT = "0x4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e"


class TestDefaults:
    """Values with nothing configured."""

    def test_fee_defaults(self):
        config = RelayConfig()
        assert config.fees.rate_basis_points.get() == 100
        assert config.fees.minimum_fee.get() == DEFAULT_MINIMUM_FEE
        assert config.fee_policy() == FeePolicy(100, minimum_fee=DEFAULT_MINIMUM_FEE)

    def test_domain_defaults(self):
        config = RelayConfig()
        assert config.domain.name.get() == "Hurupay"
        assert config.domain.version.get() == "1"
        assert config.domain.chain_id.get() == 8453

    def test_to_dict(self):
        data = RelayConfig().to_dict()
        assert set(data) == {"fees", "domain", "token", "security", "observability"}
        assert data["fees"]["destination"] == "accrue"

    def test_zero_floor_means_none(self):
        config = RelayConfig.from_dict({"fees": {"minimum_fee": 0}})
        assert config.fee_policy().minimum_fee is None


class TestEnvironment:
    """HURUPAY_* variables take precedence."""

    def test_env_overrides_set_value(self, monkeypatch):
        config = RelayConfig()
        config.fees.rate_basis_points.set(10)
        monkeypatch.setenv("HURUPAY_FEE_RATE_BPS", "25")
        assert config.fees.rate_basis_points.get() == 25

    def test_hex_integer(self, monkeypatch):
        monkeypatch.setenv("HURUPAY_CHAIN_ID", "0x2105")
        assert RelayConfig().domain.chain_id.get() == 8453

    def test_bad_integer(self, monkeypatch):
        monkeypatch.setenv("HURUPAY_MINIMUM_FEE", "lots")
        with pytest.raises(ConfigValidationError):
            RelayConfig().fees.minimum_fee.get()

    def test_destination_from_env(self, monkeypatch):
        monkeypatch.setenv("HURUPAY_FEE_DESTINATION", "immediate")
        assert RelayConfig().fee_policy().destination is FeeDestination.IMMEDIATE

    def test_validate_reports_env_errors(self, monkeypatch):
        monkeypatch.setenv("HURUPAY_FEE_RATE_BPS", "900")
        monkeypatch.setenv("HURUPAY_CHAIN_ID", "abc")
        errors = ConfigManager().validate()
        assert any(e.startswith("fees.rate_basis_points") for e in errors)
        assert any(e.startswith("domain.chain_id") for e in errors)

    def test_defaults_validate_cleanly(self):
        assert ConfigManager().validate() == []


class TestValidation:
    """Setters reject bad values."""

    @pytest.mark.parametrize("path,value", [
        ("fees.rate_basis_points", 501),
        ("fees.rate_basis_points", -1),
        ("fees.minimum_fee", True),
        ("fees.destination", "burn"),
        ("domain.chain_id", 0),
        ("domain.verifying_contract", "0x1234"),
        ("observability.log_format", "xml"),
    ])
    def test_rejected(self, path, value):
        with pytest.raises(ConfigValidationError):
            ConfigManager().set(path, value)

    def test_on_change(self):
        config = RelayConfig()
        changes = []
        config.fees.rate_basis_points.on_change(lambda old, new: changes.append((old, new)))
        config.fees.rate_basis_points.set(50)
        assert changes == [(None, 50)]

    def test_reset(self):
        config = RelayConfig()
        config.fees.rate_basis_points.set(50)
        config.fees.rate_basis_points.reset()
        assert config.fees.rate_basis_points.get() == 100


class TestFileLoading:
    """YAML files and the config manager."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "hurupay.yaml"
        path.write_text(yaml.safe_dump({
            "fees": {"rate_basis_points": 30, "minimum_fee": 0},
            "domain": {"chain_id": 84532, "verifying_contract": CONTRACT},
        }))

        manager = ConfigManager()
        manager.load_from_file(path)

        assert manager.get("fees.rate_basis_points") == 30
        assert manager.config.fee_policy() == FeePolicy(30)
        assert manager.config.domain_context().chain_id == 84532
        assert manager.loaded_paths == [path]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            ConfigManager().load_from_file(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("fees: [unclosed\n")
        with pytest.raises(ConfigError, match="Malformed"):
            ConfigManager().load_from_file(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError, match="mapping"):
            ConfigManager().load_from_file(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        manager = ConfigManager()
        manager.load_from_file(path)
        assert manager.get("fees.rate_basis_points") == 100

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "typo.yaml"
        path.write_text("fees:\n  rate_bps: 30\n")
        with pytest.raises(ConfigError, match="fees.rate_bps"):
            ConfigManager().load_from_file(path)

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError, match="mapping"):
            RelayConfig.from_dict({"fees": 30})

    def test_load_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert ConfigManager().load_defaults() is None

        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "hurupay.yaml").write_text("domain:\n  chain_id: 10\n")
        manager = ConfigManager()
        assert manager.load_defaults() is not None
        assert manager.get("domain.chain_id") == 10

    def test_yaml_roundtrip(self):
        config = RelayConfig()
        config.fees.rate_basis_points.set(42)
        restored = RelayConfig.from_dict(yaml.safe_load(config.to_yaml()))
        assert restored.to_dict() == config.to_dict()


class TestManager:
    """Singleton access and path resolution."""

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()
        assert get_config() is ConfigManager().config

    def test_reset_drops_state(self):
        ConfigManager().set("fees.rate_basis_points", 7)
        ConfigManager.reset()
        assert ConfigManager().get("fees.rate_basis_points") == 100

    def test_invalid_path(self):
        with pytest.raises(ConfigError):
            ConfigManager().get("fees.nope")
        with pytest.raises(ConfigError):
            ConfigManager().set("fees", 1)

    def test_export_schema(self):
        schema = ConfigManager().export_schema()
        rate = schema["properties"]["fees"]["rate_basis_points"]
        assert rate["env_var"] == "HURUPAY_FEE_RATE_BPS"
        assert rate["type"] == "int"


class TestDomainContext:
    """Building the signing domain from configuration."""

    def test_requires_contract(self):
        with pytest.raises(ConfigError):
            RelayConfig().domain_context()

    def test_null_contract_rejected(self):
        with pytest.raises(ConfigError):
            RelayConfig().domain_context("0x" + "00" * 20)

    def test_argument_overrides_configured(self):
        config = RelayConfig.from_dict({"domain": {"verifying_contract": "0x" + "11" * 20}})
        assert config.domain_context(CONTRACT).verifying_contract.lower() == CONTRACT
