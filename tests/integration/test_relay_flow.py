"""
Relay Integration Flow

End-to-end runs through configuration, assembly, relayed transfers and
treasury operations, with several relays side by side.
"""

import json
import logging

import pytest
import yaml

import hurupay
from hurupay.config import ConfigError, ConfigManager, RelayConfig
from hurupay.engine import AuthorizationRequest
from hurupay.events import (
    AdminTransferCompleted,
    AdminTransferInitiated,
    FeesWithdrawn,
    FeeUpdated,
    Transfer,
)
from hurupay.hardening import InvalidSignature, RequestAlreadyProcessed
from hurupay.observability import StructuredHandler
from hurupay.relay import create_in_memory_relay, create_relay

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
RELAY_ADDRESS = "0x4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e"
OTHER_RELAY = "0x5f5f5f5f5f5f5f5f5f5f5f5f5f5f5f5f5f5f5f5f"
UNITS = 10 ** 6


def _authorize(relay, holder, recipient, amount, request_id, deadline):
    return AuthorizationRequest(
        request_id=request_id,
        sender=holder.address,
        recipient=recipient,
        amount=amount,
        deadline=deadline,
    ).signed(relay.domain, holder.key)


@pytest.fixture
def deployment_file(tmp_path):
    path = tmp_path / "hurupay.yaml"
    path.write_text(yaml.safe_dump({
        "fees": {"rate_basis_points": 100, "minimum_fee": 200_000, "destination": "accrue"},
        "domain": {"chain_id": 8453, "verifying_contract": RELAY_ADDRESS},
        "token": {"stablecoin": USDC, "decimals": 6},
    }))
    return path


class TestConfiguredDeployment:
    """A relay assembled from a deployment file."""

    def test_full_lifecycle(self, deployment_file, token, tokens, parties, clock):
        manager = ConfigManager()
        manager.load_from_file(deployment_file)
        relay = create_in_memory_relay(
            token, parties.admin.address, RELAY_ADDRESS, manager.config,
            tokens=tokens, clock=clock,
        )
        deadline = clock.now + 600

        # 1% above the floor, the floor below it
        first = relay.engine.execute_authorized(
            _authorize(relay, parties.alice, parties.bob.address, 100 * UNITS, b"\x01" * 32, deadline)
        )
        second = relay.engine.execute_authorized(
            _authorize(relay, parties.alice, parties.carol.address, 10 * UNITS, b"\x02" * 32, deadline)
        )
        assert (first.fee, second.fee) == (1 * UNITS, 200_000)
        assert token.balance_of(parties.carol.address) == 9_800_000
        assert relay.accumulated_fees == 1_200_000

        relay.registry.transfer_admin(parties.admin.address, parties.new_admin.address)
        relay.registry.accept_admin(parties.new_admin.address)
        assert relay.registry.withdraw_accumulated_fees(parties.new_admin.address) == 1_200_000
        relay.registry.update_fee_rate(parties.new_admin.address, 25)

        assert token.balance_of(parties.new_admin.address) == 1_200_000
        assert token.balance_of(relay.holding_address) == 0
        assert [type(e) for e in relay.events.events()] == [
            Transfer,
            Transfer,
            AdminTransferInitiated,
            AdminTransferCompleted,
            FeesWithdrawn,
            FeeUpdated,
        ]

    def test_stablecoin_mismatch(self, deployment_file, token, parties):
        config = RelayConfig.from_dict(yaml.safe_load(deployment_file.read_text()))
        config.token.stablecoin.set(DAI)
        with pytest.raises(ConfigError, match="stablecoin"):
            create_in_memory_relay(token, parties.admin.address, RELAY_ADDRESS, config)

    def test_missing_holding_address(self, token, parties):
        with pytest.raises(ConfigError):
            create_relay(token.client(RELAY_ADDRESS), parties.admin.address)

    def test_environment_deployment(self, monkeypatch, token, parties, clock):
        monkeypatch.setenv("HURUPAY_VERIFYING_CONTRACT", RELAY_ADDRESS)
        monkeypatch.setenv("HURUPAY_FEE_RATE_BPS", "50")
        monkeypatch.setenv("HURUPAY_MINIMUM_FEE", "0")

        relay = create_relay(token.client(RELAY_ADDRESS), parties.admin.address, clock=clock)

        assert relay.holding_address.lower() == RELAY_ADDRESS
        assert relay.registry.policy.minimum_fee is None
        result = relay.engine.execute_authorized(
            _authorize(relay, parties.alice, parties.bob.address, 10 * UNITS, b"\x03" * 32, clock.now + 60)
        )
        assert result.fee == 50_000

    def test_structured_logs_on_assembly(self, monkeypatch, capsys, token, parties):
        monkeypatch.setenv("HURUPAY_LOG_FORMAT", "json")
        root = logging.getLogger("hurupay")
        try:
            create_in_memory_relay(
                token, parties.admin.address, RELAY_ADDRESS, configure_logs=True
            )
            lines = [json.loads(line) for line in capsys.readouterr().err.splitlines()]
        finally:
            for handler in list(root.handlers):
                if isinstance(handler, StructuredHandler):
                    root.removeHandler(handler)
            root.setLevel(logging.NOTSET)

        [assembled] = [e for e in lines if e["message"] == "relay assembled"]
        assert assembled["layer"] == "engine"
        assert assembled["context"]["fee_policy"]["rate_basis_points"] == 100


class TestPersistentReplayProtection:
    """Consumed ids outlive the process that consumed them."""

    def test_journal_shared_across_restart(self, tmp_path, token, parties, clock):
        config = RelayConfig.from_dict({
            "security": {"replay_journal_path": str(tmp_path / "processed.journal")},
        })
        before = create_in_memory_relay(
            token, parties.admin.address, RELAY_ADDRESS, config, clock=clock
        )
        request = _authorize(before, parties.alice, parties.bob.address, 10 * UNITS, b"\x04" * 32, clock.now + 60)
        before.engine.execute_authorized(request)

        after = create_in_memory_relay(
            token, parties.admin.address, RELAY_ADDRESS, config, clock=clock
        )
        assert after.engine.is_processed(request.request_id)
        with pytest.raises(RequestAlreadyProcessed):
            after.engine.execute_authorized(request)
        assert token.balance_of(parties.bob.address) == 1_009_800_000


class TestIndependentRelays:
    """Relays in one process share nothing."""

    def test_signatures_do_not_cross_deployments(self, token, tokens, parties, clock):
        home = create_in_memory_relay(token, parties.admin.address, RELAY_ADDRESS, tokens=tokens, clock=clock)
        away = create_in_memory_relay(token, parties.mallory.address, OTHER_RELAY, tokens=tokens, clock=clock)
        request = _authorize(home, parties.alice, parties.bob.address, 5 * UNITS, b"\x05" * 32, clock.now + 60)

        with pytest.raises(InvalidSignature):
            away.engine.execute_authorized(request)
        home.engine.execute_authorized(request)

        assert not away.engine.is_processed(request.request_id)
        assert away.accumulated_fees == 0
        assert home.admin != away.admin

    def test_policy_changes_are_local(self, token, parties):
        home = create_in_memory_relay(token, parties.admin.address, RELAY_ADDRESS)
        away = create_in_memory_relay(token, parties.admin.address, OTHER_RELAY)
        home.registry.update_fee_rate(parties.admin.address, 0)
        assert away.registry.policy.rate_basis_points == 100


class TestPackageExports:
    """Top-level lazy exports."""

    def test_exports_resolve(self):
        from hurupay import relay as relay_module

        assert hurupay.create_in_memory_relay is relay_module.create_in_memory_relay
        assert hurupay.FeePolicy(10).rate_basis_points == 10
        for name in hurupay.__all__:
            assert getattr(hurupay, name) is not None

    def test_unknown_export(self):
        with pytest.raises(AttributeError):
            hurupay.NotAThing
