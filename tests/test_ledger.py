"""
In-memory stablecoin ledger tests.
"""

import pytest

from hurupay.hardening import UINT256_MAX, InvalidParty, LedgerTransferFailed
from hurupay.ledger import InMemoryToken, TokenRegistry, require_movement

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
OWNER = "0x" + "11" * 20
SPENDER = "0x" + "22" * 20
RECIPIENT = "0x" + "33" * 20
NULL = "0x" + "00" * 20


@pytest.fixture
def usdc():
    token = InMemoryToken(USDC)
    token.mint(OWNER, 1_000)
    return token


class TestBalances:
    """Minting and direct transfers."""

    def test_mint(self, usdc):
        assert usdc.balance_of(OWNER) == 1_000
        assert usdc.total_supply == 1_000

    def test_address_case_insensitive(self, usdc):
        assert usdc.balance_of(OWNER.upper().replace("0X", "0x")) == 1_000

    def test_transfer(self, usdc):
        assert usdc.transfer(OWNER, RECIPIENT, 400)
        assert usdc.balance_of(OWNER) == 600
        assert usdc.balance_of(RECIPIENT) == 400
        assert usdc.total_supply == 1_000

    def test_transfer_over_balance_fails(self, usdc):
        assert not usdc.transfer(OWNER, RECIPIENT, 1_001)
        assert usdc.balance_of(OWNER) == 1_000
        assert usdc.history == []

    def test_transfer_to_null_fails(self, usdc):
        assert not usdc.transfer(OWNER, NULL, 1)

    def test_negative_mint_rejected(self, usdc):
        with pytest.raises(ValueError):
            usdc.mint(OWNER, -1)

    def test_invalid_identity(self, usdc):
        with pytest.raises(InvalidParty):
            usdc.balance_of("not-an-address")


class TestAllowances:
    """transfer_from and approvals."""

    def test_requires_allowance(self, usdc):
        assert not usdc.transfer_from(SPENDER, OWNER, RECIPIENT, 1)

    def test_finite_allowance_decrements(self, usdc):
        usdc.approve(OWNER, SPENDER, 300)
        assert usdc.transfer_from(SPENDER, OWNER, RECIPIENT, 200)
        assert usdc.allowance(OWNER, SPENDER) == 100
        assert not usdc.transfer_from(SPENDER, OWNER, RECIPIENT, 101)

    def test_unlimited_allowance_kept(self, usdc):
        usdc.approve(OWNER, SPENDER)
        assert usdc.transfer_from(SPENDER, OWNER, RECIPIENT, 500)
        assert usdc.allowance(OWNER, SPENDER) == UINT256_MAX

    def test_out_of_range_approval(self, usdc):
        assert not usdc.approve(OWNER, SPENDER, -1)
        assert not usdc.approve(OWNER, SPENDER, UINT256_MAX + 1)

    def test_history_records_spender(self, usdc):
        usdc.approve(OWNER, SPENDER)
        usdc.transfer_from(SPENDER, OWNER, RECIPIENT, 10)
        movement = usdc.history[-1]
        assert movement.spender.lower() == SPENDER
        assert movement.sender.lower() == OWNER
        assert movement.amount == 10


class TestFrozenAccounts:
    """Blocklisted accounts make movements fail."""

    def test_blocked_recipient(self, usdc):
        usdc.block(RECIPIENT)
        assert not usdc.transfer(OWNER, RECIPIENT, 1)
        usdc.unblock(RECIPIENT)
        assert usdc.transfer(OWNER, RECIPIENT, 1)

    def test_blocked_sender(self, usdc):
        usdc.block(OWNER)
        assert not usdc.transfer(OWNER, RECIPIENT, 1)


class TestHooks:
    """Post-movement callbacks."""

    def test_hook_sees_movement(self, usdc):
        seen = []
        usdc.add_hook(seen.append)
        usdc.transfer(OWNER, RECIPIENT, 7)
        assert [m.amount for m in seen] == [7]

    def test_hook_not_called_on_failure(self, usdc):
        seen = []
        usdc.add_hook(seen.append)
        usdc.transfer(OWNER, RECIPIENT, 10_000)
        assert seen == []

    def test_remove_hook(self, usdc):
        seen = []
        usdc.add_hook(seen.append)
        usdc.remove_hook(seen.append)
        usdc.transfer(OWNER, RECIPIENT, 1)
        assert seen == []


class TestClientsAndRegistry:
    """Ledger views bound to one identity."""

    def test_client_transfers_from_bound_account(self, usdc):
        client = usdc.client(OWNER)
        assert client.asset == usdc.address
        assert client.transfer(RECIPIENT, 5)
        assert client.balance_of(RECIPIENT) == 5

    def test_client_transfer_from_uses_bound_spender(self, usdc):
        usdc.approve(OWNER, SPENDER, 50)
        assert usdc.client(SPENDER).transfer_from(OWNER, RECIPIENT, 50)
        assert not usdc.client(RECIPIENT).transfer_from(OWNER, RECIPIENT, 1)

    def test_registry_resolver(self, usdc):
        registry = TokenRegistry()
        registry.register(usdc)
        dai = registry.register(InMemoryToken(DAI, symbol="DAI", decimals=18))
        dai.mint(SPENDER, 9)

        resolve = registry.resolver(SPENDER)
        ledger = resolve(DAI.upper().replace("0X", "0x"))
        assert ledger.asset == dai.address
        assert ledger.transfer(RECIPIENT, 9)
        assert dai.balance_of(RECIPIENT) == 9

    def test_registry_unknown_asset(self):
        assert TokenRegistry().resolver(SPENDER)("0x" + "99" * 20) is None


class TestRequireMovement:
    """Rejected and raising movements surface the same way."""

    def test_moved(self, usdc):
        require_movement(lambda: usdc.transfer(OWNER, RECIPIENT, 10), "credit rejected")
        assert usdc.balance_of(RECIPIENT) == 10

    def test_false_return(self, usdc):
        with pytest.raises(LedgerTransferFailed, match="credit rejected"):
            require_movement(lambda: usdc.transfer(OWNER, RECIPIENT, 5_000), "credit rejected")

    def test_raise_chained(self):
        def revert():
            raise RuntimeError("execution reverted")

        with pytest.raises(LedgerTransferFailed, match="credit rejected") as exc_info:
            require_movement(revert, "credit rejected")
        assert isinstance(exc_info.value.__cause__, RuntimeError)
