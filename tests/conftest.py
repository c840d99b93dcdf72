import os
import pathlib
import sys
from types import SimpleNamespace

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import hurupay`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from eth_account import Account  # noqa: E402

from hurupay.config import ConfigManager  # noqa: E402
from hurupay.engine import AuthorizationRequest  # noqa: E402
from hurupay.fees import FeePolicy  # noqa: E402
from hurupay.ledger import InMemoryToken, TokenClient, TokenRegistry  # noqa: E402
from hurupay.relay import create_in_memory_relay, create_relay  # noqa: E402


USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
RELAY_ADDRESS = "0x4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e4e"
START_TIME = 1_750_000_000
UNITS = 10 ** 6


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless HURUPAY_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('HURUPAY_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set HURUPAY_RUN_SLOW=1 to enable'))


# =============================================================================
# ENVIRONMENT ISOLATION
# =============================================================================

@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """No HURUPAY_* variable from the outer environment leaks into a test."""
    for name in list(os.environ):
        if name.startswith("HURUPAY_") and name != "HURUPAY_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# =============================================================================
# PARTIES AND CLOCK
# =============================================================================

class FakeClock:
    """Settable unix clock."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def parties():
    """Deterministic accounts; keys are fixed so failures are reproducible."""
    return SimpleNamespace(
        admin=Account.from_key("0x" + "a1" * 32),
        alice=Account.from_key("0x" + "b2" * 32),
        bob=Account.from_key("0x" + "c3" * 32),
        carol=Account.from_key("0x" + "d4" * 32),
        mallory=Account.from_key("0x" + "e5" * 32),
        new_admin=Account.from_key("0x" + "f6" * 32),
    )


# =============================================================================
# LEDGER AND RELAY
# =============================================================================

@pytest.fixture
def token(parties):
    """Mock USDC with alice and bob funded; alice has approved the relay."""
    usdc = InMemoryToken(USDC, symbol="USDC", decimals=6)
    usdc.mint(parties.alice.address, 1_000 * UNITS)
    usdc.mint(parties.bob.address, 1_000 * UNITS)
    usdc.approve(parties.alice.address, RELAY_ADDRESS)
    return usdc


@pytest.fixture
def tokens():
    return TokenRegistry()


@pytest.fixture
def fee_policy():
    """1% with no floor."""
    return FeePolicy(rate_basis_points=100)


@pytest.fixture
def make_relay(token, tokens, parties, clock):
    def build(policy=None, config=None, **kwargs):
        return create_in_memory_relay(
            token,
            parties.admin.address,
            RELAY_ADDRESS,
            config,
            tokens=tokens,
            policy=policy or FeePolicy(rate_basis_points=100),
            clock=clock,
            **kwargs,
        )
    return build


@pytest.fixture
def relay(make_relay, fee_policy):
    return make_relay(policy=fee_policy)


class RevertingClient(TokenClient):
    """Token client whose selected calls raise, the way a reverted chain call does."""

    def __init__(self, token, account):
        super().__init__(token, account)
        self.revert_debits = False
        self.reverted_recipients = set()

    def revert_credits_to(self, *accounts):
        self.reverted_recipients.update(a.lower() for a in accounts)

    def transfer(self, recipient, amount):
        if recipient.lower() in self.reverted_recipients:
            raise RuntimeError("execution reverted")
        return super().transfer(recipient, amount)

    def transfer_from(self, owner, recipient, amount):
        if self.revert_debits:
            raise RuntimeError("execution reverted")
        return super().transfer_from(owner, recipient, amount)


@pytest.fixture
def reverting_ledger(token):
    return RevertingClient(token, RELAY_ADDRESS)


@pytest.fixture
def make_reverting_relay(reverting_ledger, parties, clock):
    """A relay whose ledger raises instead of returning False."""
    def build(policy=None):
        return create_relay(
            reverting_ledger,
            parties.admin.address,
            RELAY_ADDRESS,
            policy=policy or FeePolicy(rate_basis_points=100),
            clock=clock,
        )
    return build


@pytest.fixture
def request_ids():
    """Fresh, distinct 32-byte request ids."""
    counter = iter(range(1, 1_000_000))

    def next_id() -> bytes:
        return next(counter).to_bytes(32, "big")
    return next_id


@pytest.fixture
def sign_request(relay, parties, clock, request_ids):
    """
    Build an authorization signed by ``signer`` (alice by default) for the
    relay's domain unless another domain is given.
    """
    def build(
        amount: int = 100 * UNITS,
        *,
        sender=None,
        recipient=None,
        signer=None,
        request_id: bytes = None,
        deadline: int = None,
        domain=None,
    ) -> AuthorizationRequest:
        sender_account = sender or parties.alice
        request = AuthorizationRequest(
            request_id=request_id or request_ids(),
            sender=sender_account.address,
            recipient=recipient or parties.bob.address,
            amount=amount,
            deadline=deadline if deadline is not None else clock.now + 600,
        )
        signing_key = (signer or sender_account).key
        return request.signed(domain or relay.domain, signing_key)
    return build
