"""
Hurupay Ledger Collaborator

The external value ledger the relay moves funds on. The relay only ever talks
to it through the ``TokenLedger`` protocol, a client bound to one acting
identity (the relay's own holding address), mirroring an ERC-20 token seen
from a contract:

    balance_of(account) -> int
    transfer(recipient, amount) -> bool                 # from the bound identity
    transfer_from(owner, recipient, amount) -> bool     # needs owner's allowance

``InMemoryToken`` is a complete in-process stablecoin used by tests and local
simulation: balances, allowances, minting, and a recipient blocklist which
makes movements fail the way a frozen account does on a real stablecoin.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple

from hurupay.hardening import (
    UINT256_MAX,
    LedgerTransferFailed,
    is_null_identity,
    normalize_identity,
)

logger = logging.getLogger(__name__)


# =============================================================================
# LEDGER PROTOCOL
# =============================================================================

class TokenLedger(Protocol):
    """A token ledger as seen by one acting identity."""

    @property
    def asset(self) -> str:
        """Identity of the token itself."""
        ...

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, recipient: str, amount: int) -> bool:
        ...

    def transfer_from(self, owner: str, recipient: str, amount: int) -> bool:
        ...


def require_movement(move: Callable[[], bool], failure: str) -> None:
    """
    Run one ledger movement. A False return and a raised exception (a
    reverted call on a real chain) both mean nothing moved and surface as
    LedgerTransferFailed.
    """
    try:
        moved = move()
    except Exception as e:
        raise LedgerTransferFailed(failure) from e
    if not moved:
        raise LedgerTransferFailed(failure)


# =============================================================================
# IN-MEMORY TOKEN
# =============================================================================

@dataclass(frozen=True)
class TokenMovement:
    """One successful balance movement."""
    spender: str
    sender: str
    recipient: str
    amount: int


MovementHook = Callable[[TokenMovement], None]


class InMemoryToken:
    """
    In-process ERC-20 style token.

    Failed movements return False and leave balances untouched. Hooks run
    after a successful movement, on the caller's thread, which lets tests
    model tokens that call back into the relay.
    """

    def __init__(self, address: str, symbol: str = "USDC", decimals: int = 6):
        self.address = normalize_identity(address, "token")
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._blocked: Set[str] = set()
        self._hooks: List[MovementHook] = []
        self._history: List[TokenMovement] = []
        self._lock = threading.RLock()

    # -- administration ------------------------------------------------------

    def mint(self, account: str, amount: int) -> None:
        account = normalize_identity(account, "account")
        if amount < 0:
            raise ValueError(f"cannot mint a negative amount: {amount}")
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount

    def block(self, account: str) -> None:
        """Freeze ``account``: movements to or from it fail."""
        with self._lock:
            self._blocked.add(normalize_identity(account, "account"))

    def unblock(self, account: str) -> None:
        with self._lock:
            self._blocked.discard(normalize_identity(account, "account"))

    def add_hook(self, hook: MovementHook) -> None:
        self._hooks.append(hook)

    def remove_hook(self, hook: MovementHook) -> None:
        self._hooks.remove(hook)

    # -- reads ---------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(normalize_identity(account, "account"), 0)

    def allowance(self, owner: str, spender: str) -> int:
        key = (normalize_identity(owner, "owner"), normalize_identity(spender, "spender"))
        with self._lock:
            return self._allowances.get(key, 0)

    @property
    def history(self) -> List[TokenMovement]:
        with self._lock:
            return list(self._history)

    @property
    def total_supply(self) -> int:
        with self._lock:
            return sum(self._balances.values())

    # -- writes --------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int = UINT256_MAX) -> bool:
        key = (normalize_identity(owner, "owner"), normalize_identity(spender, "spender"))
        if amount < 0 or amount > UINT256_MAX:
            return False
        with self._lock:
            self._allowances[key] = amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        return self._move(sender, sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        return self._move(spender, owner, recipient, amount)

    def _move(self, spender: str, sender: str, recipient: str, amount: int) -> bool:
        spender = normalize_identity(spender, "spender")
        sender = normalize_identity(sender, "sender")
        recipient = normalize_identity(recipient, "recipient")

        with self._lock:
            if amount < 0 or is_null_identity(recipient):
                return False
            if sender in self._blocked or recipient in self._blocked:
                logger.debug("movement rejected: frozen account")
                return False
            if self._balances.get(sender, 0) < amount:
                return False
            if spender != sender:
                allowed = self._allowances.get((sender, spender), 0)
                if allowed < amount:
                    return False
                if allowed != UINT256_MAX:
                    self._allowances[(sender, spender)] = allowed - amount

            self._balances[sender] -= amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
            movement = TokenMovement(spender, sender, recipient, amount)
            self._history.append(movement)

        for hook in list(self._hooks):
            hook(movement)
        return True

    def client(self, account: str) -> "TokenClient":
        """A ``TokenLedger`` acting as ``account``."""
        return TokenClient(self, account)


class TokenClient:
    """``TokenLedger`` view of an InMemoryToken bound to one identity."""

    def __init__(self, token: InMemoryToken, account: str):
        self._token = token
        self.account = normalize_identity(account, "account")

    @property
    def asset(self) -> str:
        return self._token.address

    def balance_of(self, account: str) -> int:
        return self._token.balance_of(account)

    def transfer(self, recipient: str, amount: int) -> bool:
        return self._token.transfer(self.account, recipient, amount)

    def transfer_from(self, owner: str, recipient: str, amount: int) -> bool:
        return self._token.transfer_from(self.account, owner, recipient, amount)


class TokenRegistry:
    """
    Resolves asset identities to ledgers bound to one holder.

    The relay uses it to reach tokens other than the managed stablecoin when
    recovering assets sent to its holding address by mistake.
    """

    def __init__(self):
        self._tokens: Dict[str, InMemoryToken] = {}
        self._lock = threading.Lock()

    def register(self, token: InMemoryToken) -> InMemoryToken:
        with self._lock:
            self._tokens[token.address] = token
        return token

    def get(self, asset: str) -> Optional[InMemoryToken]:
        with self._lock:
            return self._tokens.get(normalize_identity(asset, "asset"))

    def resolver(self, holder: str) -> Callable[[str], Optional[TokenLedger]]:
        """Build an ``asset -> TokenLedger`` resolver acting as ``holder``."""
        def resolve(asset: str) -> Optional[TokenLedger]:
            token = self.get(asset)
            return token.client(holder) if token is not None else None
        return resolve
