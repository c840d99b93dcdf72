"""
Hurupay Transfer Authorization Engine

Executes stablecoin transfers that a holder authorized off-channel with a
structured-data signature and a relayer submitted on their behalf.

    AuthorizationRequest
            │
            ▼
    ┌───────────────────────────────────────────────────────────────┐
    │ 1 parties non-null ─▶ 2 amount > 0 ─▶ 3 now <= deadline        │
    │ 4 id not consumed  ─▶ 5 signer == sender (consume id)          │
    │ 6 sender balance >= amount                                     │
    └──────────────────────────────┬────────────────────────────────┘
                                   ▼
    ┌───────────────────────────────────────────────────────────────┐
    │ fee = max(amount * bp / 10000, floor)                         │
    │ transfer_from(sender ─▶ relay, amount)                        │
    │ transfer(relay ─▶ recipient, amount - fee)                    │
    │ fee: accrue in AccumulatedFees, or pay the admin immediately  │
    │ emit Transfer{sender, recipient, net_amount, fee}             │
    └───────────────────────────────────────────────────────────────┘

Every call is all-or-nothing: a failure after the request id was consumed
releases the id again and compensates any ledger movement already made.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Union

from hurupay.admin import AdminRegistry
from hurupay.events import EventBus, Transfer, WithdrawalProcessed
from hurupay.fees import FeeCalculator, FeeDestination, FeePool
from hurupay.hardening import (
    InsufficientBalance,
    InvalidAmount,
    InvalidParty,
    LedgerTransferFailed,
    RelayError,
    RequestExpired,
    Validators,
    is_null_identity,
    normalize_identity,
)
from hurupay.ledger import TokenLedger, require_movement
from hurupay.observability import (
    RelayLayer,
    correlation_scope,
    get_logger,
    timed_operation,
)
from hurupay.schema import AUTHORIZATION_REQUEST_SCHEMA, require_valid
from hurupay.security import ReplayGuard
from hurupay.signing import DomainContext, SignatureVerifier, sign_authorization

_log = get_logger("transfers", RelayLayer.ENGINE)


# =============================================================================
# REQUEST AND RESULT
# =============================================================================

@dataclass(frozen=True)
class AuthorizationRequest:
    """
    A holder's signed instruction to move ``amount`` to ``recipient``.

    ``request_id`` accepts 32 raw bytes or their hex form; it is stored as
    bytes. The remaining fields are validated by the engine, in order, so
    a malformed request fails with the matching relay error.
    """
    request_id: bytes
    sender: str
    recipient: str
    amount: int
    deadline: int
    signature: bytes = b""

    def __post_init__(self):
        result = Validators.validate_request_id(self.request_id)
        result.raise_if_invalid()
        object.__setattr__(self, "request_id", result.sanitized_value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizationRequest":
        """
        Parse the JSON shape relayers submit.

        Raises:
            ValidationErrors: the payload does not match the wire schema
        """
        require_valid(data, AUTHORIZATION_REQUEST_SCHEMA)
        amount = Validators.validate_uint(data["amount"], "amount")
        deadline = Validators.validate_uint(data["deadline"], "deadline")
        amount.raise_if_invalid()
        deadline.raise_if_invalid()
        return cls(
            request_id=data["requestId"],
            sender=data["sender"],
            recipient=data["recipient"],
            amount=amount.sanitized_value,
            deadline=deadline.sanitized_value,
            signature=bytes.fromhex(data["signature"][2:]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": "0x" + self.request_id.hex(),
            "sender": self.sender,
            "recipient": self.recipient,
            "amount": self.amount,
            "deadline": self.deadline,
            "signature": "0x" + bytes(self.signature).hex(),
        }

    def with_signature(self, signature: bytes) -> "AuthorizationRequest":
        return replace(self, signature=bytes(signature))

    def signed(self, domain: DomainContext, private_key: Union[str, bytes]) -> "AuthorizationRequest":
        """Copy of this request carrying the signature of ``private_key``."""
        return self.with_signature(sign_authorization(self, domain, private_key))


@dataclass(frozen=True)
class TransferResult:
    net_amount: int
    fee: int


# =============================================================================
# ENGINE
# =============================================================================

class TransferAuthorizationEngine:
    """
    Orchestrates verification, replay protection, fees and ledger movement.

    Args:
        ledger: stablecoin ledger bound to the relay's holding address
        holding_address: the relay's own identity (signing domain contract)
        verifier: signature verifier for this relay's domain
        replay_guard: consumed request id bookkeeping
        registry: admin identity and live fee policy
        fee_pool: AccumulatedFees, shared with the registry
        bus: where Transfer / WithdrawalProcessed records are emitted
        lock: execution lock shared with the registry
        clock: returns the current unix time in seconds
    """

    def __init__(
        self,
        *,
        ledger: TokenLedger,
        holding_address: str,
        verifier: SignatureVerifier,
        replay_guard: ReplayGuard,
        registry: AdminRegistry,
        fee_pool: FeePool,
        bus: Optional[EventBus] = None,
        lock: Optional[threading.RLock] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._ledger = ledger
        self._holding_address = normalize_identity(holding_address, "holding_address")
        self._verifier = verifier
        self._replay_guard = replay_guard
        self._registry = registry
        self._fee_pool = fee_pool
        self._fees = FeeCalculator(lambda: self._registry.policy)
        self._bus = bus or EventBus()
        self._lock = lock or threading.RLock()
        self._clock = clock or (lambda: int(time.time()))

    @property
    def domain(self) -> DomainContext:
        return self._verifier.domain

    @property
    def accumulated_fees(self) -> int:
        return self._fee_pool.total

    def is_processed(self, request_id: Union[bytes, str]) -> bool:
        result = Validators.validate_request_id(request_id)
        result.raise_if_invalid()
        return self._replay_guard.is_consumed(result.sanitized_value)

    def calculate_fee(self, amount: int) -> int:
        """Fee the current policy would charge on ``amount``. No side effects."""
        return self._fees.compute(amount)

    # -------------------------------------------------------------------------
    # Relayed path
    # -------------------------------------------------------------------------

    @timed_operation(_log, "execute_authorized")
    def execute_authorized(self, request: AuthorizationRequest) -> TransferResult:
        """
        Execute a relayed, signed transfer.

        Raises:
            InvalidParty, InvalidAmount, RequestExpired,
            RequestAlreadyProcessed, InvalidSignature, InsufficientBalance,
            FeeExceedsAmount, LedgerTransferFailed
        """
        with correlation_scope() as cid, self._lock:
            request_hex = request.request_id.hex()
            try:
                request = self._normalized(request)
                if self._clock() > request.deadline:
                    raise RequestExpired(deadline=request.deadline)
                self._replay_guard.require_fresh(request.request_id)
                self._verifier.require_valid(request)

                with self._replay_guard.consume(request.request_id):
                    self._require_balance(request.sender, request.amount)
                    result = self._settle(request.sender, request.recipient, request.amount)
            except RelayError as e:
                _log.warning(
                    f"authorized transfer rejected: {e.message}",
                    operation="execute_authorized",
                    error_code=e.code,
                    request_id=request_hex,
                )
                raise

            _log.info(
                "authorized transfer executed",
                operation="execute_authorized",
                request_id=request_hex,
                net_amount=result.net_amount,
                fee=result.fee,
            )
            self._bus.publish(Transfer(
                sender=request.sender,
                recipient=request.recipient,
                net_amount=result.net_amount,
                fee=result.fee,
                correlation_id=cid,
            ))
            return result

    def _normalized(self, request: AuthorizationRequest) -> AuthorizationRequest:
        """Preconditions 1 and 2, plus uint range checks."""
        if is_null_identity(request.sender) or is_null_identity(request.recipient):
            raise InvalidParty()
        sender = normalize_identity(request.sender, "sender")
        recipient = normalize_identity(request.recipient, "recipient")
        if is_null_identity(sender) or is_null_identity(recipient):
            raise InvalidParty()

        amount = Validators.validate_uint(request.amount, "amount")
        if not amount.is_valid or amount.sanitized_value == 0:
            raise InvalidAmount()
        deadline = Validators.validate_uint(request.deadline, "deadline")
        if not deadline.is_valid:
            raise InvalidAmount("deadline is not a valid timestamp")

        return replace(
            request,
            sender=sender,
            recipient=recipient,
            amount=amount.sanitized_value,
            deadline=deadline.sanitized_value,
        )

    # -------------------------------------------------------------------------
    # Direct paths
    # -------------------------------------------------------------------------

    @timed_operation(_log, "transfer")
    def transfer(self, caller: str, recipient: str, amount: int) -> TransferResult:
        """
        Self-initiated transfer by ``caller``. No signature, replay guard or
        deadline; fee and ledger mechanics match the relayed path.
        """
        with correlation_scope() as cid, self._lock:
            caller, recipient, result = self._direct("transfer", caller, recipient, amount)
            self._bus.publish(Transfer(
                sender=caller,
                recipient=recipient,
                net_amount=result.net_amount,
                fee=result.fee,
                correlation_id=cid,
            ))
            return result

    @timed_operation(_log, "withdraw")
    def withdraw(self, caller: str, recipient: str, amount: int) -> TransferResult:
        """Cash out to an off-ramp address; emits WithdrawalProcessed."""
        with correlation_scope() as cid, self._lock:
            caller, recipient, result = self._direct("withdraw", caller, recipient, amount)
            self._bus.publish(WithdrawalProcessed(
                sender=caller,
                net_amount=result.net_amount,
                fee=result.fee,
                correlation_id=cid,
            ))
            return result

    def _direct(self, operation: str, caller: str, recipient: str, amount: int):
        try:
            if is_null_identity(caller) or is_null_identity(recipient):
                raise InvalidParty()
            caller = normalize_identity(caller, "caller")
            recipient = normalize_identity(recipient, "recipient")
            if is_null_identity(recipient):
                raise InvalidParty()
            checked = Validators.validate_uint(amount, "amount")
            if not checked.is_valid or checked.sanitized_value == 0:
                raise InvalidAmount()
            amount = checked.sanitized_value
            self._require_balance(caller, amount)
            result = self._settle(caller, recipient, amount)
        except RelayError as e:
            _log.warning(
                f"{operation} rejected: {e.message}",
                operation=operation,
                error_code=e.code,
            )
            raise

        _log.info(
            f"{operation} executed",
            operation=operation,
            net_amount=result.net_amount,
            fee=result.fee,
        )
        return caller, recipient, result

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    def _require_balance(self, owner: str, amount: int) -> None:
        available = self._ledger.balance_of(owner)
        if available < amount:
            raise InsufficientBalance(available=available, required=amount)

    def _settle(self, sender: str, recipient: str, amount: int) -> TransferResult:
        policy = self._fees.policy
        net_amount, fee = self._fees.split(amount)

        require_movement(
            lambda: self._ledger.transfer_from(sender, self._holding_address, amount),
            "debit of sender was rejected",
        )
        try:
            require_movement(
                lambda: self._ledger.transfer(recipient, net_amount),
                "credit of recipient was rejected",
            )
        except LedgerTransferFailed:
            self._refund(sender, amount)
            raise

        if policy.destination is FeeDestination.IMMEDIATE and fee > 0:
            self._pay_fee_to_admin(fee)
        else:
            self._fee_pool.accrue(fee)

        return TransferResult(net_amount=net_amount, fee=fee)

    def _pay_fee_to_admin(self, fee: int) -> None:
        admin = self._registry.admin
        try:
            require_movement(lambda: self._ledger.transfer(admin, fee), "immediate fee payout was rejected")
        except LedgerTransferFailed as e:
            # Recipient is already credited; keep the fee withdrawable instead.
            _log.warning(
                "immediate fee payout rejected, fee accrued",
                operation="settle",
                error_code=e.code,
                fee=fee,
                exc_info=True,
            )
            self._fee_pool.accrue(fee)

    def _refund(self, sender: str, amount: int) -> None:
        try:
            require_movement(lambda: self._ledger.transfer(sender, amount), "compensating refund was rejected")
        except LedgerTransferFailed as e:
            _log.error(
                "compensating refund rejected",
                error_code=e.code,
                operation="settle",
                amount=amount,
                exc_info=True,
            )
