"""
Hurupay Admin Registry

Administrative identity and fee policy of one relay deployment.

    ┌──────────────┐  transfer_admin   ┌──────────────┐  accept_admin   ┌──────────────┐
    │ admin = A    │ ────────────────▶ │ admin = A    │ ──────────────▶ │ admin = B    │
    │ pending = ∅  │ ◀──────────────── │ pending = B  │   (called by B) │ pending = ∅  │
    └──────────────┘ cancel_admin_...  └──────────────┘                 └──────────────┘

Every gated operation takes the calling identity explicitly; there is no
ambient "current user". Policy changes, fee withdrawal and stray-asset
recovery all run under the relay's execution lock so they serialise with
in-flight transfers.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from hurupay.events import (
    AdminTransferCancelled,
    AdminTransferCompleted,
    AdminTransferInitiated,
    EventBus,
    FeesWithdrawn,
    FeeUpdated,
    MinimumFeeUpdated,
    StrayAssetRecovered,
)
from hurupay.fees import FeePolicy, FeePool
from hurupay.hardening import (
    CryptoUtils,
    FeeUnchanged,
    InvalidParty,
    LedgerTransferFailed,
    NoFeesToWithdraw,
    NoTokensToRecover,
    NotAuthorized,
    RelayError,
    is_null_identity,
    normalize_identity,
)
from hurupay.ledger import TokenLedger, require_movement
from hurupay.observability import RelayLayer, correlation_scope, get_logger

_log = get_logger("registry", RelayLayer.ADMIN)


AssetResolver = Callable[[str], Optional[TokenLedger]]


class AdminRegistry:
    """
    Holds the admin identity and fee policy and gates their mutation.

    Args:
        admin: initial admin identity
        policy: initial fee policy
        fee_pool: AccumulatedFees shared with the transfer engine
        ledger: stablecoin ledger bound to the relay's holding address
        resolve_asset: resolves other asset identities to ledgers bound to
            the holding address (stray-asset recovery)
        bus: where records are emitted
        lock: the relay's execution lock
    """

    def __init__(
        self,
        admin: str,
        policy: FeePolicy,
        *,
        fee_pool: FeePool,
        ledger: TokenLedger,
        holding_address: str,
        resolve_asset: Optional[AssetResolver] = None,
        bus: Optional[EventBus] = None,
        lock: Optional[threading.RLock] = None,
    ):
        admin = normalize_identity(admin, "admin")
        if is_null_identity(admin):
            raise InvalidParty("admin cannot be the null identity")
        self._admin = admin
        self._pending_admin: Optional[str] = None
        self._policy = policy
        self._fee_pool = fee_pool
        self._ledger = ledger
        self._holding_address = normalize_identity(holding_address, "holding_address")
        self._resolve_asset = resolve_asset
        self._bus = bus or EventBus()
        self._lock = lock or threading.RLock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def admin(self) -> str:
        with self._lock:
            return self._admin

    @property
    def pending_admin(self) -> Optional[str]:
        with self._lock:
            return self._pending_admin

    @property
    def policy(self) -> FeePolicy:
        with self._lock:
            return self._policy

    @property
    def accumulated_fees(self) -> int:
        return self._fee_pool.total

    def is_admin(self, caller: str) -> bool:
        return CryptoUtils.same_identity(caller, self.admin)

    def require_admin(self, caller: str, operation: str) -> None:
        if not self.is_admin(caller):
            raise self._reject(NotAuthorized(), operation, caller=caller)

    def _reject(self, error: RelayError, operation: str, **context) -> RelayError:
        _log.warning(
            f"{operation} rejected: {error.message}",
            operation=operation,
            error_code=error.code,
            **context,
        )
        return error

    # -------------------------------------------------------------------------
    # Fee policy
    # -------------------------------------------------------------------------

    def update_fee_rate(self, caller: str, new_rate_basis_points: int) -> FeeUpdated:
        """
        Change the percentage rate.

        Raises:
            NotAuthorized, FeeTooHigh, FeeUnchanged
        """
        with correlation_scope() as cid, self._lock:
            self.require_admin(caller, "update_fee_rate")
            old = self._policy.rate_basis_points
            if new_rate_basis_points == old:
                raise self._reject(FeeUnchanged(), "update_fee_rate", rate=old)
            try:
                self._policy = self._policy.with_rate(new_rate_basis_points)
            except RelayError as e:
                self._reject(e, "update_fee_rate", rate=new_rate_basis_points)
                raise
            event = FeeUpdated(old=old, new=new_rate_basis_points, correlation_id=cid)
            _log.info("fee rate updated", operation="update_fee_rate", old=old, new=new_rate_basis_points)
            self._bus.publish(event)
        return event

    def update_minimum_fee(self, caller: str, new_minimum_fee: Optional[int]) -> MinimumFeeUpdated:
        """
        Change (or with None, remove) the fee floor.

        Raises:
            NotAuthorized, InvalidAmount, FeeUnchanged
        """
        with correlation_scope() as cid, self._lock:
            self.require_admin(caller, "update_minimum_fee")
            old = self._policy.minimum_fee
            if new_minimum_fee == old:
                raise self._reject(FeeUnchanged(), "update_minimum_fee", minimum_fee=old)
            try:
                self._policy = self._policy.with_minimum_fee(new_minimum_fee)
            except RelayError as e:
                self._reject(e, "update_minimum_fee", minimum_fee=new_minimum_fee)
                raise
            event = MinimumFeeUpdated(old=old, new=new_minimum_fee, correlation_id=cid)
            _log.info("minimum fee updated", operation="update_minimum_fee", old=old, new=new_minimum_fee)
            self._bus.publish(event)
        return event

    def update_fee_policy(self, caller: str, new_policy: FeePolicy) -> list:
        """
        Apply the rate and floor of ``new_policy``, one record per changed
        field. The fee destination is fixed at construction and is not
        taken from ``new_policy``.

        Raises:
            NotAuthorized, FeeUnchanged (nothing would change)
        """
        with correlation_scope(), self._lock:
            self.require_admin(caller, "update_fee_policy")
            current = self._policy
            if (new_policy.rate_basis_points == current.rate_basis_points
                    and new_policy.minimum_fee == current.minimum_fee):
                raise self._reject(FeeUnchanged(), "update_fee_policy")

            events = []
            if new_policy.rate_basis_points != current.rate_basis_points:
                events.append(self.update_fee_rate(caller, new_policy.rate_basis_points))
            if new_policy.minimum_fee != current.minimum_fee:
                events.append(self.update_minimum_fee(caller, new_policy.minimum_fee))
            return events

    # -------------------------------------------------------------------------
    # Admin handover
    # -------------------------------------------------------------------------

    def transfer_admin(self, caller: str, new_admin: str) -> AdminTransferInitiated:
        """Nominate ``new_admin``; takes effect when they call ``accept_admin``."""
        with correlation_scope() as cid, self._lock:
            self.require_admin(caller, "transfer_admin")
            new_admin = normalize_identity(new_admin, "new_admin")
            if is_null_identity(new_admin):
                raise self._reject(
                    InvalidParty("new admin cannot be the null identity"),
                    "transfer_admin",
                )
            self._pending_admin = new_admin
            event = AdminTransferInitiated(
                current_admin=self._admin, pending_admin=new_admin, correlation_id=cid
            )
            _log.info("admin transfer initiated", operation="transfer_admin", pending_admin=new_admin)
            self._bus.publish(event)
        return event

    def accept_admin(self, caller: str) -> AdminTransferCompleted:
        """Complete a handover; only the pending identity may call this."""
        with correlation_scope() as cid, self._lock:
            if self._pending_admin is None or not CryptoUtils.same_identity(caller, self._pending_admin):
                raise self._reject(
                    NotAuthorized("caller is not the pending admin"),
                    "accept_admin",
                    caller=caller,
                )
            previous = self._admin
            self._admin = self._pending_admin
            self._pending_admin = None
            event = AdminTransferCompleted(
                previous_admin=previous, new_admin=self._admin, correlation_id=cid
            )
            _log.info("admin transfer completed", operation="accept_admin", new_admin=self._admin)
            self._bus.publish(event)
        return event

    def cancel_admin_transfer(self, caller: str) -> AdminTransferCancelled:
        with correlation_scope() as cid, self._lock:
            self.require_admin(caller, "cancel_admin_transfer")
            if self._pending_admin is None:
                raise self._reject(
                    InvalidParty("no admin transfer is pending"),
                    "cancel_admin_transfer",
                )
            cancelled = self._pending_admin
            self._pending_admin = None
            event = AdminTransferCancelled(
                current_admin=self._admin, cancelled_admin=cancelled, correlation_id=cid
            )
            _log.info("admin transfer cancelled", operation="cancel_admin_transfer")
            self._bus.publish(event)
        return event

    # -------------------------------------------------------------------------
    # Treasury
    # -------------------------------------------------------------------------

    def withdraw_accumulated_fees(self, caller: str) -> int:
        """
        Move all accumulated fees to the admin and reset the counter.

        Raises:
            NotAuthorized, NoFeesToWithdraw, LedgerTransferFailed
        """
        with correlation_scope() as cid, self._lock:
            self.require_admin(caller, "withdraw_accumulated_fees")
            amount = self._fee_pool.drain()
            if amount == 0:
                raise self._reject(NoFeesToWithdraw(), "withdraw_accumulated_fees")

            try:
                require_movement(
                    lambda: self._ledger.transfer(self._admin, amount),
                    "fee withdrawal transfer was rejected",
                )
            except LedgerTransferFailed as e:
                self._fee_pool.restore(amount)
                raise self._reject(e, "withdraw_accumulated_fees", amount=amount)
            event = FeesWithdrawn(admin=self._admin, amount=amount, correlation_id=cid)
            _log.info("fees withdrawn", operation="withdraw_accumulated_fees", amount=amount)
            self._bus.publish(event)
        return amount

    def recoverable_balance(self, asset: str) -> int:
        """Balance of ``asset`` held by the relay that is not earmarked fees."""
        ledger = self._ledger_for(asset)
        with self._lock:
            held = ledger.balance_of(self._holding_address)
            if CryptoUtils.same_identity(asset, self._ledger.asset):
                held -= self._fee_pool.total
            return max(held, 0)

    def recover_stray_asset(self, caller: str, asset: str) -> int:
        """
        Send tokens mistakenly transferred to the holding address to the
        admin. Accumulated fees of the managed stablecoin are never
        considered stray.

        Raises:
            NotAuthorized, InvalidParty, NoTokensToRecover, LedgerTransferFailed
        """
        with correlation_scope() as cid, self._lock:
            self.require_admin(caller, "recover_stray_asset")
            ledger = self._ledger_for(asset)
            amount = self.recoverable_balance(asset)
            if amount == 0:
                raise self._reject(NoTokensToRecover(), "recover_stray_asset", asset=asset)

            try:
                require_movement(
                    lambda: ledger.transfer(self._admin, amount),
                    "recovery transfer was rejected",
                )
            except LedgerTransferFailed as e:
                raise self._reject(e, "recover_stray_asset", asset=asset, amount=amount)
            event = StrayAssetRecovered(
                asset=ledger.asset, admin=self._admin, amount=amount, correlation_id=cid
            )
            _log.info("stray asset recovered", operation="recover_stray_asset", asset=ledger.asset, amount=amount)
            self._bus.publish(event)
        return amount

    def _ledger_for(self, asset: str) -> TokenLedger:
        if not isinstance(asset, str) or is_null_identity(asset):
            raise self._reject(InvalidParty("invalid asset identity"), "recover_stray_asset")
        asset = normalize_identity(asset, "asset")
        if CryptoUtils.same_identity(asset, self._ledger.asset):
            return self._ledger
        ledger = self._resolve_asset(asset) if self._resolve_asset else None
        if ledger is None:
            raise self._reject(InvalidParty("unknown asset"), "recover_stray_asset", asset=asset)
        return ledger
