"""
Hurupay Relay Assembly

Builds one relay deployment: engine, admin registry, replay guard, fee pool
and event bus, all sharing one execution lock.

    ┌──────────────────────── Relay ────────────────────────┐
    │                                                        │
    │   TransferAuthorizationEngine ──┐      ┌── EventBus ──▶ EventLog
    │            │                    │      │               │
    │            ▼                 RLock     │               │
    │   SignatureVerifier             │      │               │
    │   ReplayGuard ── ProcessedSet   │      │               │
    │            │                    │      │               │
    │            ▼                    │      │               │
    │   FeePool ◀──────────── AdminRegistry ─┘               │
    │                                                        │
    └────────────────────────────┬───────────────────────────┘
                                 ▼
                      TokenLedger (stablecoin)

Relays are plain objects: every instance has its own admin, policy and
processed set, so tests can run any number of them side by side.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

from hurupay.admin import AdminRegistry, AssetResolver
from hurupay.config import ConfigError, RelayConfig
from hurupay.engine import TransferAuthorizationEngine
from hurupay.events import EventBus, EventLog
from hurupay.fees import FeePolicy, FeePool
from hurupay.hardening import CryptoUtils, normalize_identity
from hurupay.ledger import InMemoryToken, TokenLedger, TokenRegistry
from hurupay.observability import RelayLayer, configure_logging, get_logger
from hurupay.security import (
    FileProcessedSet,
    InMemoryProcessedSet,
    ProcessedSetStore,
    ReplayGuard,
)
from hurupay.signing import DomainContext, SignatureVerifier

_log = get_logger("assembly", RelayLayer.ENGINE)


@dataclass
class Relay:
    """One assembled relay deployment."""
    engine: TransferAuthorizationEngine
    registry: AdminRegistry
    replay_guard: ReplayGuard
    fee_pool: FeePool
    verifier: SignatureVerifier
    bus: EventBus
    events: EventLog
    ledger: TokenLedger
    holding_address: str
    lock: threading.RLock

    @property
    def domain(self) -> DomainContext:
        return self.verifier.domain

    @property
    def admin(self) -> str:
        return self.registry.admin

    @property
    def accumulated_fees(self) -> int:
        return self.fee_pool.total


def _replay_store(config: RelayConfig) -> ProcessedSetStore:
    journal = config.security.replay_journal_path.get()
    if journal:
        return FileProcessedSet(journal)
    return InMemoryProcessedSet()


def create_relay(
    ledger: TokenLedger,
    admin: str,
    holding_address: Optional[str] = None,
    config: Optional[RelayConfig] = None,
    *,
    policy: Optional[FeePolicy] = None,
    resolve_asset: Optional[AssetResolver] = None,
    replay_store: Optional[ProcessedSetStore] = None,
    bus: Optional[EventBus] = None,
    clock: Optional[Callable[[], int]] = None,
    configure_logs: bool = False,
) -> Relay:
    """
    Assemble a relay.

    Args:
        ledger: stablecoin ledger acting as ``holding_address``
        admin: initial admin identity
        holding_address: the relay's own identity; defaults to
            ``domain.verifying_contract`` from ``config``
        config: settings; a fresh ``RelayConfig`` (defaults plus HURUPAY_*
            environment variables) when omitted
        policy: overrides the fee policy described by ``config``
        resolve_asset: reaches other assets for stray-asset recovery
        replay_store: overrides the processed set described by ``config``
        clock: unix time source for deadline checks
        configure_logs: install the log handler described by ``config``

    Raises:
        ConfigError: the configuration is incomplete or inconsistent
    """
    config = config or RelayConfig()
    if configure_logs:
        configure_logging(
            config.observability.log_level.get(),
            config.observability.log_format.get(),
        )

    domain = config.domain_context(verifying_contract=holding_address)
    holding_address = domain.verifying_contract

    stablecoin = config.token.stablecoin.get()
    if stablecoin and not CryptoUtils.same_identity(
        normalize_identity(stablecoin, "stablecoin"), ledger.asset
    ):
        raise ConfigError(
            f"ledger asset {ledger.asset} does not match configured stablecoin {stablecoin}"
        )

    lock = threading.RLock()
    bus = bus or EventBus()
    events = EventLog().attach(bus)
    fee_pool = FeePool()
    verifier = SignatureVerifier(domain)
    replay_guard = ReplayGuard(replay_store if replay_store is not None else _replay_store(config))

    registry = AdminRegistry(
        admin,
        policy or config.fee_policy(),
        fee_pool=fee_pool,
        ledger=ledger,
        holding_address=holding_address,
        resolve_asset=resolve_asset,
        bus=bus,
        lock=lock,
    )
    engine = TransferAuthorizationEngine(
        ledger=ledger,
        holding_address=holding_address,
        verifier=verifier,
        replay_guard=replay_guard,
        registry=registry,
        fee_pool=fee_pool,
        bus=bus,
        lock=lock,
        clock=clock,
    )

    _log.info(
        "relay assembled",
        operation="create_relay",
        holding_address=holding_address,
        chain_id=domain.chain_id,
        asset=ledger.asset,
        fee_policy=registry.policy.to_dict(),
    )
    return Relay(
        engine=engine,
        registry=registry,
        replay_guard=replay_guard,
        fee_pool=fee_pool,
        verifier=verifier,
        bus=bus,
        events=events,
        ledger=ledger,
        holding_address=holding_address,
        lock=lock,
    )


def create_in_memory_relay(
    token: InMemoryToken,
    admin: str,
    holding_address: str,
    config: Optional[RelayConfig] = None,
    *,
    tokens: Optional[TokenRegistry] = None,
    **kwargs,
) -> Relay:
    """
    Relay over an ``InMemoryToken``, for tests and local simulation.

    ``tokens`` (the stablecoin is registered into it) lets stray-asset
    recovery reach any other in-memory token.
    """
    tokens = tokens or TokenRegistry()
    tokens.register(token)
    return create_relay(
        token.client(holding_address),
        admin,
        holding_address,
        config,
        resolve_asset=tokens.resolver(holding_address),
        **kwargs,
    )
