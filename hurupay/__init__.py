"""
Hurupay: Relayed Stablecoin Transfer Authorization

A stablecoin holder signs a structured transfer authorization off-channel; a
relayer submits it; the relay verifies the signature, rejects replays and
expired requests, deducts a fee and moves the funds on the ledger.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                           RELAY DEPLOYMENT                              │
    │                                                                         │
    │  ORCHESTRATION                                                          │
    │    engine.py        Relayed and direct transfers, all-or-nothing        │
    │    admin.py         Admin handover, fee policy, treasury operations     │
    │    relay.py         Assembly of one deployment around one lock          │
    │                                                                         │
    │  PROTOCOL                                                               │
    │    signing.py       EIP-712 domain, signing and signer recovery         │
    │    security.py      Replay guard over an append-only processed set      │
    │    fees.py          Percentage-with-floor fee rule, accumulated fees    │
    │                                                                         │
    │  FOUNDATION                                                             │
    │    hardening.py     Error taxonomy, validators, invariants              │
    │    ledger.py        Ledger protocol and in-memory stablecoin            │
    │    events.py        Emitted records, event bus and log                  │
    │    schema.py        Wire payload validation                             │
    │    config.py        YAML and environment configuration                  │
    │    observability.py Structured logging, correlation ids                 │
    │                                                                         │
    └─────────────────────────────────────────────────────────────────────────┘

Quick Start
───────────

    token = InMemoryToken(USDC_ADDRESS)
    relay = create_in_memory_relay(token, admin=ADMIN, holding_address=RELAY)

    request = AuthorizationRequest(
        request_id=os.urandom(32),
        sender=holder.address,
        recipient=merchant,
        amount=100_000000,
        deadline=int(time.time()) + 600,
    ).signed(relay.domain, holder.key)

    result = relay.engine.execute_authorized(request)

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "1.0.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import Hurupay modules on first access."""

    # Engine exports
    if name in ("AuthorizationRequest", "TransferResult", "TransferAuthorizationEngine"):
        from hurupay import engine
        return getattr(engine, name)

    # Admin exports
    if name in ("AdminRegistry",):
        from hurupay import admin
        return getattr(admin, name)

    # Relay exports
    if name in ("Relay", "create_relay", "create_in_memory_relay"):
        from hurupay import relay
        return getattr(relay, name)

    # Signing exports
    if name in ("DomainContext", "SignatureVerifier", "sign_authorization",
                "PROTOCOL_NAME", "PROTOCOL_VERSION"):
        from hurupay import signing
        return getattr(signing, name)

    # Security exports
    if name in ("ReplayGuard", "InMemoryProcessedSet", "FileProcessedSet"):
        from hurupay import security
        return getattr(security, name)

    # Fee exports
    if name in ("FeePolicy", "FeeDestination", "FeeCalculator", "FeePool",
                "compute_fee", "DEFAULT_MINIMUM_FEE", "MAX_FEE_RATE_BASIS_POINTS"):
        from hurupay import fees
        return getattr(fees, name)

    # Hardening exports
    if name in ("RelayError", "InvalidParty", "InvalidAmount", "RequestExpired",
                "RequestAlreadyProcessed", "InvalidSignature", "InsufficientBalance",
                "FeeExceedsAmount", "LedgerTransferFailed", "NotAuthorized",
                "NoFeesToWithdraw", "NoTokensToRecover", "FeeTooHigh", "FeeUnchanged",
                "ValidationError", "ValidationErrors"):
        from hurupay import hardening
        return getattr(hardening, name)

    # Ledger exports
    if name in ("TokenLedger", "InMemoryToken", "TokenClient", "TokenRegistry"):
        from hurupay import ledger
        return getattr(ledger, name)

    # Event exports
    if name in ("Event", "EventBus", "EventLog", "Transfer", "WithdrawalProcessed",
                "FeeUpdated", "MinimumFeeUpdated", "FeesWithdrawn", "StrayAssetRecovered",
                "AdminTransferInitiated", "AdminTransferCompleted",
                "AdminTransferCancelled"):
        from hurupay import events
        return getattr(events, name)

    # Config exports
    if name in ("RelayConfig", "ConfigManager", "get_config"):
        from hurupay import config
        return getattr(config, name)

    raise AttributeError(f"module 'hurupay' has no attribute '{name}'")

__all__ = [
    "__version__",
    # Engine
    "AuthorizationRequest",
    "TransferResult",
    "TransferAuthorizationEngine",
    # Admin
    "AdminRegistry",
    # Relay
    "Relay",
    "create_relay",
    "create_in_memory_relay",
    # Signing
    "DomainContext",
    "SignatureVerifier",
    "sign_authorization",
    # Security
    "ReplayGuard",
    "InMemoryProcessedSet",
    "FileProcessedSet",
    # Fees
    "FeePolicy",
    "FeeDestination",
    "FeeCalculator",
    "FeePool",
    "compute_fee",
    # Errors
    "RelayError",
    "InvalidParty",
    "InvalidAmount",
    "RequestExpired",
    "RequestAlreadyProcessed",
    "InvalidSignature",
    "InsufficientBalance",
    "FeeExceedsAmount",
    "LedgerTransferFailed",
    "NotAuthorized",
    "NoFeesToWithdraw",
    "NoTokensToRecover",
    "FeeTooHigh",
    "FeeUnchanged",
    # Ledger
    "InMemoryToken",
    "TokenRegistry",
    # Events
    "EventBus",
    "EventLog",
    "Transfer",
    "WithdrawalProcessed",
    "FeeUpdated",
    "MinimumFeeUpdated",
    "FeesWithdrawn",
    "StrayAssetRecovered",
    "AdminTransferInitiated",
    "AdminTransferCompleted",
    "AdminTransferCancelled",
    # Config
    "RelayConfig",
    "ConfigManager",
    "get_config",
]
