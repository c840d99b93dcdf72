"""
Hurupay Validation and Hardening Module

Validation, error taxonomy and hardening primitives shared by every Hurupay
component. It addresses:

1. The relay failure taxonomy (one exception class per failure kind)
2. Input validation with normalisation (addresses, request ids, amounts)
3. Constant-time comparison of identities
4. Thread-safety primitives
5. Invariant enforcement for non-negative balances

Security Model:
    - All inputs are untrusted until validated
    - All failures abort the whole operation
    - All state mutations are atomic or compensated

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hmac
import re
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from eth_utils import is_address, to_bytes, to_checksum_address


# =============================================================================
# RELAY ERROR TYPES
# =============================================================================

class RelayError(Exception):
    """
    Base class for every relay failure.

    ``code`` is the stable failure kind reported to relayers; it is the only
    information a failed call exposes.
    """

    code = "RelayError"
    default_message = "relay operation failed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(f"{self.code}: {self.message}")


class InvalidParty(RelayError):
    code = "InvalidParty"
    default_message = "sender and recipient must be non-null identities"


class InvalidAmount(RelayError):
    code = "InvalidAmount"
    default_message = "amount must be greater than zero"


class RequestExpired(RelayError):
    code = "RequestExpired"
    default_message = "authorization deadline has passed"


class RequestAlreadyProcessed(RelayError):
    code = "RequestAlreadyProcessed"
    default_message = "request id already consumed"


class InvalidSignature(RelayError):
    code = "InvalidSignature"
    default_message = "signature does not match sender"


class InsufficientBalance(RelayError):
    code = "InsufficientBalance"
    default_message = "insufficient balance"


class FeeExceedsAmount(RelayError):
    code = "FeeExceedsAmount"
    default_message = "fee would consume the entire amount"


class LedgerTransferFailed(RelayError):
    code = "LedgerTransferFailed"
    default_message = "ledger movement was rejected"


class NotAuthorized(RelayError):
    code = "NotAuthorized"
    default_message = "caller is not the admin"


class NoFeesToWithdraw(RelayError):
    code = "NoFeesToWithdraw"
    default_message = "no fees to withdraw"


class NoTokensToRecover(RelayError):
    code = "NoTokensToRecover"
    default_message = "no recoverable balance"


class FeeTooHigh(RelayError):
    code = "FeeTooHigh"
    default_message = "fee rate exceeds the maximum"


class FeeUnchanged(RelayError):
    code = "FeeUnchanged"
    default_message = "new fee equals the current fee"


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Field-level validation failure for wire payloads."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(Exception):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class InvariantViolation(Exception):
    """Internal accounting invariant violated."""
    pass


@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise ValidationErrors if validation failed."""
        if not self.is_valid:
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
UINT256_MAX = (1 << 256) - 1


class Validators:
    """Collection of input validators."""

    HEX_PATTERN = re.compile(r'^(0x)?[0-9a-fA-F]*$')

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate an account identity and return its checksum form."""
        if isinstance(value, bytes) and len(value) == 20:
            return ValidationResult.success(to_checksum_address(value))
        if not isinstance(value, str) or not is_address(value.strip()):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be a 20-byte hex address", value)
            ])
        return ValidationResult.success(to_checksum_address(value.strip()))

    @classmethod
    def validate_request_id(cls, value: Any, field_name: str = "requestId") -> ValidationResult:
        """Validate a 32-byte request identifier (bytes or hex string)."""
        if isinstance(value, str):
            if not cls.HEX_PATTERN.match(value):
                return ValidationResult.failure([
                    ValidationError(field_name, "Invalid hex string", value)
                ])
            value = to_bytes(hexstr=value)
        if not isinstance(value, (bytes, bytearray)):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value)
            ])
        if len(value) != 32:
            return ValidationResult.failure([
                ValidationError(field_name, f"Must be exactly 32 bytes, got {len(value)}", value)
            ])
        return ValidationResult.success(bytes(value))

    @classmethod
    def validate_uint(cls, value: Any, field_name: str = "amount") -> ValidationResult:
        """Validate an unsigned 256-bit integer (int or decimal/hex string)."""
        if isinstance(value, bool):
            return ValidationResult.failure([
                ValidationError(field_name, "Expected integer, got bool", value)
            ])
        if isinstance(value, str):
            text = value.strip()
            try:
                value = int(text, 16) if text.lower().startswith("0x") else int(text)
            except ValueError:
                return ValidationResult.failure([
                    ValidationError(field_name, "Invalid integer string", text)
                ])
        if not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])
        if value < 0 or value > UINT256_MAX:
            return ValidationResult.failure([
                ValidationError(field_name, "Out of uint256 range", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_signature_bytes(
        cls,
        value: Any,
        field_name: str = "signature",
    ) -> ValidationResult:
        """Validate a 65-byte packed (r, s, v) signature."""
        if isinstance(value, str):
            if not cls.HEX_PATTERN.match(value):
                return ValidationResult.failure([
                    ValidationError(field_name, "Invalid hex string", value)
                ])
            value = to_bytes(hexstr=value)
        if not isinstance(value, (bytes, bytearray)):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value)
            ])
        if len(value) != 65:
            return ValidationResult.failure([
                ValidationError(field_name, f"Must be 65 bytes, got {len(value)}", value)
            ])
        return ValidationResult.success(bytes(value))


def normalize_identity(value: Any, field_name: str = "address") -> str:
    """Checksum an identity or raise InvalidParty."""
    result = Validators.validate_address(value, field_name)
    if not result.is_valid:
        raise InvalidParty(f"{field_name} is not a valid identity")
    return result.sanitized_value


def is_null_identity(identity: Optional[str]) -> bool:
    """None or the all-zero address; other non-str values are not null."""
    return identity is None or (isinstance(identity, str) and identity.lower() == NULL_ADDRESS)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Cryptographic utility functions with security hardening."""

    @staticmethod
    def secure_compare(a: bytes, b: bytes) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        return hmac.compare_digest(a, b)

    @staticmethod
    def same_identity(a: Union[str, None], b: Union[str, None]) -> bool:
        """Constant-time, case-insensitive comparison of two addresses."""
        if a is None or b is None:
            return False
        return CryptoUtils.secure_compare(a.lower().encode(), b.lower().encode())


# =============================================================================
# THREAD SAFETY
# =============================================================================

class AtomicCounter:
    """Thread-safe non-negative counter."""

    def __init__(self, initial: int = 0):
        InvariantChecker.check_non_negative("counter", initial)
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> int:
        """Atomically increment and return new value."""
        with self._lock:
            self._value += delta
            return self._value

    def get(self) -> int:
        with self._lock:
            return self._value

    def swap(self, new_value: int) -> int:
        """Atomically replace the value and return the previous one."""
        with self._lock:
            InvariantChecker.check_non_negative("counter", new_value)
            previous = self._value
            self._value = new_value
            return previous


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces accounting invariants."""

    @staticmethod
    def check_non_negative(field_name: str, value: int) -> None:
        """Ensure value is non-negative."""
        if value < 0:
            raise InvariantViolation(f"{field_name} cannot be negative: {value}")
