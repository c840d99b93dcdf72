"""
Hurupay Fee Layer

Deterministic fee computation and fee accounting.

    fee = max(floor(amount * rate_bp / 10_000), minimum_fee)

All arithmetic is integer-only in stablecoin base units (6 decimals); every
division truncates. A computed fee that would consume the entire amount is
rejected rather than charged.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from hurupay.hardening import (
    AtomicCounter,
    FeeExceedsAmount,
    FeeTooHigh,
    InvalidAmount,
    InvariantChecker,
)


BASIS_POINTS_DENOMINATOR = 10_000
MAX_FEE_RATE_BASIS_POINTS = 500  # 5%

# 0.2 units of a 6-decimal stablecoin
DEFAULT_MINIMUM_FEE = 200_000


class FeeDestination(Enum):
    """Where collected fees go."""
    ACCRUE = "accrue"          # Retained and counted until the admin withdraws
    IMMEDIATE = "immediate"    # Sent to the admin within the same transfer


@dataclass(frozen=True)
class FeePolicy:
    """
    Fee policy parameters.

    ``minimum_fee`` of None means no floor is configured, which is distinct
    from a floor of zero only in how the policy is reported.
    """
    rate_basis_points: int
    minimum_fee: Optional[int] = None
    destination: FeeDestination = FeeDestination.ACCRUE

    def __post_init__(self):
        if isinstance(self.rate_basis_points, bool) or not isinstance(self.rate_basis_points, int):
            raise FeeTooHigh("fee rate must be an integer number of basis points")
        if self.rate_basis_points < 0:
            raise FeeTooHigh(f"fee rate cannot be negative: {self.rate_basis_points}")
        if self.rate_basis_points > MAX_FEE_RATE_BASIS_POINTS:
            raise FeeTooHigh(
                f"fee rate {self.rate_basis_points} bp exceeds {MAX_FEE_RATE_BASIS_POINTS} bp"
            )
        if self.minimum_fee is not None and self.minimum_fee < 0:
            raise InvalidAmount(f"minimum fee cannot be negative: {self.minimum_fee}")

    @property
    def floor(self) -> int:
        return self.minimum_fee or 0

    def with_rate(self, rate_basis_points: int) -> "FeePolicy":
        return replace(self, rate_basis_points=rate_basis_points)

    def with_minimum_fee(self, minimum_fee: Optional[int]) -> "FeePolicy":
        return replace(self, minimum_fee=minimum_fee)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate_basis_points": self.rate_basis_points,
            "minimum_fee": self.minimum_fee,
            "destination": self.destination.value,
        }


def compute_fee(amount: int, policy: FeePolicy) -> int:
    """
    Compute the fee charged on ``amount`` under ``policy``.

    Raises:
        InvalidAmount: amount is not a positive integer
        FeeExceedsAmount: the fee would be greater than or equal to amount
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount()

    percentage_fee = amount * policy.rate_basis_points // BASIS_POINTS_DENOMINATOR
    fee = max(percentage_fee, policy.floor)

    if fee >= amount:
        raise FeeExceedsAmount(
            f"fee {fee} is not below amount {amount}",
            amount=amount,
            fee=fee,
        )
    return fee


class FeeCalculator:
    """Binds ``compute_fee`` to a policy source."""

    def __init__(self, policy_source):
        # policy_source: zero-argument callable returning the live FeePolicy
        self._policy_source = policy_source

    @property
    def policy(self) -> FeePolicy:
        return self._policy_source()

    def compute(self, amount: int) -> int:
        return compute_fee(amount, self.policy)

    def split(self, amount: int) -> tuple:
        """Return (net_amount, fee) for amount."""
        fee = self.compute(amount)
        return amount - fee, fee


class FeePool:
    """
    AccumulatedFees: fees collected and not yet withdrawn.

    Only ever increases through ``accrue`` and returns to zero through
    ``drain``; ``restore`` undoes a drain whose ledger movement failed.
    """

    def __init__(self, initial: int = 0):
        self._total = AtomicCounter(initial)

    @property
    def total(self) -> int:
        return self._total.get()

    def accrue(self, fee: int) -> int:
        InvariantChecker.check_non_negative("fee", fee)
        return self._total.increment(fee)

    def drain(self) -> int:
        """Reset to zero and return the drained amount."""
        return self._total.swap(0)

    def restore(self, amount: int) -> None:
        InvariantChecker.check_non_negative("restored_fees", amount)
        self._total.increment(amount)
