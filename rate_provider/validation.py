"""
Rate validation gates.

Three sequential checks decide whether a (supply, TVL) observation may
become the published rate:

1. Oracle sanity: the reserve reading must not be negative
2. Divergence: |reserve - tvl| / max(reserve, tvl) <= max_difference_percent
3. Bounds: tvl / supply must stay within [MIN_RATE, MAX_RATE]

All arithmetic is integer fixed-point at RATE_PRECISION_FACTOR with
truncating division. Nothing here touches state; the provider decides what
to persist and emit from the returned verdict.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import InvalidParameterError

RATE_PRECISION_FACTOR = 10**18

# +/-1.5% around parity
MIN_RATE = 985 * 10**15
MAX_RATE = 1015 * 10**15

UINT256_MAX = 2**256 - 1


class Verdict(Enum):
    """Outcome of running the gates"""
    ACCEPTED = "accepted"
    INVALID_RESERVE = "invalid_reserve"
    INVALID_RESERVE_DIFFERENCE = "invalid_reserve_difference"
    INVALID_RATE = "invalid_rate"


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validate_update().

    Attributes:
        verdict: Which gate rejected the input, or ACCEPTED
        reserve: Reserve value read from the oracle
        tvl: Caller-supplied TVL
        difference: Relative divergence (None if gate 1 rejected)
        rate: Computed rate (None unless gate 3 ran)
    """
    verdict: Verdict
    reserve: int
    tvl: int
    difference: Optional[int] = None
    rate: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPTED


def require_uint256(value: int, name: str) -> int:
    """Reject anything that is not an unsigned 256-bit integer"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= UINT256_MAX:
        raise InvalidParameterError(f"{name} out of uint256 range: {value}")
    return value


def calculate_difference(reserve: int, tvl: int) -> int:
    """
    Relative difference between reserve and TVL, scaled by 1e18.

    The denominator is whichever operand is larger, so swapping the two
    values gives the same result. Two zeros have no difference.
    """
    larger = max(reserve, tvl)
    if larger == 0:
        return 0
    return abs(reserve - tvl) * RATE_PRECISION_FACTOR // larger


def calculate_rate(tvl: int, total_supply: int) -> int:
    """TVL per unit of supply, scaled by 1e18 and truncated"""
    if total_supply <= 0:
        raise InvalidParameterError("total supply must be positive")
    return tvl * RATE_PRECISION_FACTOR // total_supply


def is_rate_in_bounds(rate: int) -> bool:
    return MIN_RATE <= rate <= MAX_RATE


def is_valid_max_difference_percent(value: int) -> bool:
    return 0 < value <= RATE_PRECISION_FACTOR


def validate_update(
    reserve: int,
    total_supply: int,
    tvl: int,
    max_difference_percent: int,
) -> ValidationResult:
    """
    Run the three gates in order and stop at the first rejection.

    Args:
        reserve: Signed reserve value from the oracle
        total_supply: Caller-supplied total supply (must be > 0)
        tvl: Caller-supplied total value locked
        max_difference_percent: Divergence threshold, scale 1e18

    Returns:
        ValidationResult describing the outcome

    Raises:
        InvalidParameterError: if total_supply is zero
    """
    if total_supply == 0:
        raise InvalidParameterError("total supply must be positive")

    if reserve < 0:
        return ValidationResult(Verdict.INVALID_RESERVE, reserve=reserve, tvl=tvl)

    difference = calculate_difference(reserve, tvl)
    if difference > max_difference_percent:
        return ValidationResult(
            Verdict.INVALID_RESERVE_DIFFERENCE,
            reserve=reserve,
            tvl=tvl,
            difference=difference,
        )

    rate = calculate_rate(tvl, total_supply)
    if not is_rate_in_bounds(rate):
        return ValidationResult(
            Verdict.INVALID_RATE,
            reserve=reserve,
            tvl=tvl,
            difference=difference,
            rate=rate,
        )

    return ValidationResult(
        Verdict.ACCEPTED,
        reserve=reserve,
        tvl=tvl,
        difference=difference,
        rate=rate,
    )
