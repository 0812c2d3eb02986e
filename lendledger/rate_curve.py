"""
rate_curve.py - Kinked Utilization-Based Interest Rate Curve

Pure, stateless interest-rate model. Rates are annualized fixed-point
fractions of SCALE; per-period rates divide by PERIODS_PER_YEAR and truncate.

Key Formulas:
    utilization = borrows * SCALE / (cash + borrows - reserves)      capped at SCALE
    borrow_rate = BASE + utilization * MULTIPLIER / SCALE            (utilization <= KINK)
                = rate(KINK) + (utilization - KINK) * JUMP / SCALE   (utilization >  KINK)
    supply_rate = utilization * borrow_rate * (SCALE - reserve_factor) / SCALE**2

Both branches of borrow_rate agree at KINK, so the curve is continuous there.
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import (
    SCALE, MAX_UINT256, PERIODS_PER_YEAR,
    ArithmeticOverflow, InvalidConfiguration,
    mul_div, to_scaled,
)


# Curve parameters of the default deployment (annualized fractions of SCALE).
BASE_RATE = to_scaled(2)          # 2% per year at zero utilization
MULTIPLIER = to_scaled(10)        # 10% per year slope below the kink
JUMP_MULTIPLIER = to_scaled(50)   # 50% per year slope above the kink
KINK = to_scaled(80)              # 80% utilization

# Largest borrows figure whose product with SCALE still fits a 256-bit word.
MAX_SAFE_BORROWS = MAX_UINT256 // SCALE


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def utilization_rate(cash: int, borrows: int, reserves: int) -> int:
    """
    Fraction of pool assets currently lent out.

    Returns 0 when nothing is borrowed or when cash + borrows - reserves is
    not positive. The result is capped at SCALE: when reserves exceed cash
    the raw ratio would otherwise report more than 100% utilization.

    Raises:
        ArithmeticOverflow: If borrows * SCALE would leave the 256-bit range
    """
    if borrows == 0:
        return 0
    if borrows > MAX_SAFE_BORROWS:
        raise ArithmeticOverflow("Calculation overflow")

    denominator = cash + borrows - reserves
    if denominator <= 0:
        return 0

    return min(borrows * SCALE // denominator, SCALE)


def per_period(annual_rate: int) -> int:
    """Convert an annualized rate to a per-block rate (truncating)."""
    return annual_rate // PERIODS_PER_YEAR


def _check_fraction(value: int, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0 or value > SCALE:
        raise InvalidConfiguration(f"{name} must be an int in [0, SCALE], got {value!r}")


# ============================================================================
# RATE MODEL
# ============================================================================

@dataclass(frozen=True, slots=True)
class JumpRateModel:
    """
    Two-slope borrow rate curve with a kink.

    Immutable: a vault swaps rate models only by replacing its whole
    configuration. Implements the RateModel protocol.

    Example:
        model = JumpRateModel()
        model.borrow_rate(cash=20 * SCALE, borrows=80 * SCALE, reserves=0)
        # -> 0.10 * SCALE (2% base + 80% * 10%)
    """
    base_rate: int = BASE_RATE
    multiplier: int = MULTIPLIER
    jump_multiplier: int = JUMP_MULTIPLIER
    kink: int = KINK

    def __post_init__(self):
        for name in ("base_rate", "multiplier", "jump_multiplier"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise InvalidConfiguration(f"{name} must be a non-negative int, got {value!r}")
        _check_fraction(self.kink, "kink")

    def utilization_rate(self, cash: int, borrows: int, reserves: int) -> int:
        return utilization_rate(cash, borrows, reserves)

    def rate_at(self, utilization: int) -> int:
        """Annualized borrow rate at a given utilization."""
        if utilization <= self.kink:
            return self.base_rate + mul_div(utilization, self.multiplier, SCALE)

        normal_rate = self.base_rate + mul_div(self.kink, self.multiplier, SCALE)
        excess = utilization - self.kink
        return normal_rate + mul_div(excess, self.jump_multiplier, SCALE)

    def borrow_rate(self, cash: int, borrows: int, reserves: int) -> int:
        return self.rate_at(utilization_rate(cash, borrows, reserves))

    def supply_rate(self, cash: int, borrows: int, reserves: int, reserve_factor: int) -> int:
        """
        Rate earned by suppliers: the borrow rate net of the reserve cut,
        earned only on the borrowed fraction of the pool.

        Raises:
            InvalidConfiguration: If reserve_factor is outside [0, SCALE]
        """
        _check_fraction(reserve_factor, "reserve_factor")
        utilization = utilization_rate(cash, borrows, reserves)
        rate_to_pool = mul_div(self.rate_at(utilization), SCALE - reserve_factor, SCALE)
        return mul_div(utilization, rate_to_pool, SCALE)

    def borrow_rate_per_period(self, cash: int, borrows: int, reserves: int) -> int:
        return per_period(self.borrow_rate(cash, borrows, reserves))

    def supply_rate_per_period(self, cash: int, borrows: int, reserves: int, reserve_factor: int) -> int:
        return per_period(self.supply_rate(cash, borrows, reserves, reserve_factor))
