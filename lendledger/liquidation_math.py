"""
liquidation_math.py - Health Factor and Partial Liquidation Arithmetic

PURE FUNCTIONS - no state, no collaborators. Values are in units of the single
asset (price is 1:1), so collateral and debt are compared directly.

Key Formulas:
    health_factor         = collateral * liquidation_threshold / debt
    max_liquidatable      = total_debt * CLOSE_FACTOR / SCALE
    collateral_to_seize   = debt_covered * total_collateral * (SCALE + bonus)
                            / (total_debt * SCALE)
    max_borrow            = max(0, collateral * collateral_factor / SCALE - debt)

A health factor of SCALE is exactly 1.0; anything below is liquidatable.
"""

from __future__ import annotations
from typing import Tuple

from .core import SCALE, HEALTH_FACTOR_MAX, mul_div


# A single liquidation may close at most half of a position's debt.
CLOSE_FACTOR = SCALE // 2


def health_factor(collateral_value: int, debt_value: int, liquidation_threshold: int) -> int:
    """
    Collateralization of a position at the liquidation threshold.

    Returns HEALTH_FACTOR_MAX for a position without debt.

    Raises:
        ArithmeticOverflow: If collateral_value * liquidation_threshold
            leaves the 256-bit range
    """
    if debt_value == 0:
        return HEALTH_FACTOR_MAX
    return mul_div(collateral_value, liquidation_threshold, debt_value)


def is_liquidatable(health: int) -> bool:
    return health < SCALE


def liquidation_amounts(
    debt_to_cover: int,
    total_debt: int,
    total_collateral: int,
    liquidation_bonus: int,
) -> Tuple[int, int]:
    """
    Size a partial liquidation.

    The requested debt_to_cover is capped at the close factor. The liquidator
    receives the proportional share of collateral plus the bonus premium.

    Args:
        debt_to_cover: Debt the liquidator offers to repay
        total_debt: Borrower's principal plus accumulated interest
        total_collateral: Borrower's collateral
        liquidation_bonus: Premium as a fraction of SCALE

    Returns:
        Tuple of (collateral_to_liquidate, actual_debt_covered).
        (0, 0) when total_debt is zero.
    """
    if total_debt == 0:
        return 0, 0

    max_liquidatable = mul_div(total_debt, CLOSE_FACTOR, SCALE)
    actual_debt_covered = min(debt_to_cover, max_liquidatable)

    proportional = mul_div(actual_debt_covered, total_collateral, 1)
    collateral_to_liquidate = mul_div(proportional, SCALE + liquidation_bonus, total_debt * SCALE)

    return collateral_to_liquidate, actual_debt_covered


def max_borrow(collateral_value: int, collateral_factor: int, current_debt: int) -> int:
    """Additional debt a position may take on; never negative."""
    limit = mul_div(collateral_value, collateral_factor, SCALE)
    return max(0, limit - current_debt)
