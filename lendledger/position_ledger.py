"""
position_ledger.py - Per-Position and Pool State with Interest Accrual

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - Position: one borrower/depositor's collateral, principal and interest
   - PoolState: pool totals and the pool accrual checkpoint
   - PoolAccrual: result of one pool accrual step

2. PURE CALCULATION FUNCTIONS (calculate_* / apply_*):
   - Take all inputs explicitly as parameters, return new snapshots
   - Never mutate; the vault decides whether a computed state is committed

3. STATE HOLDER (PositionLedger):
   - The single owner of the current snapshots
   - Mutated only through commit(), which swaps snapshots in one step

Key Formulas:
    pool interest     = borrow_rate_per_period * total_borrows * periods / SCALE
    reserves fee      = pool interest * reserve_factor / SCALE
    position interest = borrow_rate_per_period * borrowed_amount * periods / SCALE
    total_supply      = cash + total_borrows - total_reserves
    shares minted     = amount * total_shares / total_supply   (amount if pool empty)

Interest is simple (linear) per accrual step. The pool figure and the sum of
position debts accrue independently, and positions accrue only when touched,
so total_borrows can drift from the sum of position debts.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Tuple

from .core import SCALE, RateModel, mul_div


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Position:
    """
    Immutable snapshot of one user's position.

    Created zero-initialized on first touch. collateral_amount is tracked in
    asset units, not shares.
    """
    collateral_amount: int = 0      # Asset deposited and still held as collateral
    borrowed_amount: int = 0        # Outstanding principal
    accumulated_interest: int = 0   # Interest accrued, not yet repaid
    last_interest_update: int = 0   # Block of the last position accrual

    @property
    def total_debt(self) -> int:
        return self.borrowed_amount + self.accumulated_interest

    def is_empty(self) -> bool:
        return self.collateral_amount == 0 and self.total_debt == 0


EMPTY_POSITION = Position()


@dataclass(frozen=True, slots=True)
class PoolState:
    """Immutable snapshot of the pool totals."""
    total_borrows: int = 0          # Pool-level principal plus accrued interest
    total_reserves: int = 0         # Protocol cut of accrued interest
    total_shares: int = 0           # Outstanding proportional-ownership units
    last_accrual_block: int = 0     # Block of the last pool accrual


@dataclass(frozen=True, slots=True)
class PoolAccrual:
    """
    Outcome of one pool accrual step.

    Attributes:
        pool: Pool state after accrual (the input unchanged if periods == 0)
        periods: Blocks elapsed since the previous checkpoint
        borrow_rate_per_period: Rate applied over those blocks
        interest_accumulated: Interest added to total_borrows
        reserves_fee: Part of the interest carved into total_reserves
    """
    pool: PoolState
    periods: int = 0
    borrow_rate_per_period: int = 0
    interest_accumulated: int = 0
    reserves_fee: int = 0


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_simple_interest(rate_per_period: int, principal: int, periods: int) -> int:
    """rate * principal * periods / SCALE, truncated."""
    return mul_div(mul_div(rate_per_period, principal, 1), periods, SCALE)


def calculate_pool_accrual(
    pool: PoolState,
    cash: int,
    current_block: int,
    rate_model: RateModel,
    reserve_factor: int,
) -> PoolAccrual:
    """
    Accrue pool interest up to current_block.

    PURE FUNCTION - All inputs explicit.

    Args:
        pool: Pool state before accrual
        cash: Asset balance held by the vault
        current_block: Block to accrue to
        rate_model: Rate curve evaluated at the pre-accrual utilization
        reserve_factor: Share of interest retained as reserves

    Returns:
        PoolAccrual; a no-op (same pool) when no block has elapsed
    """
    periods = current_block - pool.last_accrual_block
    if periods <= 0:
        return PoolAccrual(pool=pool)

    rate = rate_model.borrow_rate_per_period(cash, pool.total_borrows, pool.total_reserves)
    interest = calculate_simple_interest(rate, pool.total_borrows, periods)
    reserves_fee = mul_div(interest, reserve_factor, SCALE)

    accrued = replace(
        pool,
        total_borrows=pool.total_borrows + interest,
        total_reserves=pool.total_reserves + reserves_fee,
        last_accrual_block=current_block,
    )
    return PoolAccrual(
        pool=accrued,
        periods=periods,
        borrow_rate_per_period=rate,
        interest_accumulated=interest,
        reserves_fee=reserves_fee,
    )


def calculate_position_accrual(
    position: Position,
    borrow_rate_per_period: int,
    current_block: int,
) -> Position:
    """
    Fold interest since the position's own checkpoint into accumulated_interest.

    Skipped entirely, checkpoint included, while the position has no
    principal. borrow() resets the checkpoint when debt is first taken on.
    """
    if position.borrowed_amount == 0:
        return position

    periods = current_block - position.last_interest_update
    if periods <= 0:
        return position

    interest = calculate_simple_interest(borrow_rate_per_period, position.borrowed_amount, periods)
    return replace(
        position,
        accumulated_interest=position.accumulated_interest + interest,
        last_interest_update=current_block,
    )


def apply_repayment(position: Position, amount: int) -> Tuple[Position, int, int]:
    """
    Apply a repayment, interest first.

    amount must not exceed position.total_debt.

    Returns:
        Tuple of (new_position, principal_paid, interest_paid)
    """
    interest_paid = min(amount, position.accumulated_interest)
    principal_paid = amount - interest_paid
    updated = replace(
        position,
        accumulated_interest=position.accumulated_interest - interest_paid,
        borrowed_amount=position.borrowed_amount - principal_paid,
    )
    return updated, principal_paid, interest_paid


def apply_liquidation(
    position: Position,
    debt_covered: int,
    collateral_seized: int,
) -> Tuple[Position, int, int]:
    """
    Remove covered debt and seized collateral from a position.

    Covered debt reduces principal first; only the part exceeding principal
    reduces accumulated interest.

    Returns:
        Tuple of (new_position, principal_reduced, interest_reduced)
    """
    principal_reduced = min(debt_covered, position.borrowed_amount)
    interest_reduced = debt_covered - principal_reduced
    updated = replace(
        position,
        borrowed_amount=position.borrowed_amount - principal_reduced,
        accumulated_interest=position.accumulated_interest - interest_reduced,
        collateral_amount=position.collateral_amount - collateral_seized,
    )
    return updated, principal_reduced, interest_reduced


def total_supply(cash: int, pool: PoolState) -> int:
    """Underlying assets the shares claim: cash + borrows - reserves, floored at 0."""
    return max(0, cash + pool.total_borrows - pool.total_reserves)


def shares_for_deposit(amount: int, total_shares: int, total_assets: int) -> int:
    if total_shares == 0 or total_assets == 0:
        return amount
    return mul_div(amount, total_shares, total_assets)


def assets_for_shares(shares: int, total_shares: int, total_assets: int) -> int:
    if total_shares == 0:
        return 0
    return mul_div(shares, total_assets, total_shares)


# ============================================================================
# STATE HOLDER
# ============================================================================

class PositionLedger:
    """
    Single-writer owner of pool and position snapshots.

    Reads return immutable snapshots. The only mutation is commit(), which the
    vault calls once an operation's transfers have been applied.
    """

    def __init__(self, initial_block: int = 0):
        self.pool = PoolState(last_accrual_block=initial_block)
        self._positions: Dict[str, Position] = {}
        self._shares: Dict[str, int] = {}

    def get_position(self, user: str) -> Position:
        return self._positions.get(user, EMPTY_POSITION)

    def share_balance(self, user: str) -> int:
        return self._shares.get(user, 0)

    def share_balances(self) -> Dict[str, int]:
        return dict(self._shares)

    def commit(
        self,
        pool: Optional[PoolState] = None,
        positions: Optional[Mapping[str, Position]] = None,
        shares: Optional[Mapping[str, int]] = None,
    ) -> None:
        """Replace the given snapshots. Zero share balances are dropped."""
        if pool is not None:
            self.pool = pool
        for user, position in (positions or {}).items():
            self._positions[user] = position
        for user, balance in (shares or {}).items():
            if balance:
                self._shares[user] = balance
            else:
                self._shares.pop(user, None)

    def list_positions(self) -> List[str]:
        """Users holding collateral or debt, sorted."""
        return sorted(u for u, p in self._positions.items() if not p.is_empty())

    def total_position_debt(self) -> int:
        return sum(p.total_debt for p in self._positions.values())
