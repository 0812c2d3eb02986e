"""
test_rate_curve.py - Unit tests for the kinked interest rate curve

Tests:
- Utilization: zero borrows, plain ratio, reserves, cap at 100%, overflow
- Borrow rate below, at and above the kink
- Supply rate and its dependence on the reserve factor
- Per-period conversion
- Parameter validation
"""

import pytest

from lendledger import (
    SCALE, MAX_UINT256, PERIODS_PER_YEAR,
    JumpRateModel, RateModel, utilization_rate,
    BASE_RATE, MULTIPLIER, JUMP_MULTIPLIER, KINK,
    ArithmeticOverflow, InvalidConfiguration,
    to_scaled,
)
from tests.helpers import tokens


@pytest.fixture
def model():
    return JumpRateModel()


# ============================================================================
# UTILIZATION
# ============================================================================

class TestUtilization:

    def test_zero_when_nothing_borrowed(self, model):
        assert model.utilization_rate(tokens(1000), 0, 0) == 0

    def test_plain_ratio(self, model):
        assert model.utilization_rate(tokens(500), tokens(500), 0) == SCALE // 2

    def test_full_utilization(self, model):
        assert model.utilization_rate(0, tokens(100), 0) == SCALE

    def test_reserves_reduce_denominator(self, model):
        cash, borrows, reserves = tokens(400), tokens(500), tokens(100)
        expected = borrows * SCALE // (cash + borrows - reserves)
        assert model.utilization_rate(cash, borrows, reserves) == expected

    def test_capped_when_reserves_exceed_cash(self, model):
        assert model.utilization_rate(0, tokens(100), tokens(50)) == SCALE

    def test_zero_when_denominator_not_positive(self, model):
        assert model.utilization_rate(0, tokens(10), tokens(10)) == 0
        assert model.utilization_rate(0, tokens(10), tokens(20)) == 0

    def test_smallest_amounts(self, model):
        assert model.utilization_rate(1, 1, 0) == SCALE // 2
        assert model.borrow_rate(1, 1, 0) > 0

    def test_large_amounts(self, model):
        cash, borrows = tokens(1_000_000_000), tokens(500_000_000)
        assert model.utilization_rate(cash, borrows, 0) <= SCALE
        assert model.borrow_rate(cash, borrows, 0) > 0

    def test_overflow_rejected(self, model):
        with pytest.raises(ArithmeticOverflow, match="Calculation overflow"):
            model.utilization_rate(0, MAX_UINT256 // 2, 0)

    def test_module_function_matches_model(self, model):
        assert utilization_rate(tokens(20), tokens(80), 0) == model.utilization_rate(tokens(20), tokens(80), 0)


# ============================================================================
# BORROW RATE
# ============================================================================

class TestBorrowRate:

    def test_base_rate_at_zero_utilization(self, model):
        assert model.borrow_rate(tokens(1000), 0, 0) == BASE_RATE == to_scaled(2)

    def test_linear_below_kink(self, model):
        # 50% utilization: 2% + 50% * 10%
        assert model.borrow_rate(tokens(500), tokens(500), 0) == to_scaled(7)

    def test_at_kink(self, model):
        # 80% utilization: 2% + 80% * 10%
        assert model.borrow_rate(tokens(20), tokens(80), 0) == to_scaled(10)

    def test_jump_above_kink(self, model):
        # 90% utilization: 10% at the kink + 10% * 50%
        assert model.borrow_rate(tokens(10), tokens(90), 0) == to_scaled(15)

    def test_continuous_at_kink(self, model):
        linear = model.base_rate + KINK * model.multiplier // SCALE
        jump = linear + (KINK - KINK) * model.jump_multiplier // SCALE
        assert model.rate_at(KINK) == linear == jump

    def test_one_wei_past_kink_uses_jump_slope(self, model):
        assert model.rate_at(KINK + 10 ** 6) - model.rate_at(KINK) == 10 ** 6 * JUMP_MULTIPLIER // SCALE

    def test_default_parameters(self, model):
        assert (model.base_rate, model.multiplier, model.jump_multiplier, model.kink) == (
            BASE_RATE, MULTIPLIER, JUMP_MULTIPLIER, KINK
        )


# ============================================================================
# SUPPLY RATE
# ============================================================================

class TestSupplyRate:

    def test_zero_at_zero_utilization(self, model):
        assert model.supply_rate(tokens(1000), 0, 0, to_scaled(10)) == 0

    def test_borrow_rate_net_of_reserves_times_utilization(self, model):
        # 80% utilization, 10% borrow rate, 10% reserve factor: 0.8 * 0.1 * 0.9
        assert model.supply_rate(tokens(20), tokens(80), 0, to_scaled(10)) == to_scaled(72, 1000)

    def test_zero_reserve_factor(self, model):
        assert model.supply_rate(tokens(20), tokens(80), 0, 0) == to_scaled(8)

    def test_decreases_with_reserve_factor(self, model):
        low = model.supply_rate(tokens(500), tokens(500), 0, to_scaled(10))
        high = model.supply_rate(tokens(500), tokens(500), 0, to_scaled(20))
        assert high < low

    def test_full_reserve_factor_leaves_nothing(self, model):
        assert model.supply_rate(tokens(20), tokens(80), 0, SCALE) == 0

    def test_reserve_factor_out_of_range(self, model):
        with pytest.raises(InvalidConfiguration):
            model.supply_rate(tokens(20), tokens(80), 0, SCALE + 1)


# ============================================================================
# PER-PERIOD RATES
# ============================================================================

class TestPerPeriod:

    def test_periods_per_year(self):
        assert PERIODS_PER_YEAR == 2_628_000

    def test_borrow_rate_per_period_truncates(self, model):
        annual = model.borrow_rate(tokens(20), tokens(80), 0)
        assert model.borrow_rate_per_period(tokens(20), tokens(80), 0) == annual // PERIODS_PER_YEAR

    def test_supply_rate_per_period(self, model):
        annual = model.supply_rate(tokens(20), tokens(80), 0, to_scaled(10))
        per_period = model.supply_rate_per_period(tokens(20), tokens(80), 0, to_scaled(10))
        assert per_period == annual // PERIODS_PER_YEAR
        assert per_period > 0


# ============================================================================
# CONSTRUCTION
# ============================================================================

class TestConstruction:

    def test_implements_protocol(self, model):
        assert isinstance(model, RateModel)

    def test_custom_curve(self):
        flat = JumpRateModel(base_rate=to_scaled(5), multiplier=0, jump_multiplier=0)
        assert flat.borrow_rate(tokens(10), tokens(90), 0) == to_scaled(5)

    def test_kink_above_scale_rejected(self):
        with pytest.raises(InvalidConfiguration):
            JumpRateModel(kink=SCALE + 1)

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidConfiguration):
            JumpRateModel(base_rate=-1)

    def test_immutable(self, model):
        with pytest.raises(AttributeError):
            model.kink = 0
