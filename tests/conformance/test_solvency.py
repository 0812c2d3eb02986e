"""
Solvency Conformance Tests

INVARIANTS, after any sequence of operations (accepted or rejected):
    Σ_{w ∈ wallets} balance(w) = 0          (the system wallet carries -issued)
    cash(vault) = balance(vault)
    total_shares = Σ shares(user)
    collateral, principal, interest, total_borrows, total_reserves >= 0
    An accepted borrow or withdraw leaves the caller's health factor >= 1.0

The pool total and the position debts accrue independently, so
total_borrows is NOT required to equal Σ debt(user).
"""

from hypothesis import given, settings, HealthCheck
from hypothesis import strategies as st

from lendledger import SCALE, HEALTH_FACTOR_MAX, LendingError
from tests.helpers import USERS, OPERATIONS, tokens, build_system, run_operation


# =============================================================================
# STRATEGIES
# =============================================================================

amount = st.one_of(
    st.integers(min_value=1, max_value=10 ** 6),              # dust
    st.integers(min_value=1, max_value=600).map(tokens),      # whole tokens
)

operation = st.tuples(
    st.sampled_from(OPERATIONS),
    st.sampled_from(USERS[:3]),
    amount,
)


def check_invariants(ledger, vault):
    report = ledger.verify_conservation()
    assert report['valid'], report

    assert vault.get_cash() == ledger.get_balance("vault")
    assert vault.total_shares() == sum(vault.state.share_balances().values())

    pool = vault.state.pool
    assert pool.total_borrows >= 0
    assert pool.total_reserves >= 0
    for user in USERS:
        position = vault.get_position(user)
        assert position.collateral_amount >= 0
        assert position.borrowed_amount >= 0
        assert position.accumulated_interest >= 0
        assert position.last_interest_update <= ledger.current_block


def threshold_covers_limit(vault):
    return vault.config.liquidation_threshold >= vault.config.collateral_factor


class TestSolvency:

    @given(st.lists(operation, min_size=1, max_size=30))
    @settings(max_examples=150, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_invariants_hold_for_any_sequence(self, operations):
        ledger, vault = build_system()

        for op, user, value in operations:
            try:
                run_operation(ledger, vault, op, user, value)
            except LendingError:
                pass
            else:
                if op == "withdraw" or (op == "borrow" and threshold_covers_limit(vault)):
                    assert vault.get_user_health_factor(user) >= SCALE
            check_invariants(ledger, vault)

    @given(st.lists(st.integers(min_value=1, max_value=500), min_size=1, max_size=10))
    @settings(max_examples=50, deadline=None)
    def test_full_repayment_clears_debt(self, borrows):
        ledger, vault = build_system()
        run_operation(ledger, vault, "deposit", "bob", tokens(2_000))
        run_operation(ledger, vault, "deposit", "alice", tokens(1_000))

        for step in borrows:
            vault.accrue_interest("alice")
            limit = vault.get_max_borrow("alice")
            if limit > 0:
                vault.borrow("alice", min(tokens(step), limit))
            ledger.advance_blocks(step)

        run_operation(ledger, vault, "repay", "alice", tokens(5_000))
        assert vault.get_position("alice").total_debt == 0
        assert vault.get_user_health_factor("alice") == HEALTH_FACTOR_MAX
        assert vault.get_max_borrow("alice") == tokens(750)
        check_invariants(ledger, vault)
