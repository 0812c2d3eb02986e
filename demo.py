#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Vault Step by Step

A pedagogical walk through one vault's life. Each step builds on the previous
one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Setup         - The asset ledger, roles, the vault and the agent
  4-6:   Borrowing     - Deposits, shares, borrow limits, rejections
  7-8:   Interest      - Block clock, pool accrual, position accrual
  9-10:  Liquidation   - Threshold change, buffered liquidation via the agent
  11-12: Wind-down     - Pause asymmetry, repayment, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass, replace
import sys

from lendledger import (
    AssetLedger, LedgerAssetTransfer, RoleRegistry, EventLog,
    Vault, LiquidationAgent,
    SCALE, LIQUIDATION_OPERATOR, LIQUIDATION_BUFFER,
    LendingError, to_scaled,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    initial_balance: int = 10_000 * SCALE
    lender_deposit: int = 5_000 * SCALE
    borrower_deposit: int = 1_000 * SCALE
    borrow_amount: int = 700 * SCALE
    blocks_elapsed: int = 262_800          # about 36 days at 12s blocks
    stressed_threshold: int = to_scaled(70)


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def fmt(amount: int) -> str:
    """Base units as whole tokens."""
    return f"{amount / SCALE:,.4f}"


def pct(fraction: int) -> str:
    return f"{fraction * 100 / SCALE:.2f}%"


def show_position(vault: Vault, user: str):
    position = vault.get_position(user)
    health = vault.get_user_health_factor(user)
    print(f"  {user:<10} collateral={fmt(position.collateral_amount):>12}"
          f"  principal={fmt(position.borrowed_amount):>10}"
          f"  interest={fmt(position.accumulated_interest):>8}"
          f"  health={'inf' if position.total_debt == 0 else f'{health / SCALE:.4f}'}")


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_asset_ledger():
    step_header(1, "The Asset Ledger",
        "Every token movement is a balanced ledger transaction.")

    ledger = AssetLedger("tutorial", symbol="USDC", verbose=True)
    for wallet in ("admin", "alice", "bob", "keeper", "vault", "agent"):
        ledger.register_wallet(wallet)
    for user in ("alice", "bob", "keeper"):
        ledger.mint(user, CONFIG.initial_balance)

    section_header("Balances")
    for wallet, balance in sorted(ledger.get_balances().items()):
        print(f"  {wallet:<10} {fmt(balance):>14}")
    print("\n  The system wallet is negative by exactly what was issued.")
    return ledger


def step_02_roles_and_vault(ledger: AssetLedger):
    step_header(2, "Roles and the Vault",
        "The vault moves funds only through pull-then-push transfers.")

    asset = LedgerAssetTransfer(ledger)
    roles = RoleRegistry(admins=["admin"])
    roles.grant_role("admin", "keeper", LIQUIDATION_OPERATOR)
    events = EventLog(verbose=True)
    vault = Vault("vault", asset, clock=ledger, authorizer=roles, notifications=events)

    config = vault.config
    print(f"  collateral factor     {pct(config.collateral_factor)}")
    print(f"  liquidation threshold {pct(config.liquidation_threshold)}")
    print(f"  liquidation bonus     {pct(config.liquidation_bonus)}")
    print(f"  reserve factor        {pct(config.reserve_factor)}")
    return asset, roles, events, vault


def step_03_agent(asset, roles, events, ledger, vault):
    step_header(3, "The Liquidation Agent",
        "An agent only acts on vaults an administrator told it to trust.")

    agent = LiquidationAgent("agent", asset, roles, notifications=events, clock=ledger)
    agent.authorize_vault("admin", vault)
    print(f"\n  Trusts vault: {agent.is_vault_authorized(vault)}")
    print(f"  Buffer pulled per liquidation: {LIQUIDATION_BUFFER / SCALE:.2f} x debt")
    return agent


# ============================================================================
# PHASE 2: BORROWING (Steps 4-6)
# ============================================================================

def step_04_deposits(asset, vault: Vault):
    step_header(4, "Deposits Mint Shares",
        "Approve, then deposit. The first deposit prices shares 1:1.")

    for user, amount in (("bob", CONFIG.lender_deposit), ("alice", CONFIG.borrower_deposit)):
        asset.approve(user, vault.vault_id, amount)
        shares = vault.deposit(user, amount)
        print(f"  {user} deposited {fmt(amount)} for {fmt(shares)} shares")

    section_header("Pool")
    print(f"  cash {fmt(vault.get_cash())}   total shares {fmt(vault.total_shares())}")


def step_05_borrow(vault: Vault):
    step_header(5, "Borrowing Against Collateral",
        "A position may borrow up to collateral x collateral factor.")

    print(f"  alice may borrow {fmt(vault.get_max_borrow('alice'))}")
    vault.borrow("alice", CONFIG.borrow_amount)
    show_position(vault, "alice")
    print(f"\n  utilization {pct(vault.get_utilization_rate())}"
          f"   borrow rate {pct(vault.get_borrow_rate())}"
          f"   supply rate {pct(vault.get_supply_rate())}")


def step_06_rejection(vault: Vault):
    step_header(6, "Rejections Change Nothing",
        "A rejected call raises and leaves every balance untouched.")

    vault.verbose = True
    try:
        vault.borrow("alice", 100 * SCALE)
    except LendingError as exc:
        print(f"\n  caught {type(exc).__name__}")
    vault.verbose = False
    show_position(vault, "alice")


# ============================================================================
# PHASE 3: INTEREST (Steps 7-8)
# ============================================================================

def step_07_time(ledger: AssetLedger, vault: Vault):
    step_header(7, "The Block Clock",
        "Interest is simple and linear in the blocks elapsed since the checkpoint.")

    ledger.advance_blocks(CONFIG.blocks_elapsed)
    print(f"  block {ledger.current_block}: nothing accrues until someone calls in")
    show_position(vault, "alice")


def step_08_accrual(vault: Vault):
    step_header(8, "Pool and Position Accrual",
        "The pool total and each position accrue separately.")

    interest = vault.accrue_interest("alice")
    print(f"\n  pool interest   {fmt(interest)}")
    print(f"  reserves        {fmt(vault.get_total_reserves())}")
    print(f"  debt drift      {vault.get_debt_drift()} base units")
    show_position(vault, "alice")


# ============================================================================
# PHASE 4: LIQUIDATION (Steps 9-10)
# ============================================================================

def step_09_stress(vault: Vault, agent: LiquidationAgent):
    step_header(9, "Tightening the Threshold",
        "An admin config change can push a position below health 1.0.")

    vault.update_config("admin", replace(vault.config, liquidation_threshold=CONFIG.stressed_threshold))
    show_position(vault, "alice")
    for opportunity in agent.scan(vault):
        print(f"\n  opportunity: {opportunity.borrower} profit ~{fmt(opportunity.expected_profit)}")


def step_10_liquidate(ledger: AssetLedger, asset, vault: Vault, agent: LiquidationAgent):
    step_header(10, "Buffered Liquidation",
        "The keeper funds the agent; everything settles as one transaction.")

    asset.approve("keeper", "agent", 1_000 * SCALE)
    before = ledger.get_balance("keeper")
    collateral = agent.liquidate("keeper", vault, "alice")
    record = agent.get_liquidation_history("alice")[-1]

    print(f"\n  debt covered   {fmt(record.debt_covered)}")
    print(f"  collateral     {fmt(collateral)}")
    print(f"  keeper gained  {fmt(ledger.get_balance('keeper') - before)}")
    show_position(vault, "alice")


# ============================================================================
# PHASE 5: WIND-DOWN (Steps 11-12)
# ============================================================================

def step_11_pause(asset, vault: Vault):
    step_header(11, "Pause Asymmetry",
        "Paused vaults refuse new risk but always let users reduce it.")

    vault.pause("admin")
    try:
        vault.borrow("alice", SCALE)
    except LendingError as exc:
        print(f"  borrow while paused: {type(exc).__name__}")

    asset.approve("alice", vault.vault_id, 1_000 * SCALE)
    repaid = vault.repay("alice", 1_000 * SCALE)
    print(f"  repay while paused: {fmt(repaid)} repaid")
    show_position(vault, "alice")
    vault.unpause("admin")


def step_12_conservation(ledger: AssetLedger, vault: Vault):
    step_header(12, "Conservation Proof",
        "Across every operation, value was only moved, never created.")

    report = ledger.verify_conservation()
    print(f"  sum of all wallets: {report['total_supply']}")
    print(f"  negative wallets:   {report['negative_wallets'] or 'none'}")
    print(f"  vault cash:         {fmt(vault.get_cash())}")
    print(f"  transactions:       {len(ledger.transaction_log)}")
    print(f"\n  CONSERVATION {'HOLDS' if report['valid'] else 'VIOLATED'}")


def main():
    print("=" * 70)
    print("       LENDING VAULT - INTERACTIVE TUTORIAL")
    print("=" * 70)
    print("Running in QUICK mode (no pauses)" if QUICK_MODE
          else "Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger = step_01_asset_ledger()
    wait_for_enter()
    asset, roles, events, vault = step_02_roles_and_vault(ledger)
    wait_for_enter()
    agent = step_03_agent(asset, roles, events, ledger, vault)
    wait_for_enter()

    ledger.verbose = False
    events.verbose = False

    step_04_deposits(asset, vault)
    wait_for_enter()
    step_05_borrow(vault)
    wait_for_enter()
    step_06_rejection(vault)
    wait_for_enter()

    step_07_time(ledger, vault)
    wait_for_enter()
    step_08_accrual(vault)
    wait_for_enter()

    step_09_stress(vault, agent)
    wait_for_enter()
    step_10_liquidate(ledger, asset, vault, agent)
    wait_for_enter()

    step_11_pause(asset, vault)
    wait_for_enter()
    step_12_conservation(ledger, vault)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See lendledger/vault.py for the operation pipeline
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
