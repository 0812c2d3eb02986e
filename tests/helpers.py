"""
helpers.py - Test helpers for lending tests

Amount construction and the approve-then-act steps every user flow repeats.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Dict, Tuple

from lendledger import (
    SCALE, AssetLedger, LedgerAssetTransfer, RoleRegistry, EventLog, Vault, to_scaled,
)


USERS = ("alice", "bob", "carol", "liquidator", "keeper")


def tokens(amount: int) -> int:
    """Whole tokens in base units (tokens(1) == SCALE)."""
    return amount * SCALE


INITIAL_BALANCE = tokens(10_000)


def deposit(vault: Vault, user: str, amount: int) -> int:
    vault.asset.approve(user, vault.vault_id, amount)
    return vault.deposit(user, amount)


def repay(vault: Vault, user: str, amount: int) -> int:
    vault.asset.approve(user, vault.vault_id, amount)
    return vault.repay(user, amount)


def liquidate(vault: Vault, liquidator: str, borrower: str) -> int:
    """Approve the whole debt (more than enough for the close factor) and liquidate."""
    vault.asset.approve(liquidator, vault.vault_id, vault.get_position(borrower).total_debt + SCALE)
    return vault.liquidate(liquidator, borrower)


def lower_threshold(vault: Vault, percent: int, admin: str = "admin") -> None:
    vault.update_config(admin, replace(vault.config, liquidation_threshold=to_scaled(percent)))


def snapshot(vault: Vault) -> Dict[str, object]:
    """Everything a rejected operation must leave untouched."""
    ledger = vault.asset.ledger
    return {
        'pool': vault.state.pool,
        'positions': {u: vault.get_position(u) for u in USERS},
        'shares': vault.state.share_balances(),
        'balances': ledger.get_balances(),
        'log_length': len(ledger.transaction_log),
        'config': vault.config,
    }


def build_system(verbose: bool = False) -> Tuple[AssetLedger, Vault]:
    """
    Fresh ledger, transfer collaborator, roles and default vault.

    For property-based tests, which cannot share function-scoped fixtures
    across generated examples.
    """
    ledger = AssetLedger("prop", verbose=verbose)
    for wallet in USERS + ("admin", "vault"):
        ledger.register_wallet(wallet)
    for user in USERS:
        ledger.mint(user, INITIAL_BALANCE)
    asset = LedgerAssetTransfer(ledger)
    roles = RoleRegistry(admins=["admin"])
    vault = Vault("vault", asset, clock=ledger, authorizer=roles, notifications=EventLog())
    return ledger, vault


OPERATIONS = ("deposit", "withdraw", "borrow", "repay", "liquidate", "advance", "accrue", "threshold", "pause")


def run_operation(ledger: AssetLedger, vault: Vault, op: str, user: str, amount: int) -> None:
    """Drive one user-level step; rejections propagate as LendingError."""
    if op == "deposit":
        deposit(vault, user, amount)
    elif op == "withdraw":
        vault.withdraw(user, amount)
    elif op == "borrow":
        vault.borrow(user, amount)
    elif op == "repay":
        repay(vault, user, amount)
    elif op == "liquidate":
        liquidate(vault, "liquidator", user)
    elif op == "advance":
        ledger.advance_blocks(amount % 50_000)
    elif op == "accrue":
        vault.accrue_interest(user)
    elif op == "threshold":
        lower_threshold(vault, 60 + amount % 21)
    elif op == "pause":
        if vault.config.paused:
            vault.unpause("admin")
        else:
            vault.pause("admin")
    else:
        raise ValueError(f"Unknown operation: {op}")
