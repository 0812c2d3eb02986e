"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, functional and conformance tests:
- A funded asset ledger with the standard cast of wallets
- The pull-then-push transfer collaborator over it
- A role registry with one administrator and one liquidation operator
- A vault with the default configuration and an in-memory event log
- A liquidation agent that trusts the vault
"""

import pytest

from lendledger import (
    AssetLedger, LedgerAssetTransfer, RoleRegistry, EventLog,
    Vault, VaultConfig, LiquidationAgent,
    LIQUIDATION_OPERATOR,
)

from tests.helpers import tokens, deposit, lower_threshold, USERS, INITIAL_BALANCE


# =============================================================================
# COLLABORATORS
# =============================================================================

@pytest.fixture
def ledger():
    """Asset ledger with every test wallet registered and users funded."""
    ledger = AssetLedger("test", symbol="USDC", verbose=False)
    for wallet in USERS + ("admin", "vault", "vault2", "agent"):
        ledger.register_wallet(wallet)
    for user in USERS:
        ledger.mint(user, INITIAL_BALANCE)
    return ledger


@pytest.fixture
def asset(ledger):
    return LedgerAssetTransfer(ledger)


@pytest.fixture
def roles():
    """'admin' administers; 'keeper' may liquidate when liquidation is restricted."""
    roles = RoleRegistry(admins=["admin"])
    roles.grant_role("admin", "keeper", LIQUIDATION_OPERATOR)
    return roles


@pytest.fixture
def events():
    return EventLog(verbose=False)


# =============================================================================
# ENGINE
# =============================================================================

@pytest.fixture
def vault(ledger, asset, roles, events):
    """Vault with the default configuration (CF 0.75, LT 0.80, bonus 0.05)."""
    return Vault("vault", asset, clock=ledger, authorizer=roles, notifications=events)


@pytest.fixture
def restricted_vault(ledger, asset, roles, events):
    """Vault that only lets LIQUIDATION_OPERATOR holders liquidate."""
    return Vault(
        "vault2", asset, clock=ledger, authorizer=roles,
        config=VaultConfig(public_liquidation=False), notifications=events,
    )


@pytest.fixture
def agent(ledger, asset, roles, vault, events):
    """Agent trusting `vault`; operators need LIQUIDATION_OPERATOR."""
    agent = LiquidationAgent("agent", asset, roles, notifications=events, clock=ledger)
    agent.authorize_vault("admin", vault)
    return agent


@pytest.fixture
def underwater(vault):
    """
    alice deposits 100 and borrows 75; the threshold is then lowered to 0.70,
    leaving her health factor at 0.933.
    """
    deposit(vault, "alice", tokens(100))
    vault.borrow("alice", tokens(75))
    lower_threshold(vault, 70)
    return "alice"
