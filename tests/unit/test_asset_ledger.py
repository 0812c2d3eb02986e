"""
test_asset_ledger.py - Unit tests for AssetLedger

Tests:
- Wallet registration and issuance
- Atomic execution and rejection
- Move validation
- Block clock
- Conservation
"""

import pytest

from lendledger import (
    AssetLedger, Move, PendingTransfer, TransactionOrigin, OriginType,
    ExecuteResult, Clock, SYSTEM_WALLET,
    LedgerError, InsufficientFunds, WalletNotRegistered,
)


@pytest.fixture
def empty():
    ledger = AssetLedger("unit", symbol="USDC")
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def funded(empty):
    empty.mint("alice", 1_000)
    return empty


class TestRegistration:

    def test_system_wallet_preregistered(self, empty):
        assert empty.is_registered(SYSTEM_WALLET)

    def test_duplicate_rejected(self, empty):
        with pytest.raises(ValueError):
            empty.register_wallet("alice")

    def test_ensure_wallet_idempotent(self, empty):
        empty.ensure_wallet("alice")
        empty.ensure_wallet("carol")
        assert {"alice", "bob", "carol"} <= empty.list_wallets()

    def test_unregistered_balance_raises(self, empty):
        with pytest.raises(WalletNotRegistered):
            empty.get_balance("mallory")


class TestIssuance:

    def test_mint_debits_system_wallet(self, funded):
        assert funded.get_balance("alice") == 1_000
        assert funded.get_balance(SYSTEM_WALLET) == -1_000
        assert funded.circulating_supply() == 1_000

    def test_mint_to_unregistered_rejected(self, empty):
        with pytest.raises(LedgerError):
            empty.mint("mallory", 10)


class TestExecution:

    def test_transfer(self, funded):
        funded.transfer("alice", "bob", 300)
        assert funded.get_balance("alice") == 700
        assert funded.get_balance("bob") == 300

    def test_insufficient_funds(self, funded):
        with pytest.raises(InsufficientFunds):
            funded.transfer("alice", "bob", 1_001)
        assert funded.get_balance("alice") == 1_000

    def test_unregistered_wallet(self, funded):
        with pytest.raises(WalletNotRegistered):
            funded.transfer("alice", "mallory", 1)

    def test_multi_move_all_or_nothing(self, funded):
        pending = funded.build([
            Move(500, "alice", "bob", "first"),
            Move(600, "alice", "bob", "second"),
        ])
        assert funded.execute(pending) == ExecuteResult.REJECTED
        assert funded.get_balance("alice") == 1_000
        assert funded.get_balance("bob") == 0

    def test_net_validation_allows_pass_through(self, funded):
        # bob holds nothing but forwards what he receives in the same transfer
        pending = funded.build([
            Move(100, "bob", "alice", "forward"),
            Move(100, "alice", "bob", "fund"),
        ])
        assert funded.execute(pending) == ExecuteResult.APPLIED
        assert funded.get_balance("bob") == 0

    def test_future_block_rejected(self, funded):
        pending = PendingTransfer(
            moves=(Move(1, "alice", "bob", "early"),),
            origin=TransactionOrigin(OriginType.USER_ACTION, "alice"),
            block=5,
        )
        assert funded.validate(pending) == (False, "future block")

    def test_empty_transfer_applies(self, funded):
        assert funded.execute(funded.build([])) == ExecuteResult.APPLIED
        assert len(funded.transaction_log) == 1   # only the mint

    def test_audit_log(self, funded):
        funded.transfer("alice", "bob", 1)
        tx = funded.transaction_log[-1]
        assert tx.exec_id == "exec:unit:000000000001:0"
        assert tx.sequence_number == 1
        assert tx.moves[0].reason == "transfer"

    def test_verbose_prints_transfer(self, capsys):
        ledger = AssetLedger("loud", verbose=True)
        ledger.register_wallet("alice")
        ledger.mint("alice", 5)
        assert "Transfer: exec:loud" in capsys.readouterr().out


class TestMoveValidation:

    def test_positive_quantity(self):
        with pytest.raises(ValueError):
            Move(0, "alice", "bob", "zero")
        with pytest.raises(ValueError):
            Move(-1, "alice", "bob", "negative")

    def test_integer_quantity(self):
        with pytest.raises(ValueError):
            Move(1.5, "alice", "bob", "float")

    def test_distinct_wallets(self):
        with pytest.raises(ValueError):
            Move(1, "alice", "alice", "self")

    def test_non_empty_wallets(self):
        with pytest.raises(ValueError):
            Move(1, " ", "bob", "blank")


class TestClock:

    def test_implements_clock(self, empty):
        assert isinstance(empty, Clock)

    def test_advance(self, empty):
        assert empty.advance_blocks(10) == 10
        assert empty.current_block == 10

    def test_cannot_go_backwards(self, empty):
        with pytest.raises(ValueError):
            empty.advance_blocks(-1)


class TestConservation:

    def test_valid_after_activity(self, funded):
        funded.transfer("alice", "bob", 250)
        report = funded.verify_conservation()
        assert report['valid']
        assert report['total_supply'] == 0
        assert report['negative_wallets'] == []
