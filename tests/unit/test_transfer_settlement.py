"""
test_transfer_settlement.py - Unit tests for the pull-then-push transfer collaborator

Tests:
- Approvals and allowance consumption
- One-shot pull/push
- Settlements: staging, single ledger transaction, staged reads
- Rejection: nothing applied, rollbacks run, commits skipped
- Nested settlements and savepoints
"""

import pytest

from lendledger import (
    AssetLedger, LedgerAssetTransfer, AssetTransfer,
    TransferFailed, InsufficientAllowance, InvalidAmount,
)


@pytest.fixture
def ledger():
    ledger = AssetLedger("unit")
    for wallet in ("alice", "bob", "pool"):
        ledger.register_wallet(wallet)
    ledger.mint("alice", 1_000)
    return ledger


@pytest.fixture
def transfers(ledger):
    return LedgerAssetTransfer(ledger)


class TestApprovals:

    def test_implements_protocol(self, transfers):
        assert isinstance(transfers, AssetTransfer)

    def test_default_allowance_is_zero(self, transfers):
        assert transfers.allowance("alice", "pool") == 0

    def test_approve_sets_not_adds(self, transfers):
        transfers.approve("alice", "pool", 100)
        transfers.approve("alice", "pool", 40)
        assert transfers.allowance("alice", "pool") == 40

    def test_negative_approval_rejected(self, transfers):
        with pytest.raises(InvalidAmount):
            transfers.approve("alice", "pool", -1)


class TestOneShot:

    def test_pull_consumes_allowance(self, transfers, ledger):
        transfers.approve("alice", "pool", 100)
        transfers.pull("alice", "pool", 60)
        assert ledger.get_balance("pool") == 60
        assert transfers.allowance("alice", "pool") == 40

    def test_pull_without_approval(self, transfers, ledger):
        with pytest.raises(InsufficientAllowance):
            transfers.pull("alice", "pool", 1)
        assert ledger.get_balance("alice") == 1_000

    def test_pull_more_than_balance(self, transfers, ledger):
        transfers.approve("alice", "pool", 5_000)
        with pytest.raises(TransferFailed):
            transfers.pull("alice", "pool", 5_000)
        assert ledger.get_balance("alice") == 1_000
        assert transfers.allowance("alice", "pool") == 5_000

    def test_push(self, transfers, ledger):
        transfers.push("alice", "bob", 10)
        assert ledger.get_balance("bob") == 10

    def test_push_zero_rejected(self, transfers):
        with pytest.raises(InvalidAmount):
            transfers.push("alice", "bob", 0)


class TestSettlement:

    def test_single_ledger_transaction(self, transfers, ledger):
        transfers.approve("alice", "pool", 100)
        before = len(ledger.transaction_log)
        with transfers.settlement() as settlement:
            settlement.pull("alice", "pool", 100)
            settlement.push("pool", "bob", 30)
            assert ledger.get_balance("pool") == 0
        assert len(ledger.transaction_log) == before + 1
        assert len(ledger.transaction_log[-1].moves) == 2
        assert ledger.get_balance("pool") == 70
        assert ledger.get_balance("bob") == 30

    def test_staged_reads(self, transfers):
        transfers.approve("alice", "pool", 100)
        with transfers.settlement() as settlement:
            settlement.pull("alice", "pool", 100)
            assert transfers.balance_of("pool") == 100
            assert transfers.allowance("alice", "pool") == 0
            assert settlement.net_flows() == {"alice": -100, "pool": 100}
        assert not transfers.in_settlement

    def test_commit_callbacks_after_apply(self, transfers, ledger):
        seen = []
        with transfers.settlement() as settlement:
            settlement.push("alice", "bob", 5)
            settlement.on_commit(lambda: seen.append(ledger.get_balance("bob")))
            settlement.on_commit(lambda: seen.append("second"))
        assert seen == [5, "second"]

    def test_rejection_applies_nothing(self, transfers, ledger):
        committed, rolled_back = [], []
        transfers.approve("alice", "pool", 10)
        with pytest.raises(TransferFailed, match="pool"):
            with transfers.settlement() as settlement:
                settlement.pull("alice", "pool", 10)
                settlement.push("pool", "bob", 50)
                settlement.approve("bob", "pool", 99)
                settlement.on_commit(lambda: committed.append(True))
                settlement.on_rollback(lambda: rolled_back.append(True))
        assert ledger.get_balance("alice") == 1_000
        assert ledger.get_balance("pool") == 0
        assert transfers.allowance("alice", "pool") == 10
        assert transfers.allowance("bob", "pool") == 0
        assert committed == []
        assert rolled_back == [True]

    def test_exception_in_block_applies_nothing(self, transfers, ledger):
        rolled_back = []
        with pytest.raises(RuntimeError):
            with transfers.settlement() as settlement:
                settlement.push("alice", "bob", 5)
                settlement.on_rollback(lambda: rolled_back.append(True))
                raise RuntimeError("boom")
        assert ledger.get_balance("bob") == 0
        assert rolled_back == [True]

    def test_rollbacks_run_newest_first(self, transfers):
        order = []
        with pytest.raises(RuntimeError):
            with transfers.settlement() as settlement:
                settlement.on_rollback(lambda: order.append(1))
                settlement.on_rollback(lambda: order.append(2))
                raise RuntimeError("boom")
        assert order == [2, 1]


class TestNestedSettlement:

    def test_inner_joins_outer(self, transfers, ledger):
        before = len(ledger.transaction_log)
        with transfers.settlement() as outer:
            outer.push("alice", "bob", 1)
            with transfers.settlement() as inner:
                assert inner is outer
                inner.push("alice", "bob", 2)
        assert len(ledger.transaction_log) == before + 1
        assert ledger.get_balance("bob") == 3

    def test_inner_failure_discards_only_inner(self, transfers, ledger):
        inner_rolled_back, inner_committed = [], []
        with transfers.settlement() as outer:
            outer.push("alice", "bob", 1)
            with pytest.raises(RuntimeError):
                with transfers.settlement() as inner:
                    inner.push("alice", "bob", 100)
                    inner.approve("alice", "bob", 7)
                    inner.on_commit(lambda: inner_committed.append(True))
                    inner.on_rollback(lambda: inner_rolled_back.append(True))
                    raise RuntimeError("inner")
            assert transfers.balance_of("bob") == 1
        assert ledger.get_balance("bob") == 1
        assert transfers.allowance("alice", "bob") == 0
        assert inner_rolled_back == [True]
        assert inner_committed == []

    def test_outer_failure_rolls_back_inner_work(self, transfers, ledger):
        rolled_back = []
        with pytest.raises(TransferFailed):
            with transfers.settlement() as outer:
                with transfers.settlement() as inner:
                    inner.push("alice", "bob", 1)
                    inner.on_rollback(lambda: rolled_back.append("inner"))
                outer.push("bob", "pool", 500)
        assert ledger.get_balance("bob") == 0
        assert rolled_back == ["inner"]
