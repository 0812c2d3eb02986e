"""
transfer.py - Pull-then-push asset transfers over an AssetLedger

The vault never touches balances directly. It asks this collaborator to pull
funds an owner approved, and to push funds it holds. Transfers belonging to
one operation are grouped in a Settlement:

    with asset.settlement() as settlement:
        settlement.pull(caller, vault_id, amount)
        settlement.push(vault_id, caller, payout)
        settlement.on_commit(lambda: commit_state())

Nothing touches the ledger until the outermost settlement exits. At that point
all staged moves run as a single AssetLedger transaction. If the ledger
rejects it, or the block raises, the on_rollback callbacks run (newest first)
and nothing else is applied: no moves, no allowance changes, no on_commit
callbacks. TransferFailed carries the ledger's rejection reason.

A settlement opened while another is active joins it. The inner block gets a
savepoint: if it raises, only its own staged work is discarded and only the
rollbacks it registered run.
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .core import (
    Move, TransactionOrigin, OriginType,
    InsufficientAllowance, InvalidAmount, TransferFailed,
    is_amount,
)
from .ledger import AssetLedger


AllowanceKey = Tuple[str, str]  # (owner, spender)
Savepoint = Tuple[int, Dict[AllowanceKey, int], int, int]


class Settlement:
    """
    Staged unit of work against the asset ledger.

    Reads (balance_of, allowance) see the staged effects, so code running
    inside a settlement observes its own pulls, pushes and approvals.
    """

    def __init__(self, transfers: LedgerAssetTransfer, origin: TransactionOrigin):
        self._transfers = transfers
        self.origin = origin
        self.moves: List[Move] = []
        self.allowances: Dict[AllowanceKey, int] = {}
        self.callbacks: List[Callable[[], None]] = []
        self.rollbacks: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Staged reads
    # ------------------------------------------------------------------

    def allowance(self, owner: str, spender: str) -> int:
        key = (owner, spender)
        if key in self.allowances:
            return self.allowances[key]
        return self._transfers.committed_allowance(owner, spender)

    def balance_of(self, account: str) -> int:
        balance = self._transfers.ledger.balances.get(account, 0)
        for move in self.moves:
            if move.source == account:
                balance -= move.quantity
            if move.dest == account:
                balance += move.quantity
        return balance

    def net_flows(self) -> Dict[str, int]:
        """Staged net change per account."""
        net: Dict[str, int] = defaultdict(int)
        for move in self.moves:
            net[move.source] -= move.quantity
            net[move.dest] += move.quantity
        return dict(net)

    # ------------------------------------------------------------------
    # Staged writes
    # ------------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set (not add to) the amount spender may pull from owner."""
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidAmount(f"Allowance must be a non-negative int, got {amount!r}")
        self.allowances[(owner, spender)] = amount

    def pull(self, owner: str, spender: str, amount: int) -> None:
        """
        Stage a move from owner to spender, consuming owner's approval.

        Raises:
            InvalidAmount: If amount is not a positive int
            InsufficientAllowance: If owner approved less than amount
        """
        if not is_amount(amount):
            raise InvalidAmount(f"Pull amount must be a positive int, got {amount!r}")
        approved = self.allowance(owner, spender)
        if approved < amount:
            raise InsufficientAllowance(
                f"{owner} approved {approved} for {spender}, {amount} required"
            )
        self.allowances[(owner, spender)] = approved - amount
        self.moves.append(Move(amount, owner, spender, f"pull:{self.origin.event_type or 'transfer'}"))

    def push(self, sender: str, recipient: str, amount: int) -> None:
        """Stage a move of funds sender already holds."""
        if not is_amount(amount):
            raise InvalidAmount(f"Push amount must be a positive int, got {amount!r}")
        self.moves.append(Move(amount, sender, recipient, f"push:{self.origin.event_type or 'transfer'}"))

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the staged transfers have been applied."""
        self.callbacks.append(callback)

    def on_rollback(self, callback: Callable[[], None]) -> None:
        """Run callback if the staged work is discarded."""
        self.rollbacks.append(callback)

    # ------------------------------------------------------------------
    # Savepoints for nested settlements
    # ------------------------------------------------------------------

    def savepoint(self) -> Savepoint:
        return len(self.moves), dict(self.allowances), len(self.callbacks), len(self.rollbacks)

    def rollback_to(self, savepoint: Savepoint) -> None:
        moves_len, allowances, callbacks_len, rollbacks_len = savepoint
        undo = self.rollbacks[rollbacks_len:]
        del self.rollbacks[rollbacks_len:]
        del self.moves[moves_len:]
        self.allowances = allowances
        del self.callbacks[callbacks_len:]
        for callback in reversed(undo):
            callback()

    def discard(self) -> None:
        self.rollback_to((0, {}, 0, 0))


class LedgerAssetTransfer:
    """
    AssetTransfer implementation backed by an AssetLedger.

    Keeps the approval table (owner, spender) -> amount and the currently
    open settlement. The one-shot pull/push/approve methods each run in their
    own settlement (or join the open one).
    """

    def __init__(self, ledger: AssetLedger):
        self.ledger = ledger
        self._allowances: Dict[AllowanceKey, int] = {}
        self._active: Optional[Settlement] = None

    @property
    def in_settlement(self) -> bool:
        return self._active is not None

    def committed_allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def balance_of(self, account: str) -> int:
        if self._active is not None:
            return self._active.balance_of(account)
        return self.ledger.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        if self._active is not None:
            return self._active.allowance(owner, spender)
        return self.committed_allowance(owner, spender)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        with self.settlement() as settlement:
            settlement.approve(owner, spender, amount)

    def pull(self, owner: str, spender: str, amount: int) -> None:
        with self.settlement(TransactionOrigin(OriginType.USER_ACTION, spender, "pull")) as settlement:
            settlement.pull(owner, spender, amount)

    def push(self, sender: str, recipient: str, amount: int) -> None:
        with self.settlement(TransactionOrigin(OriginType.USER_ACTION, sender, "push")) as settlement:
            settlement.push(sender, recipient, amount)

    @contextmanager
    def settlement(self, origin: Optional[TransactionOrigin] = None) -> Iterator[Settlement]:
        """
        Open (or join) a settlement.

        Raises:
            TransferFailed: On exit of the outermost settlement, if the
                ledger rejects the staged moves.
        """
        if self._active is not None:
            scope = self._active
            savepoint = scope.savepoint()
            try:
                yield scope
            except Exception:
                scope.rollback_to(savepoint)
                raise
            return

        scope = Settlement(self, origin or TransactionOrigin(OriginType.USER_ACTION, "user"))
        self._active = scope
        try:
            yield scope
            self._execute(scope)
        except Exception:
            scope.discard()
            raise
        finally:
            self._active = None

        self._allowances.update(scope.allowances)
        for callback in scope.callbacks:
            callback()

    def _execute(self, scope: Settlement) -> None:
        if not scope.moves:
            return
        pending = self.ledger.build(scope.moves, scope.origin)
        valid, reason = self.ledger.validate(pending)
        if not valid:
            if self.ledger.verbose:
                print(f"✗ REJECTED: {reason}")
            raise TransferFailed(reason)
        self.ledger.execute(pending)
