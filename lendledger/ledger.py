"""
ledger.py - Stateful Ledger for a Single Fungible Asset

AssetLedger holds the balances of the one asset the lending vault deals in.
It is the only module that mutates asset balances, so every movement of funds
between users, vaults and agents is validated, applied atomically and logged.

Key responsibilities:
    - Wallet registration and issuance from SYSTEM_WALLET
    - Executes PendingTransfers atomically (all moves succeed or all fail)
    - Maintains the audit log of applied transfers
    - Tracks the block counter used as the accrual clock
    - Verifies conservation of total supply
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

from .core import (
    Move, PendingTransfer, Transfer, TransactionOrigin, OriginType,
    ExecuteResult, BalanceMap,
    SYSTEM_WALLET,
    LedgerError, InsufficientFunds, WalletNotRegistered,
    is_amount,
)


class AssetLedger:
    """
    Integer-balance ledger with full validation and an audit trail.

    Implements the Clock protocol: current_block is the accrual checkpoint
    counter read by vaults, and only moves forward.

    Thread Safety:
        Not thread-safe. Execution is strictly serialized.

    Example:
        ledger = AssetLedger("main", symbol="USDC")
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        ledger.mint("alice", 1_000)

        pending = ledger.build([Move(100, "alice", "bob", "payment")])
        result = ledger.execute(pending)
    """

    def __init__(
        self,
        name: str,
        symbol: str = "ASSET",
        initial_block: int = 0,
        verbose: bool = False,
    ):
        """
        Create an asset ledger.

        Args:
            name: Ledger identifier
            symbol: Symbol of the asset held in this ledger
            initial_block: Starting block number
            verbose: Print applied and rejected transfers (default: False)
        """
        self.name = name
        self.symbol = symbol
        self.verbose = verbose
        self.balances: Dict[str, int] = defaultdict(int)
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.transaction_log: List[Transfer] = []
        self._current_block: int = initial_block
        self._next_sequence: int = 0

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    @property
    def current_block(self) -> int:
        """Current block number."""
        return self._current_block

    def get_balance(self, wallet_id: str) -> int:
        """
        Balance of a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return self.balances.get(wallet_id, 0)

    def get_balances(self) -> BalanceMap:
        """All non-zero balances."""
        return {w: b for w, b in self.balances.items() if b != 0}

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def list_wallets(self) -> Set[str]:
        return self.registered_wallets.copy()

    def total_supply(self) -> int:
        """
        Sum of all wallet balances, the system wallet included.

        Issuance debits the system wallet, so this is zero whenever the
        ledger is consistent.
        """
        return sum(self.balances[w] for w in sorted(self.registered_wallets))

    def circulating_supply(self) -> int:
        """Sum of balances outside the system wallet."""
        return sum(
            self.balances[w] for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that value was neither created nor destroyed.

        Returns:
            Dict with keys:
            - 'valid': bool - True if total supply is zero and no user
              wallet is negative
            - 'total_supply': int
            - 'negative_wallets': List[str]
        """
        negative = sorted(
            w for w in self.registered_wallets
            if w != SYSTEM_WALLET and self.balances[w] < 0
        )
        total = self.total_supply()
        return {
            'valid': total == 0 and not negative,
            'total_supply': total,
            'negative_wallets': negative,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_blocks(self, blocks: int) -> int:
        """
        Move the block counter forward.

        Args:
            blocks: Number of blocks to advance (>= 0)

        Returns:
            The new current block

        Raises:
            ValueError: If blocks is negative
        """
        if blocks < 0:
            raise ValueError(f"Cannot move blocks backwards: {blocks}")
        self._current_block += blocks
        return self._current_block

    # ========================================================================
    # REGISTRATION AND ISSUANCE (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register wallet_id unless it already is."""
        if wallet_id not in self.registered_wallets:
            self.registered_wallets.add(wallet_id)
        return wallet_id

    def mint(self, wallet_id: str, amount: int) -> ExecuteResult:
        """
        Issue new asset to a wallet, debiting the system wallet.

        Raises:
            LedgerError: If the issuance is rejected
        """
        pending = self.build(
            [Move(amount, SYSTEM_WALLET, wallet_id, "mint")],
            TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, "mint"),
        )
        result = self.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise LedgerError(f"Issuance to {wallet_id} rejected")
        return result

    # ========================================================================
    # TRANSFER EXECUTION (Mutating)
    # ========================================================================

    def build(
        self,
        moves: List[Move],
        origin: Optional[TransactionOrigin] = None,
    ) -> PendingTransfer:
        """Build a PendingTransfer stamped with the current block."""
        if origin is None:
            origin = TransactionOrigin(OriginType.USER_ACTION, "user")
        return PendingTransfer(moves=tuple(moves), origin=origin, block=self._current_block)

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{block}"""
        return f"exec:{self.name}:{sequence:012d}:{self._current_block}"

    def validate(self, pending: PendingTransfer) -> Tuple[bool, str]:
        """
        Validate a pending transfer against all constraints.

        Checks performed:
        1. Block validation (a transfer cannot come from a future block)
        2. Wallet registration
        3. Net balance of every non-system wallet stays >= 0

        Returns:
            Tuple of (success, reason). reason is "" on success.
        """
        if pending.block > self._current_block:
            return False, "future block"

        for move in pending.moves:
            if not is_amount(move.quantity):
                return False, f"invalid quantity {move.quantity!r}"
            if move.source not in self.registered_wallets:
                return False, f"wallet not registered: {move.source}"
            if move.dest not in self.registered_wallets:
                return False, f"wallet not registered: {move.dest}"

        # Net deltas make validation independent of move order
        net: Dict[str, int] = defaultdict(int)
        for move in pending.moves:
            net[move.source] -= move.quantity
            net[move.dest] += move.quantity

        for wallet, delta in sorted(net.items()):
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet] + delta
            if proposed < 0:
                return False, f"{wallet} {self.symbol}: {proposed} < 0"

        return True, ""

    def execute(self, pending: PendingTransfer) -> ExecuteResult:
        """
        Execute a PendingTransfer atomically.

        All moves succeed together or all fail together.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason = self.validate(pending)
        if not valid:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transfer(
            moves=pending.moves,
            origin=pending.origin,
            block=self._current_block,
            exec_id=self._generate_exec_id(sequence),
            sequence_number=sequence,
        )

        for move in tx.moves:
            self.balances[move.source] -= move.quantity
            self.balances[move.dest] += move.quantity

        # Audit trail is mandatory
        self.transaction_log.append(tx)

        if self.verbose:
            print(repr(tx))
        return ExecuteResult.APPLIED

    def transfer(self, source: str, dest: str, amount: int, reason: str = "transfer") -> None:
        """
        Move funds directly between two wallets in a single-move transfer.

        Raises:
            WalletNotRegistered: If either wallet is unknown
            InsufficientFunds: If the source cannot cover the move
        """
        pending = self.build([Move(amount, source, dest, reason)])
        valid, why = self.validate(pending)
        if not valid:
            if why.startswith("wallet not registered"):
                raise WalletNotRegistered(why)
            raise InsufficientFunds(why)
        self.execute(pending)
