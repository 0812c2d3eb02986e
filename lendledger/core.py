"""
Core types and pure helpers for the lending ledger.

This module provides the foundational pieces every other module builds on:
1. Fixed-point constants and checked integer arithmetic (mul_div)
2. Protocols: the collaborator interfaces the engine depends on
   (RateModel, AssetTransfer, Authorizer, NotificationSink, Clock, PriceOracle)
3. Immutable transfer records: Move, PendingTransfer, Transfer, TransactionOrigin
4. Exceptions: LendingError and its taxonomy, LedgerError for the asset ledger

All arithmetic in the engine is integer-only. A quantity of 1.0 is
represented as SCALE (10**18); every ratio, rate and factor is a fraction
of SCALE. Products are checked against a 256-bit word so that overflow is
detected and rejected instead of silently growing or wrapping.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Callable, ContextManager, Dict, Optional, Protocol, Tuple,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# One unit of precision. 1.0 == SCALE in every fixed-point fraction.
SCALE = 10 ** 18

# The engine emulates an unsigned 256-bit machine word.
MAX_UINT256 = 2 ** 256 - 1

# Sentinel health factor for positions without debt.
HEALTH_FACTOR_MAX = MAX_UINT256

# Accrual periods are blocks of a nominal length.
SECONDS_PER_YEAR = 365 * 24 * 60 * 60
SECONDS_PER_BLOCK = 12
PERIODS_PER_YEAR = SECONDS_PER_YEAR // SECONDS_PER_BLOCK

# Capabilities understood by the authorization collaborator.
ADMINISTRATOR = "administrator"
LIQUIDATION_OPERATOR = "liquidation_operator"

# Reserved wallet for issuance and redemption of the underlying asset.
# The system wallet is exempt from balance validation.
SYSTEM_WALLET = "system"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identity of an account (wallet, vault, agent).
Identity = str

# Mapping from identity to an integer amount of the asset or of shares.
BalanceMap = Dict[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for every rejection raised by the lending engine."""
    pass


class InputValidationError(LendingError):
    """Raised when an argument is malformed (zero/negative amount, bad lengths)."""
    pass


class InvalidAmount(InputValidationError):
    """Raised when an amount is not a positive integer or rounds to zero."""
    pass


class LengthMismatch(InputValidationError):
    """Raised when parallel argument sequences differ in length."""
    pass


class InvalidConfiguration(InputValidationError):
    """Raised when a configuration value is outside its allowed range."""
    pass


class InvalidIdentity(InputValidationError):
    """Raised when an acting identity is empty or cannot act on its own behalf."""
    pass


class InsufficientResource(LendingError):
    """Raised when the caller or the pool lacks the resource an operation needs."""
    pass


class InsufficientShares(InsufficientResource):
    """Raised when burning more shares than the caller holds."""
    pass


class InsufficientLiquidity(InsufficientResource):
    """Raised when the vault does not hold enough of the asset to pay out."""
    pass


class InsufficientCollateral(InsufficientResource):
    """Raised when a withdrawal exceeds the caller's tracked collateral."""
    pass


class InvariantViolation(LendingError):
    """Raised when an operation would break a solvency invariant."""
    pass


class BorrowLimitExceeded(InvariantViolation):
    """Raised when a borrow exceeds collateral_value * collateral_factor - debt."""
    pass


class UndercollateralizedWithdrawal(InvariantViolation):
    """Raised when a withdrawal would push the health factor below 1.0."""
    pass


class PositionNotLiquidatable(InvariantViolation):
    """Raised when liquidating a position whose health factor is at least 1.0."""
    pass


class NoOutstandingDebt(InvariantViolation):
    """Raised when repaying a position that owes nothing."""
    pass


class LiquidationDisabled(InvariantViolation):
    """Raised when liquidation is switched off in the vault configuration."""
    pass


class AuthorizationError(LendingError):
    """Base class for failed capability checks."""
    pass


class Unauthorized(AuthorizationError):
    """Raised when an identity lacks the capability an entry point requires."""

    def __init__(self, identity: str, capability: str):
        self.identity = identity
        self.capability = capability
        super().__init__(f"{identity} lacks capability '{capability}'")


class VaultNotAuthorized(AuthorizationError):
    """Raised when a liquidation agent is asked to act on a vault it does not trust."""
    pass


class ArithmeticOverflow(LendingError):
    """Raised when a fixed-point product leaves the 256-bit range."""
    pass


class VaultPaused(LendingError):
    """Raised by deposit and borrow while the vault is paused."""
    pass


class EmergencyStopActive(LendingError):
    """Raised by the liquidation agent while its emergency stop is engaged."""
    pass


class ReentrancyError(LendingError):
    """Raised when a mutating entry point is entered while another is running."""
    pass


class TransferFailed(LendingError):
    """Raised when the asset transfer collaborator rejects a settlement."""
    pass


class InsufficientAllowance(TransferFailed):
    """Raised when pulling more than the owner approved for the spender."""
    pass


class LedgerError(Exception):
    """Base exception for asset-ledger errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a move would take a wallet balance below zero."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


# ============================================================================
# FIXED-POINT ARITHMETIC
# ============================================================================

def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b // denominator with explicit overflow detection.

    The intermediate product must fit in 256 bits, matching the word size the
    ledger's accounting was designed around. Division truncates toward zero.

    Raises:
        ArithmeticOverflow: if the product exceeds MAX_UINT256 or the
            denominator is zero.
    """
    if denominator == 0:
        raise ArithmeticOverflow("Division by zero")
    product = a * b
    if product > MAX_UINT256:
        raise ArithmeticOverflow("Calculation overflow")
    return product // denominator


def to_scaled(numerator: int, denominator: int = 100) -> int:
    """Express numerator/denominator as a fixed-point fraction (to_scaled(75) == 0.75 * SCALE)."""
    return numerator * SCALE // denominator


def is_amount(value: Any) -> bool:
    """True if value is a strictly positive int (bools are rejected)."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """Source of the accrual checkpoint counter."""

    @property
    def current_block(self) -> int:
        """Return the current block (accrual period) number."""
        ...


@runtime_checkable
class RateModel(Protocol):
    """
    Interest-rate model injected into a vault through its configuration.

    Rates are annualized fixed-point fractions. Per-period variants divide by
    PERIODS_PER_YEAR and truncate.
    """

    def utilization_rate(self, cash: int, borrows: int, reserves: int) -> int:
        ...

    def borrow_rate(self, cash: int, borrows: int, reserves: int) -> int:
        ...

    def supply_rate(self, cash: int, borrows: int, reserves: int, reserve_factor: int) -> int:
        ...

    def borrow_rate_per_period(self, cash: int, borrows: int, reserves: int) -> int:
        ...

    def supply_rate_per_period(self, cash: int, borrows: int, reserves: int, reserve_factor: int) -> int:
        ...


@runtime_checkable
class PriceOracle(Protocol):
    """Quotes the asset price as a fixed-point fraction of SCALE."""

    def get_price(self, asset: str) -> Optional[int]:
        ...


@runtime_checkable
class Authorizer(Protocol):
    """Capability check used at every guarded entry point."""

    def has_capability(self, identity: str, capability: str) -> bool:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget receiver of structured operation records."""

    def emit(self, notification: 'Notification') -> None:
        ...


class SettlementScope(Protocol):
    """Unit of work returned by AssetTransfer.settlement()."""

    def pull(self, owner: str, spender: str, amount: int) -> None:
        ...

    def push(self, sender: str, recipient: str, amount: int) -> None:
        ...

    def approve(self, owner: str, spender: str, amount: int) -> None:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def balance_of(self, account: str) -> int:
        ...

    def on_commit(self, callback: Callable[[], None]) -> None:
        ...

    def on_rollback(self, callback: Callable[[], None]) -> None:
        ...


@runtime_checkable
class AssetTransfer(Protocol):
    """
    Pull-then-push movement of the fungible asset.

    pull() moves funds from an owner who previously approved the spender;
    push() moves funds the sender already holds. Both may be grouped into a
    settlement that applies atomically or not at all.
    """

    def balance_of(self, account: str) -> int:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def approve(self, owner: str, spender: str, amount: int) -> None:
        ...

    def pull(self, owner: str, spender: str, amount: int) -> None:
        ...

    def push(self, sender: str, recipient: str, amount: int) -> None:
        ...

    def settlement(self, origin: Optional[TransactionOrigin] = None) -> ContextManager[SettlementScope]:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of an asset-ledger execution attempt.

    APPLIED: Transfer was validated and applied.
    REJECTED: Transfer failed validation (unregistered wallet, insufficient
              funds) and nothing was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where an asset transfer originated, for the audit trail."""
    USER_ACTION = "user_action"
    VAULT = "vault"
    AGENT = "agent"
    SYSTEM = "system"


# ============================================================================
# TRANSFER RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of who caused a transfer and why.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the source (vault id, agent id, user)
        event_type: Operation that produced it (e.g. "deposit", "liquidate")
    """
    origin_type: OriginType
    source_id: str
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of the asset between two wallets.

    Attributes:
        quantity: Integer amount in base units (must be positive)
        source: Wallet debited
        dest: Wallet credited
        reason: Short tag describing the move (e.g. "deposit", "refund")
    """
    quantity: int
    source: str
    dest: str
    reason: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not is_amount(self.quantity):
            raise ValueError(f"Move quantity must be a positive int, got {self.quantity!r}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity}: {self.source}→{self.dest} [{self.reason}])"


@dataclass(frozen=True, slots=True)
class PendingTransfer:
    """
    A group of moves submitted to the asset ledger as one atomic unit.

    Attributes:
        moves: Moves applied together or not at all
        origin: Who built this and why
        block: Block at which it was built
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    block: int

    def is_empty(self) -> bool:
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransfer({len(self.moves)} moves, {self.origin})"


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    An executed, immutable record of applied moves.

    Attributes:
        moves: Moves that were applied
        origin: Who built the transfer and why
        block: Block at which it was applied
        exec_id: Unique execution identifier (ledger + sequence)
        sequence_number: Monotonic sequence within the ledger
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    block: int
    exec_id: str
    sequence_number: int

    def __repr__(self) -> str:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' Transfer: ' + self.exec_id)}│",
            f"│{pad('   block    : ' + str(self.block))}│",
            f"│{pad('   origin   : ' + repr(self.origin))}│",
            f"├{bar}┤",
        ]
        for i, move in enumerate(self.moves):
            lines.append(f"│{pad(f'   [{i}] {move.quantity}: {move.source} → {move.dest} ({move.reason})')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Notification:
    """
    Structured record of an operation, emitted for external indexing.

    Attributes:
        kind: Operation name ("deposit", "withdraw", "borrow", "repay",
              "liquidation", "config_updated", "interest_accrued",
              "liquidation_executed")
        block: Block at which the operation committed
        fields: Operation-specific payload
    """
    kind: str
    block: int
    fields: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]
