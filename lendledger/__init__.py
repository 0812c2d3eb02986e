"""
lendledger - Single-Asset Collateralized Lending Ledger

Users deposit an asset for shares of the pool, borrow against their own
deposit, accrue interest on a kinked utilization curve, and are liquidated by
third parties once undercollateralized. All arithmetic is integer fixed-point
with SCALE = 10**18 representing 1.0.

Usage:
    from lendledger import (
        AssetLedger, LedgerAssetTransfer, RoleRegistry, Vault, SCALE, ADMINISTRATOR,
    )

    ledger = AssetLedger("main", symbol="USDC")
    for wallet in ("alice", "vault"):
        ledger.register_wallet(wallet)
    ledger.mint("alice", 1_000 * SCALE)

    asset = LedgerAssetTransfer(ledger)
    vault = Vault("vault", asset, clock=ledger, authorizer=RoleRegistry(admins=["admin"]))

    asset.approve("alice", "vault", 100 * SCALE)
    vault.deposit("alice", 100 * SCALE)
    vault.borrow("alice", 50 * SCALE)

    ledger.advance_blocks(1_000)
    vault.accrue_interest("alice")
"""

# Core types
from .core import (
    SCALE,
    MAX_UINT256,
    HEALTH_FACTOR_MAX,
    SECONDS_PER_YEAR,
    SECONDS_PER_BLOCK,
    PERIODS_PER_YEAR,
    ADMINISTRATOR,
    LIQUIDATION_OPERATOR,
    SYSTEM_WALLET,
    mul_div,
    to_scaled,
    Clock,
    RateModel,
    PriceOracle,
    Authorizer,
    NotificationSink,
    AssetTransfer,
    Move,
    PendingTransfer,
    Transfer,
    TransactionOrigin,
    OriginType,
    ExecuteResult,
    Notification,
    LendingError,
    InputValidationError,
    InvalidAmount,
    LengthMismatch,
    InvalidConfiguration,
    InvalidIdentity,
    InsufficientResource,
    InsufficientShares,
    InsufficientLiquidity,
    InsufficientCollateral,
    InvariantViolation,
    BorrowLimitExceeded,
    UndercollateralizedWithdrawal,
    PositionNotLiquidatable,
    NoOutstandingDebt,
    LiquidationDisabled,
    AuthorizationError,
    Unauthorized,
    VaultNotAuthorized,
    ArithmeticOverflow,
    VaultPaused,
    EmergencyStopActive,
    ReentrancyError,
    TransferFailed,
    InsufficientAllowance,
    LedgerError,
    InsufficientFunds,
    WalletNotRegistered,
)

# Collaborators
from .ledger import AssetLedger
from .transfer import Settlement, LedgerAssetTransfer
from .authorization import RoleRegistry
from .notifications import EventLog, NullSink
from .oracle import StaticPriceOracle

# Engine
from .rate_curve import (
    JumpRateModel,
    utilization_rate,
    BASE_RATE,
    MULTIPLIER,
    JUMP_MULTIPLIER,
    KINK,
)
from .liquidation_math import (
    CLOSE_FACTOR,
    health_factor,
    is_liquidatable,
    liquidation_amounts,
    max_borrow,
)
from .position_ledger import (
    Position,
    PoolState,
    PoolAccrual,
    PositionLedger,
    calculate_pool_accrual,
    calculate_position_accrual,
    apply_repayment,
    apply_liquidation,
)
from .vault import VaultConfig, Vault
from .liquidation_agent import (
    LIQUIDATION_BUFFER,
    LiquidationAgent,
    LiquidationRecord,
    LiquidationOpportunity,
)


__all__ = [
    # Constants
    'SCALE',
    'MAX_UINT256',
    'HEALTH_FACTOR_MAX',
    'SECONDS_PER_YEAR',
    'SECONDS_PER_BLOCK',
    'PERIODS_PER_YEAR',
    'ADMINISTRATOR',
    'LIQUIDATION_OPERATOR',
    'SYSTEM_WALLET',
    'BASE_RATE',
    'MULTIPLIER',
    'JUMP_MULTIPLIER',
    'KINK',
    'CLOSE_FACTOR',
    'LIQUIDATION_BUFFER',
    # Arithmetic
    'mul_div',
    'to_scaled',
    # Protocols
    'Clock',
    'RateModel',
    'PriceOracle',
    'Authorizer',
    'NotificationSink',
    'AssetTransfer',
    # Records
    'Move',
    'PendingTransfer',
    'Transfer',
    'TransactionOrigin',
    'OriginType',
    'ExecuteResult',
    'Notification',
    # Errors
    'LendingError',
    'InputValidationError',
    'InvalidAmount',
    'LengthMismatch',
    'InvalidConfiguration',
    'InvalidIdentity',
    'InsufficientResource',
    'InsufficientShares',
    'InsufficientLiquidity',
    'InsufficientCollateral',
    'InvariantViolation',
    'BorrowLimitExceeded',
    'UndercollateralizedWithdrawal',
    'PositionNotLiquidatable',
    'NoOutstandingDebt',
    'LiquidationDisabled',
    'AuthorizationError',
    'Unauthorized',
    'VaultNotAuthorized',
    'ArithmeticOverflow',
    'VaultPaused',
    'EmergencyStopActive',
    'ReentrancyError',
    'TransferFailed',
    'InsufficientAllowance',
    'LedgerError',
    'InsufficientFunds',
    'WalletNotRegistered',
    # Collaborators
    'AssetLedger',
    'Settlement',
    'LedgerAssetTransfer',
    'RoleRegistry',
    'EventLog',
    'NullSink',
    'StaticPriceOracle',
    # Engine
    'JumpRateModel',
    'utilization_rate',
    'health_factor',
    'is_liquidatable',
    'liquidation_amounts',
    'max_borrow',
    'Position',
    'PoolState',
    'PoolAccrual',
    'PositionLedger',
    'calculate_pool_accrual',
    'calculate_position_accrual',
    'apply_repayment',
    'apply_liquidation',
    'VaultConfig',
    'Vault',
    'LiquidationAgent',
    'LiquidationRecord',
    'LiquidationOpportunity',
]

__version__ = '1.0.0'
