"""
vault.py - Single-Asset Lending Vault

The Vault is the orchestrator: it enforces every invariant before touching the
PositionLedger and moves funds only through the AssetTransfer collaborator.

Operation pipeline (every mutating entry point):
    1. Re-entrancy guard (vault-wide in-call flag)
    2. Capability check (before any accrual runs)
    3. Pause check (deposit and borrow only)
    4. Argument validation
    5. Pool accrual, then position accrual at the post-accrual rate
    6. Pure computation of the new pool/position snapshots, checked against
       the LiquidationMath bounds
    7. Transfers staged in a settlement; the new snapshots are committed with
       an on_rollback that restores the previous ones
    8. Notifications emitted on_commit, after the transfers are applied

Failure semantics: a rejected call raises a LendingError subclass and leaves
positions, pool totals, shares and asset balances exactly as before.

Pause asymmetry: while paused, deposit and borrow are rejected with
VaultPaused. withdraw, repay, liquidate and accrue_interest stay available so
users can always reduce risk.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Iterator, List, Mapping, Optional, Tuple

from .core import (
    SCALE, ADMINISTRATOR, LIQUIDATION_OPERATOR,
    RateModel, PriceOracle, AssetTransfer, Authorizer, Clock, NotificationSink, SettlementScope,
    Notification, TransactionOrigin, OriginType,
    LendingError, InvalidAmount, InvalidConfiguration,
    InsufficientShares, InsufficientLiquidity, InsufficientCollateral,
    BorrowLimitExceeded, UndercollateralizedWithdrawal, PositionNotLiquidatable,
    NoOutstandingDebt, LiquidationDisabled,
    Unauthorized, VaultPaused, ReentrancyError,
    is_amount, to_scaled,
)
from .rate_curve import JumpRateModel
from .liquidation_math import health_factor, is_liquidatable, liquidation_amounts, max_borrow
from .position_ledger import (
    Position, PoolState, PoolAccrual, PositionLedger,
    calculate_pool_accrual, calculate_position_accrual,
    apply_repayment, apply_liquidation,
    total_supply, shares_for_deposit, assets_for_shares,
)
from .oracle import StaticPriceOracle
from .notifications import NullSink


# Deployment defaults.
DEFAULT_COLLATERAL_FACTOR = to_scaled(75)
DEFAULT_LIQUIDATION_THRESHOLD = to_scaled(80)
DEFAULT_LIQUIDATION_BONUS = to_scaled(5)
DEFAULT_RESERVE_FACTOR = to_scaled(10)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Immutable vault configuration, replaced only as a whole.

    All factors are fixed-point fractions in [0, SCALE].

    Attributes:
        collateral_factor: Share of collateral that may be borrowed against
        liquidation_threshold: Share of collateral counted by the health factor
        liquidation_bonus: Premium paid to liquidators on seized collateral
        reserve_factor: Share of accrued interest retained as reserves
        rate_model: Interest rate curve (RateModel protocol)
        oracle: Price oracle; carried but not read (price is 1:1)
        liquidation_enabled: When False every liquidation is rejected
        paused: When True deposit and borrow are rejected
        public_liquidation: When True any identity may liquidate, otherwise
            the LIQUIDATION_OPERATOR capability is required
    """
    collateral_factor: int = DEFAULT_COLLATERAL_FACTOR
    liquidation_threshold: int = DEFAULT_LIQUIDATION_THRESHOLD
    liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS
    reserve_factor: int = DEFAULT_RESERVE_FACTOR
    rate_model: RateModel = field(default_factory=JumpRateModel)
    oracle: Optional[PriceOracle] = field(default_factory=StaticPriceOracle)
    liquidation_enabled: bool = True
    paused: bool = False
    public_liquidation: bool = True

    def __post_init__(self):
        for name in ("collateral_factor", "liquidation_threshold", "liquidation_bonus", "reserve_factor"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= SCALE:
                raise InvalidConfiguration(f"{name} must be an int in [0, SCALE], got {value!r}")
        if not isinstance(self.rate_model, RateModel):
            raise InvalidConfiguration(f"rate_model does not implement RateModel: {self.rate_model!r}")
        if self.oracle is not None and not isinstance(self.oracle, PriceOracle):
            raise InvalidConfiguration(f"oracle does not implement PriceOracle: {self.oracle!r}")


# ============================================================================
# VAULT
# ============================================================================

class Vault:
    """
    Deposit, borrow against the deposit, repay, withdraw, and be liquidated.

    Example:
        vault = Vault("vault", asset, clock=ledger, authorizer=roles)
        asset.approve("alice", "vault", 100 * SCALE)
        shares = vault.deposit("alice", 100 * SCALE)
        vault.borrow("alice", 50 * SCALE)
    """

    def __init__(
        self,
        vault_id: str,
        asset: AssetTransfer,
        clock: Clock,
        authorizer: Authorizer,
        config: Optional[VaultConfig] = None,
        notifications: Optional[NotificationSink] = None,
        verbose: bool = False,
    ):
        """
        Args:
            vault_id: Identity of the vault; also the wallet holding its cash
            asset: Transfer collaborator for the vault's single asset
            clock: Source of the accrual block counter
            authorizer: Capability check for admin and liquidation entry points
            config: Initial configuration (default: VaultConfig())
            notifications: Sink for operation records (default: discard)
            verbose: Print rejected operations and sink failures
        """
        self.vault_id = vault_id
        self.asset = asset
        self.clock = clock
        self.authorizer = authorizer
        self.config = config if config is not None else VaultConfig()
        self.notifications = notifications if notifications is not None else NullSink()
        self.verbose = verbose
        self.state = PositionLedger(initial_block=clock.current_block)
        self._entered = False

    # ========================================================================
    # READ-ONLY QUERIES (no accrual; values may be stale until the next
    # mutating call or accrue_interest)
    # ========================================================================

    def get_cash(self) -> int:
        return self.asset.balance_of(self.vault_id)

    def get_position(self, user: str) -> Position:
        return self.state.get_position(user)

    def get_total_supply(self) -> int:
        return total_supply(self.get_cash(), self.state.pool)

    def get_total_borrows(self) -> int:
        return self.state.pool.total_borrows

    def get_total_reserves(self) -> int:
        return self.state.pool.total_reserves

    def get_utilization_rate(self) -> int:
        pool = self.state.pool
        return self.config.rate_model.utilization_rate(self.get_cash(), pool.total_borrows, pool.total_reserves)

    def get_borrow_rate(self) -> int:
        """Annualized borrow rate at the current utilization."""
        pool = self.state.pool
        return self.config.rate_model.borrow_rate(self.get_cash(), pool.total_borrows, pool.total_reserves)

    def get_supply_rate(self) -> int:
        """Annualized supply rate at the current utilization."""
        pool = self.state.pool
        return self.config.rate_model.supply_rate(
            self.get_cash(), pool.total_borrows, pool.total_reserves, self.config.reserve_factor
        )

    def get_user_health_factor(self, user: str) -> int:
        position = self.state.get_position(user)
        return health_factor(position.collateral_amount, position.total_debt, self.config.liquidation_threshold)

    def get_max_borrow(self, user: str) -> int:
        position = self.state.get_position(user)
        return max_borrow(position.collateral_amount, self.config.collateral_factor, position.total_debt)

    def balance_of(self, user: str) -> int:
        """Shares held by user."""
        return self.state.share_balance(user)

    def total_shares(self) -> int:
        return self.state.pool.total_shares

    def list_positions(self) -> List[str]:
        return self.state.list_positions()

    def get_debt_drift(self) -> int:
        """
        total_borrows minus the sum of position debts.

        Pool and positions accrue independently and positions only when
        touched, so this is usually non-zero once interest has accrued.
        """
        return self.state.pool.total_borrows - self.state.total_position_debt()

    # ========================================================================
    # USER OPERATIONS (Mutating)
    # ========================================================================

    def deposit(self, caller: str, amount: int) -> int:
        """
        Deposit asset as collateral and receive pool shares.

        The caller must have approved the vault for amount.

        Returns:
            Shares minted

        Raises:
            VaultPaused: While the vault is paused
            InvalidAmount: If amount is not positive or mints no shares
            TransferFailed: If the pull is rejected
        """
        with self._non_reentrant("deposit"):
            self._require_not_paused()
            self._require_amount(amount, "Deposit amount")

            with self.asset.settlement(self._origin("deposit")) as settlement:
                cash = self.get_cash()
                accrual, position = self._accrue(cash, caller)
                pool = accrual.pool

                total_assets = total_supply(cash, pool)
                shares = shares_for_deposit(amount, pool.total_shares, total_assets)
                if shares == 0:
                    raise InvalidAmount(f"Deposit of {amount} mints no shares")

                settlement.pull(caller, self.vault_id, amount)

                self._commit(
                    settlement,
                    pool=replace(pool, total_shares=pool.total_shares + shares),
                    positions={caller: replace(position, collateral_amount=position.collateral_amount + amount)},
                    shares={caller: self.state.share_balance(caller) + shares},
                )
                self._emit_accrual(settlement, accrual)
                self._emit(settlement, "deposit", user=caller, amount=amount, shares=shares)

        return shares

    def withdraw(self, caller: str, shares: int) -> int:
        """
        Burn shares and withdraw the underlying collateral.

        Returns:
            Asset amount paid out

        Raises:
            InvalidAmount: If shares is not positive or redeems nothing
            InsufficientShares: If caller holds fewer shares
            InsufficientCollateral: If the amount exceeds tracked collateral
            InsufficientLiquidity: If the vault cannot pay the amount
            UndercollateralizedWithdrawal: If the health factor would fall below 1.0
        """
        with self._non_reentrant("withdraw"):
            self._require_amount(shares, "Withdraw shares")
            balance = self.state.share_balance(caller)
            if shares > balance:
                raise InsufficientShares(f"{caller} holds {balance} shares, {shares} requested")

            with self.asset.settlement(self._origin("withdraw")) as settlement:
                cash = self.get_cash()
                accrual, position = self._accrue(cash, caller)
                pool = accrual.pool

                amount = assets_for_shares(shares, pool.total_shares, total_supply(cash, pool))
                if amount == 0:
                    raise InvalidAmount(f"Withdrawal of {shares} shares redeems nothing")
                if amount > position.collateral_amount:
                    raise InsufficientCollateral(
                        f"Withdrawal of {amount} exceeds collateral {position.collateral_amount}"
                    )
                if amount > cash:
                    raise InsufficientLiquidity(f"Vault holds {cash}, {amount} requested")

                remaining = position.collateral_amount - amount
                health = health_factor(remaining, position.total_debt, self.config.liquidation_threshold)
                if is_liquidatable(health):
                    raise UndercollateralizedWithdrawal(
                        f"Withdrawal would leave health factor {health} below {SCALE}"
                    )

                settlement.push(self.vault_id, caller, amount)

                self._commit(
                    settlement,
                    pool=replace(pool, total_shares=pool.total_shares - shares),
                    positions={caller: replace(position, collateral_amount=remaining)},
                    shares={caller: balance - shares},
                )
                self._emit_accrual(settlement, accrual)
                self._emit(settlement, "withdraw", user=caller, amount=amount, shares=shares)

        return amount

    def borrow(self, caller: str, amount: int) -> None:
        """
        Borrow against the caller's own collateral.

        Raises:
            VaultPaused: While the vault is paused
            InvalidAmount: If amount is not positive
            InsufficientLiquidity: If the vault holds less than amount
            BorrowLimitExceeded: If amount exceeds the caller's max borrow
        """
        with self._non_reentrant("borrow"):
            self._require_not_paused()
            self._require_amount(amount, "Borrow amount")

            with self.asset.settlement(self._origin("borrow")) as settlement:
                cash = self.get_cash()
                accrual, position = self._accrue(cash, caller)
                pool = accrual.pool

                if amount > cash:
                    raise InsufficientLiquidity(f"Vault holds {cash}, {amount} requested")

                limit = max_borrow(position.collateral_amount, self.config.collateral_factor, position.total_debt)
                if amount > limit:
                    raise BorrowLimitExceeded(f"Borrow of {amount} exceeds limit {limit}")

                settlement.push(self.vault_id, caller, amount)

                self._commit(
                    settlement,
                    pool=replace(pool, total_borrows=pool.total_borrows + amount),
                    positions={caller: replace(
                        position,
                        borrowed_amount=position.borrowed_amount + amount,
                        last_interest_update=self.clock.current_block,
                    )},
                )
                self._emit_accrual(settlement, accrual)
                self._emit(settlement, "borrow", user=caller, amount=amount)

    def repay(self, caller: str, amount: int) -> int:
        """
        Repay the caller's debt, interest first.

        Only the owed amount is pulled when amount exceeds the debt.

        Returns:
            Amount actually repaid

        Raises:
            InvalidAmount: If amount is not positive
            NoOutstandingDebt: If the caller owes nothing
        """
        with self._non_reentrant("repay"):
            self._require_amount(amount, "Repay amount")

            with self.asset.settlement(self._origin("repay")) as settlement:
                accrual, position = self._accrue(self.get_cash(), caller)
                pool = accrual.pool

                debt = position.total_debt
                if debt == 0:
                    raise NoOutstandingDebt(f"{caller} has no outstanding debt")
                repaid = min(amount, debt)

                settlement.pull(caller, self.vault_id, repaid)

                updated, principal_paid, interest_paid = apply_repayment(position, repaid)
                self._commit(
                    settlement,
                    pool=replace(pool, total_borrows=max(0, pool.total_borrows - principal_paid)),
                    positions={caller: updated},
                )
                self._emit_accrual(settlement, accrual)
                self._emit(
                    settlement, "repay",
                    user=caller, amount=repaid, principal=principal_paid, interest=interest_paid,
                )

        return repaid

    def liquidate(self, caller: str, borrower: str) -> int:
        """
        Repay up to half of an unhealthy borrower's debt and seize collateral
        plus the liquidation bonus.

        The caller must have approved the vault for the covered debt.

        Returns:
            Collateral transferred to the caller

        Raises:
            Unauthorized: If liquidation is restricted and caller lacks
                LIQUIDATION_OPERATOR
            LiquidationDisabled: If liquidation is switched off
            PositionNotLiquidatable: If the borrower's health factor is >= 1.0
            InvalidAmount: If the covered debt rounds to zero
            InsufficientLiquidity: If the vault cannot pay out the collateral
        """
        with self._non_reentrant("liquidate"):
            if not self.config.public_liquidation:
                self._require_capability(caller, LIQUIDATION_OPERATOR)
            if not self.config.liquidation_enabled:
                raise LiquidationDisabled("Liquidation is disabled")

            with self.asset.settlement(self._origin("liquidate")) as settlement:
                accrual, position = self._accrue(self.get_cash(), borrower)
                pool = accrual.pool

                debt = position.total_debt
                health = health_factor(position.collateral_amount, debt, self.config.liquidation_threshold)
                if not is_liquidatable(health):
                    raise PositionNotLiquidatable("Position is not liquidatable")

                collateral, debt_covered = liquidation_amounts(
                    debt // 2, debt, position.collateral_amount, self.config.liquidation_bonus
                )
                if debt_covered == 0:
                    raise InvalidAmount(f"Debt of {debt} too small to liquidate")
                collateral = min(collateral, position.collateral_amount)

                settlement.pull(caller, self.vault_id, debt_covered)
                if collateral > 0:
                    available = settlement.balance_of(self.vault_id)
                    if collateral > available:
                        raise InsufficientLiquidity(f"Vault holds {available}, {collateral} to seize")
                    settlement.push(self.vault_id, caller, collateral)

                updated, principal, interest = apply_liquidation(position, debt_covered, collateral)
                self._commit(
                    settlement,
                    pool=replace(pool, total_borrows=max(0, pool.total_borrows - debt_covered)),
                    positions={borrower: updated},
                )
                self._emit_accrual(settlement, accrual)
                self._emit(
                    settlement, "liquidation",
                    liquidator=caller, borrower=borrower,
                    debt_covered=debt_covered, collateral_liquidated=collateral,
                )

        return collateral

    def accrue_interest(self, user: Optional[str] = None) -> int:
        """
        Accrue pool interest, and the position's interest when user is given.

        Returns:
            Interest added to total_borrows
        """
        with self._non_reentrant("accrue_interest"):
            with self.asset.settlement(self._origin("accrue_interest")) as settlement:
                accrual, position = self._accrue(self.get_cash(), user)
                self._commit(
                    settlement,
                    pool=accrual.pool,
                    positions={user: position} if user is not None else None,
                )
                self._emit_accrual(settlement, accrual)

        return accrual.interest_accumulated

    # ========================================================================
    # ADMINISTRATION (Mutating)
    # ========================================================================

    def update_config(self, caller: str, config: VaultConfig) -> None:
        """
        Replace the whole configuration atomically.

        Pool interest is accrued under the old configuration first, so a new
        rate model or reserve factor never applies retroactively.

        Raises:
            Unauthorized: If caller is not an administrator
            InvalidConfiguration: If config is not a VaultConfig
        """
        with self._non_reentrant("update_config"):
            self._require_capability(caller, ADMINISTRATOR)
            if not isinstance(config, VaultConfig):
                raise InvalidConfiguration(f"Expected VaultConfig, got {type(config).__name__}")
            self._replace_config(config, "config_updated")

    def pause(self, caller: str) -> None:
        with self._non_reentrant("pause"):
            self._require_capability(caller, ADMINISTRATOR)
            self._replace_config(replace(self.config, paused=True), "paused")

    def unpause(self, caller: str) -> None:
        with self._non_reentrant("unpause"):
            self._require_capability(caller, ADMINISTRATOR)
            self._replace_config(replace(self.config, paused=False), "unpaused")

    def _replace_config(self, config: VaultConfig, kind: str) -> None:
        with self.asset.settlement(self._origin(kind)) as settlement:
            accrual, _ = self._accrue(self.get_cash())
            self._commit(settlement, pool=accrual.pool)

            previous = self.config
            self.config = config
            settlement.on_rollback(lambda: setattr(self, "config", previous))

            self._emit_accrual(settlement, accrual)
            self._emit(
                settlement, kind,
                collateral_factor=config.collateral_factor,
                liquidation_threshold=config.liquidation_threshold,
                liquidation_bonus=config.liquidation_bonus,
                reserve_factor=config.reserve_factor,
                liquidation_enabled=config.liquidation_enabled,
                paused=config.paused,
            )

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        if self._entered:
            raise ReentrancyError(f"{operation} re-entered vault {self.vault_id}")
        self._entered = True
        try:
            yield
        except LendingError as exc:
            if self.verbose:
                print(f"✗ REJECTED: {self.vault_id}.{operation}: {type(exc).__name__}: {exc}")
            raise
        finally:
            self._entered = False

    def _require_capability(self, caller: str, capability: str) -> None:
        if not self.authorizer.has_capability(caller, capability):
            raise Unauthorized(caller, capability)

    def _require_not_paused(self) -> None:
        if self.config.paused:
            raise VaultPaused(f"Vault {self.vault_id} is paused")

    @staticmethod
    def _require_amount(amount: int, what: str) -> None:
        if not is_amount(amount):
            raise InvalidAmount(f"{what} must be a positive int, got {amount!r}")

    def _origin(self, event_type: str) -> TransactionOrigin:
        return TransactionOrigin(OriginType.VAULT, self.vault_id, event_type)

    def _accrue(self, cash: int, user: Optional[str] = None) -> Tuple[PoolAccrual, Optional[Position]]:
        """
        Pool accrual, then position accrual for user at the post-accrual rate.

        Pure: returns new snapshots without committing them.
        """
        block = self.clock.current_block
        rate_model = self.config.rate_model
        accrual = calculate_pool_accrual(self.state.pool, cash, block, rate_model, self.config.reserve_factor)
        if user is None:
            return accrual, None

        pool = accrual.pool
        rate = rate_model.borrow_rate_per_period(cash, pool.total_borrows, pool.total_reserves)
        position = calculate_position_accrual(self.state.get_position(user), rate, block)
        return accrual, position

    def _commit(
        self,
        settlement: SettlementScope,
        pool: PoolState,
        positions: Optional[Mapping[str, Position]] = None,
        shares: Optional[Mapping[str, int]] = None,
    ) -> None:
        """Swap in new snapshots, restoring the previous ones if the settlement fails."""
        previous_pool = self.state.pool
        previous_positions = {user: self.state.get_position(user) for user in positions or {}}
        previous_shares = {user: self.state.share_balance(user) for user in shares or {}}

        self.state.commit(pool, positions, shares)
        settlement.on_rollback(
            lambda: self.state.commit(previous_pool, previous_positions, previous_shares)
        )

    def _emit_accrual(self, settlement: SettlementScope, accrual: PoolAccrual) -> None:
        if accrual.periods == 0:
            return
        self._emit(
            settlement, "interest_accrued",
            periods=accrual.periods,
            borrow_rate_per_period=accrual.borrow_rate_per_period,
            interest_accumulated=accrual.interest_accumulated,
            reserves_fee=accrual.reserves_fee,
            total_borrows=accrual.pool.total_borrows,
        )

    def _emit(self, settlement: SettlementScope, kind: str, **fields) -> None:
        notification = Notification(kind, self.clock.current_block, dict(fields, vault=self.vault_id))
        settlement.on_commit(lambda: self._notify(notification))

    def _notify(self, notification: Notification) -> None:
        # Sink failures never reach the caller
        try:
            self.notifications.emit(notification)
        except Exception as exc:
            if self.verbose:
                print(f"⚠ notification {notification.kind} dropped: {exc}")
