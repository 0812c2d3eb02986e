"""
liquidation_agent.py - Liquidation Agent

An external actor that watches vaults it trusts, estimates the profit of
liquidating unhealthy positions, and executes liquidations on behalf of an
operator.

Execution flow of liquidate(caller, vault, borrower), as ONE settlement:
    1. Read the borrower's total debt
    2. Pull debt * LIQUIDATION_BUFFER from the caller (room for interest that
       accrues between the read and the vault call)
    3. Approve the vault for the buffer and call vault.liquidate as the agent
    4. Clear the leftover approval
    5. Forward the seized collateral and the unused buffer to the caller
    6. Append the history record once the transfers are applied

If any step fails, no transfer is applied and no history is written.

Profit estimate:
    expected_profit = (borrowed_amount / 2) * liquidation_bonus / SCALE
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .core import (
    SCALE, ADMINISTRATOR, LIQUIDATION_OPERATOR,
    AssetTransfer, Authorizer, Clock, NotificationSink,
    Notification, TransactionOrigin, OriginType,
    LendingError, InvalidAmount, InvalidConfiguration, InvalidIdentity, LengthMismatch,
    PositionNotLiquidatable, Unauthorized, VaultNotAuthorized,
    EmergencyStopActive, ReentrancyError,
    is_amount, mul_div, to_scaled,
)
from .liquidation_math import is_liquidatable
from .notifications import NullSink
from .vault import Vault


# Debt multiple pulled from the operator before calling the vault.
LIQUIDATION_BUFFER = to_scaled(110)


@dataclass(frozen=True, slots=True)
class LiquidationRecord:
    """One executed liquidation, as kept in the per-borrower history."""
    vault: str
    borrower: str
    liquidator: str             # Operator who funded the liquidation
    debt_covered: int
    collateral_received: int
    block: int


@dataclass(frozen=True, slots=True)
class LiquidationOpportunity:
    """A position found liquidatable by scan()."""
    vault: str
    borrower: str
    health_factor: int
    total_debt: int
    expected_profit: int


class LiquidationAgent:
    """
    Finds and executes profitable liquidations on authorized vaults.

    An authorized vault must settle through the same transfer collaborator as
    the agent, so the vault call joins the agent's settlement.

    Example:
        agent = LiquidationAgent("agent", asset, roles, min_profit_threshold=SCALE)
        agent.authorize_vault("admin", vault)
        for opportunity in agent.scan(vault):
            agent.liquidate("keeper", vault, opportunity.borrower)
    """

    def __init__(
        self,
        agent_id: str,
        asset: AssetTransfer,
        authorizer: Authorizer,
        min_profit_threshold: int = 0,
        public_liquidation: bool = False,
        notifications: Optional[NotificationSink] = None,
        verbose: bool = False,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            agent_id: Identity of the agent; also the wallet routing funds
            asset: Transfer collaborator for the vaults' asset
            authorizer: Capability check for admin and operator entry points
            min_profit_threshold: Minimum expected profit worth executing
            public_liquidation: When True anyone may call liquidate
            notifications: Sink for operation records (default: discard)
            verbose: Print rejections and skipped batch entries
            clock: Block source for admin notifications (liquidations use
                the vault's clock)
        """
        self.agent_id = agent_id
        self.asset = asset
        self.authorizer = authorizer
        self.min_profit_threshold = min_profit_threshold
        self.public_liquidation = public_liquidation
        self.emergency_stopped = False
        self.notifications = notifications if notifications is not None else NullSink()
        self.verbose = verbose
        self.clock = clock
        self._authorized_vaults: Set[str] = set()
        self._history: Dict[str, List[LiquidationRecord]] = defaultdict(list)
        self._entered = False

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def authorize_vault(self, caller: str, vault: Vault, authorized: bool = True) -> None:
        self._require_capability(caller, ADMINISTRATOR)
        if authorized:
            if vault.asset is not self.asset:
                raise InvalidConfiguration(
                    f"Vault {vault.vault_id} settles through a different transfer collaborator")
            self._authorized_vaults.add(vault.vault_id)
        else:
            self._authorized_vaults.discard(vault.vault_id)
        self._notify("vault_authorized", vault=vault.vault_id, authorized=authorized)

    def is_vault_authorized(self, vault: Vault) -> bool:
        return vault.vault_id in self._authorized_vaults

    def update_min_profit_threshold(self, caller: str, threshold: int) -> None:
        self._require_capability(caller, ADMINISTRATOR)
        if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 0:
            raise InvalidConfiguration(f"Profit threshold must be a non-negative int, got {threshold!r}")
        self.min_profit_threshold = threshold
        self._notify("min_profit_threshold_updated", threshold=threshold)

    def toggle_emergency_stop(self, caller: str) -> bool:
        """Flip the emergency stop. Returns the new state."""
        self._require_capability(caller, ADMINISTRATOR)
        self.emergency_stopped = not self.emergency_stopped
        self._notify("emergency_stop_toggled", stopped=self.emergency_stopped)
        return self.emergency_stopped

    def set_public_liquidation(self, caller: str, enabled: bool) -> None:
        self._require_capability(caller, ADMINISTRATOR)
        self.public_liquidation = enabled

    def withdraw_token(self, caller: str, amount: int) -> None:
        """
        Sweep asset held by the agent to an administrator.

        Raises:
            Unauthorized: If caller is not an administrator
            InvalidAmount: If amount is not positive
            TransferFailed: If the agent holds less than amount
        """
        self._require_capability(caller, ADMINISTRATOR)
        if not is_amount(amount):
            raise InvalidAmount(f"Withdraw amount must be a positive int, got {amount!r}")
        with self.asset.settlement(self._origin("withdraw_token")) as settlement:
            settlement.push(self.agent_id, caller, amount)

    # ========================================================================
    # DISCOVERY (read-only)
    # ========================================================================

    def check_liquidation_opportunity(self, vault: Vault, borrower: str) -> Tuple[bool, int]:
        """
        Estimate the profit of liquidating borrower.

        Returns:
            (profit >= min_profit_threshold, profit); (False, 0) when the vault
            is not authorized, the agent is stopped, or the position is healthy
        """
        if not self.is_vault_authorized(vault) or self.emergency_stopped:
            return False, 0
        if not is_liquidatable(vault.get_user_health_factor(borrower)):
            return False, 0

        position = vault.get_position(borrower)
        profit = mul_div(position.borrowed_amount // 2, vault.config.liquidation_bonus, SCALE)
        return profit >= self.min_profit_threshold, profit

    def scan(self, vault: Vault) -> List[LiquidationOpportunity]:
        """Profitable opportunities among the vault's positions, best first."""
        found = []
        for borrower in vault.list_positions():
            profitable, profit = self.check_liquidation_opportunity(vault, borrower)
            if not profitable:
                continue
            found.append(LiquidationOpportunity(
                vault=vault.vault_id,
                borrower=borrower,
                health_factor=vault.get_user_health_factor(borrower),
                total_debt=vault.get_position(borrower).total_debt,
                expected_profit=profit,
            ))
        found.sort(key=lambda o: (-o.expected_profit, o.borrower))
        return found

    def get_liquidation_history(self, borrower: str) -> List[LiquidationRecord]:
        return list(self._history.get(borrower, ()))

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def liquidate(self, caller: str, vault: Vault, borrower: str) -> int:
        """
        Liquidate borrower on vault, funded by caller.

        The caller must have approved the agent for debt * LIQUIDATION_BUFFER.

        Returns:
            Collateral forwarded to the caller

        Raises:
            EmergencyStopActive: While the emergency stop is engaged
            VaultNotAuthorized: If the agent does not trust the vault
            InvalidIdentity: If caller is empty or the agent itself
            Unauthorized: If caller lacks LIQUIDATION_OPERATOR and public
                liquidation is off
            LendingError: Any rejection raised by the vault or the transfer
        """
        with self._non_reentrant("liquidate"):
            self._require_running()
            if not self.is_vault_authorized(vault):
                raise VaultNotAuthorized(f"Vault {vault.vault_id} not authorized")
            self._require_identity(caller)
            self._require_operator(caller)
            return self._execute(caller, vault, borrower)

    def batch_liquidate(self, caller: str, vaults: Sequence[Vault], borrowers: Sequence[str]) -> List[int]:
        """
        Liquidate each (vault, borrower) pair independently.

        Unauthorized vaults and failed liquidations yield 0 and do not abort
        the batch. The stop, identity and operator checks apply to the whole
        batch.

        Returns:
            Collateral received per pair
        """
        with self._non_reentrant("batch_liquidate"):
            self._require_running()
            self._require_identity(caller)
            self._require_operator(caller)
            if len(vaults) != len(borrowers):
                raise LengthMismatch(f"{len(vaults)} vaults for {len(borrowers)} borrowers")

            received = []
            for vault, borrower in zip(vaults, borrowers):
                if not self.is_vault_authorized(vault):
                    received.append(0)
                    continue
                try:
                    received.append(self._execute(caller, vault, borrower))
                except LendingError as exc:
                    if self.verbose:
                        print(f"⚠ skipped {vault.vault_id}/{borrower}: {type(exc).__name__}: {exc}")
                    received.append(0)
            return received

    def _execute(self, caller: str, vault: Vault, borrower: str) -> int:
        debt = vault.get_position(borrower).total_debt
        if debt == 0:
            raise PositionNotLiquidatable("Position is not liquidatable")
        buffer = mul_div(debt, LIQUIDATION_BUFFER, SCALE)

        with self.asset.settlement(self._origin("liquidate")) as settlement:
            settlement.pull(caller, self.agent_id, buffer)
            settlement.approve(self.agent_id, vault.vault_id, buffer)

            collateral = vault.liquidate(self.agent_id, borrower)

            debt_covered = buffer - settlement.allowance(self.agent_id, vault.vault_id)
            settlement.approve(self.agent_id, vault.vault_id, 0)

            if collateral > 0:
                settlement.push(self.agent_id, caller, collateral)
            refund = buffer - debt_covered
            if refund > 0:
                settlement.push(self.agent_id, caller, refund)

            record = LiquidationRecord(
                vault=vault.vault_id,
                borrower=borrower,
                liquidator=caller,
                debt_covered=debt_covered,
                collateral_received=collateral,
                block=vault.clock.current_block,
            )
            settlement.on_commit(lambda: self._record(record))

        return collateral

    def _record(self, record: LiquidationRecord) -> None:
        self._history[record.borrower].append(record)
        self._notify(
            "liquidation_executed",
            block=record.block,
            vault=record.vault,
            borrower=record.borrower,
            liquidator=record.liquidator,
            debt_covered=record.debt_covered,
            collateral_received=record.collateral_received,
        )

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        if self._entered:
            raise ReentrancyError(f"{operation} re-entered agent {self.agent_id}")
        self._entered = True
        try:
            yield
        except LendingError as exc:
            if self.verbose:
                print(f"✗ REJECTED: {self.agent_id}.{operation}: {type(exc).__name__}: {exc}")
            raise
        finally:
            self._entered = False

    def _require_capability(self, caller: str, capability: str) -> None:
        if not self.authorizer.has_capability(caller, capability):
            raise Unauthorized(caller, capability)

    def _require_identity(self, caller: str) -> None:
        if not isinstance(caller, str) or not caller.strip() or caller == self.agent_id:
            raise InvalidIdentity(f"Caller {caller!r} cannot fund a liquidation")

    def _require_operator(self, caller: str) -> None:
        if not self.public_liquidation:
            self._require_capability(caller, LIQUIDATION_OPERATOR)

    def _require_running(self) -> None:
        if self.emergency_stopped:
            raise EmergencyStopActive(f"Agent {self.agent_id} is stopped")

    def _origin(self, event_type: str) -> TransactionOrigin:
        return TransactionOrigin(OriginType.AGENT, self.agent_id, event_type)

    def _notify(self, kind: str, block: Optional[int] = None, **fields) -> None:
        if block is None:
            block = self.clock.current_block if self.clock is not None else 0
        notification = Notification(kind, block, dict(fields, agent=self.agent_id))
        try:
            self.notifications.emit(notification)
        except Exception as exc:
            if self.verbose:
                print(f"⚠ notification {kind} dropped: {exc}")
