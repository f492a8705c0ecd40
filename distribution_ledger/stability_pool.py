"""
stability_pool.py - Stability Reward Ledger (scaled sum/product pool)

Depositors absorb liquidated debt pro rata and receive the liquidation
reward pro rata. Both are tracked with two global numbers:

    S (sum):     reward per unit of deposit, scaled by the product at the
                 time of each liquidation
    P (product): fraction of a deposit that survives every liquidation

A liquidation of D debt paying R reward against pool deposits T:

    S += R / T * P
    P *= 1 - D / T

A provider with deposit d and snapshots (S_t, P_t) is owed:

    rewards     = d * (S - S_t) / P_t
    compounded  = d * P / P_t

A liquidation that consumes the whole pool would drive P to zero and make
every later settlement 0/0. Instead the pool closes the current epoch:
the final S is frozen for that epoch, and S and P restart at 0 and 1.
Deposits from a closed epoch compound to zero and still collect that
epoch's rewards.

Failure policy: unknown providers and duplicate registrations are reported
through OperationResult and a printed warning, not raised. Liquidating an
empty pool, liquidating more than the pool holds, and over-withdrawal
raise before any state changes.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Optional

from .core import (
    # Types
    Provider, OperationResult,
    # Constants
    ZERO, ONE, TOLERANCE, QUANTITY_EPSILON,
    # Exceptions
    AccountNotFound, EmptyPoolError, LiquidationExceedsDeposits, InsufficientBalance,
    # Helper functions
    to_amount, pending_rewards, compounded_deposit,
)
from .reconciliation import ReconciliationResult, check_stability_pool
from .report import Report


class StabilityPool:
    """
    Pool of depositors compounding through liquidations.

    Thread Safety:
        Not thread-safe. Callers must serialize access to a pool instance.

    Example:
        pool = StabilityPool(verbose=False)
        pool.add_provider("alice")
        pool.add_provider("bob")
        pool.deposit(Decimal("100"), "alice")
        pool.deposit(Decimal("50"), "bob")
        pool.liquidate(Decimal("50"), Decimal("0.01"))
        pool.reconcile()
    """

    def __init__(
        self,
        report: Optional[Report] = None,
        tolerance: Decimal = TOLERANCE,
        verbose: bool = True,
    ):
        """
        Create an empty pool.

        Args:
            report: Sink for audit lines and reconciliation rows (default: new Report)
            tolerance: Maximum drift allowed by reconciliation
            verbose: Print status lines and warnings (default: True)
        """
        self.report = report if report is not None else Report()
        self.tolerance = tolerance
        self.verbose = verbose

        self._providers: Dict[str, Provider] = {}
        self._pool_deposits = ZERO
        self._pool_rewards = ZERO
        self._distributed_rewards = ZERO

        self._sum = ZERO
        self._product = ONE
        self._epoch = 0
        # Final S of every closed epoch
        self._epoch_to_sum: Dict[int, Decimal] = {}

    # ========================================================================
    # READ ACCESSORS
    # ========================================================================

    @property
    def sum(self) -> Decimal:
        return self._sum

    @property
    def product(self) -> Decimal:
        return self._product

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def pool_deposits(self) -> Decimal:
        """Deposits still in the pool after all liquidations."""
        return self._pool_deposits

    @property
    def pool_rewards(self) -> Decimal:
        """Rewards received by the pool and not yet settled to a provider."""
        return self._pool_rewards

    @property
    def distributed_rewards(self) -> Decimal:
        """Total rewards ever passed to liquidate()."""
        return self._distributed_rewards

    def epoch_sum(self, epoch: int) -> Decimal:
        """Reward accumulator for an epoch: frozen if closed, live if current."""
        if epoch == self._epoch:
            return self._sum
        return self._epoch_to_sum[epoch]

    def has_provider(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def get_provider(self, provider_id: str) -> Provider:
        """
        Raises:
            AccountNotFound: If the provider does not exist
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            raise AccountNotFound(f"Provider {provider_id} does not exist")
        return provider

    def list_providers(self) -> List[Provider]:
        """All providers in registration order."""
        return list(self._providers.values())

    def pending_rewards(self, provider_id: str) -> Decimal:
        """Rewards accrued since the provider's last settlement (read-only)."""
        return self._rewards(self.get_provider(provider_id))

    def current_deposit(self, provider_id: str) -> Decimal:
        """Provider's deposit after every liquidation so far (read-only)."""
        return self._compounded(self.get_provider(provider_id))

    def _rewards(self, provider: Provider) -> Decimal:
        return pending_rewards(
            provider.deposited,
            self.epoch_sum(provider.epoch_snapshot),
            provider.sum_snapshot,
            provider.product_snapshot,
        )

    def _compounded(self, provider: Provider) -> Decimal:
        return compounded_deposit(
            provider.deposited,
            self._product,
            provider.product_snapshot,
            same_epoch=provider.epoch_snapshot == self._epoch,
        )

    # ========================================================================
    # PROVIDER OPERATIONS (Mutating)
    # ========================================================================

    def add_provider(self, provider_id: str) -> OperationResult:
        """
        Register a provider with a zero deposit.

        Returns:
            OperationResult.APPLIED, or ALREADY_EXISTS (nothing changes)
        """
        if provider_id in self._providers:
            self._warn(f"ALREADY_EXISTS: provider {provider_id}")
            return OperationResult.ALREADY_EXISTS

        self._providers[provider_id] = Provider(
            provider_id=provider_id,
            deposited=ZERO,
            sum_snapshot=self._sum,
            product_snapshot=self._product,
            epoch_snapshot=self._epoch,
        )
        self._log(f"Added provider: {provider_id}")
        return OperationResult.APPLIED

    def _settle(self, provider: Provider, delta: Decimal) -> Provider:
        """
        Pay out pending rewards and rebase the deposit at current S and P.

        Rewards leave the pool's unclaimed balance and are credited to the
        provider's claimed total.
        """
        rewards = self._rewards(provider)
        compounded = self._compounded(provider)
        self._pool_rewards -= rewards
        return replace(
            provider,
            deposited=compounded + delta,
            sum_snapshot=self._sum,
            product_snapshot=self._product,
            epoch_snapshot=self._epoch,
            claimed_rewards=provider.claimed_rewards + rewards,
        )

    def deposit(self, amount: Decimal, provider_id: str) -> OperationResult:
        """
        Add to a provider's deposit.

        Returns:
            OperationResult.APPLIED, or NOT_FOUND (nothing changes)
        """
        amount = to_amount(amount)
        provider = self._providers.get(provider_id)
        if provider is None:
            self._warn(f"NOT_FOUND: provider {provider_id}")
            return OperationResult.NOT_FOUND

        self._providers[provider_id] = self._settle(provider, amount)
        self._pool_deposits += amount
        self._log(f"Deposited {amount} for provider: {provider_id}")
        return OperationResult.APPLIED

    def withdraw(self, amount: Decimal, provider_id: str) -> OperationResult:
        """
        Take from a provider's compounded deposit.

        Returns:
            OperationResult.APPLIED, or NOT_FOUND (nothing changes)

        Raises:
            InsufficientBalance: If amount exceeds the compounded deposit
        """
        amount = to_amount(amount)
        provider = self._providers.get(provider_id)
        if provider is None:
            self._warn(f"NOT_FOUND: provider {provider_id}")
            return OperationResult.NOT_FOUND

        available = self._compounded(provider)
        if amount > available:
            raise InsufficientBalance(
                f"Withdrawal of {amount} exceeds deposit {available} for provider {provider_id}"
            )

        self._providers[provider_id] = self._settle(provider, -amount)
        self._pool_deposits -= amount
        self._log(f"Withdrew {amount} for provider: {provider_id}")
        return OperationResult.APPLIED

    def liquidate(self, debt_amount: Decimal, reward_amount: Decimal) -> OperationResult:
        """
        Burn debt_amount of pooled deposits and distribute reward_amount.

        Burning the entire pool closes the current epoch.

        Raises:
            EmptyPoolError: If the pool holds no deposits (or only rounding dust)
            LiquidationExceedsDeposits: If debt_amount exceeds pool deposits
        """
        debt_amount = to_amount(debt_amount, "debt_amount")
        reward_amount = to_amount(reward_amount, "reward_amount")

        if self._pool_deposits <= QUANTITY_EPSILON:
            raise EmptyPoolError("Cannot liquidate against an empty stability pool")
        if debt_amount > self._pool_deposits:
            raise LiquidationExceedsDeposits(
                f"Liquidation of {debt_amount} exceeds pool deposits {self._pool_deposits}"
            )

        self._sum += reward_amount / self._pool_deposits * self._product
        if debt_amount == self._pool_deposits:
            self._close_epoch()
        else:
            self._product *= ONE - debt_amount / self._pool_deposits

        self._pool_deposits -= debt_amount
        self._pool_rewards += reward_amount
        self._distributed_rewards += reward_amount

        self._log(f"Liquidated {debt_amount} for {reward_amount} reward")
        return OperationResult.APPLIED

    def _close_epoch(self) -> None:
        self._epoch_to_sum[self._epoch] = self._sum
        self._epoch += 1
        self._sum = ZERO
        self._product = ONE
        if self.verbose:
            print(f"⚠️  POOL DEPLETED: starting epoch {self._epoch}")

    # ========================================================================
    # RECONCILIATION
    # ========================================================================

    def verify_conservation(self, tag: str = "") -> ReconciliationResult:
        """Run the conservation checks without raising."""
        return check_stability_pool(self, tag, self.tolerance)

    def reconcile(self, tag: str = "") -> ReconciliationResult:
        """
        Check principal and reward conservation and report one row per provider.

        Read-only apart from the report rows.

        Raises:
            ReconciliationError: If any conservation check fails
        """
        result = self.verify_conservation(tag)
        for provider in self._providers.values():
            self.report.record_reconciliation_row({
                'state': tag,
                'provider': provider.provider_id,
                'rewards': self._rewards(provider),
                'claimed_rewards': provider.claimed_rewards,
                'balance': self._compounded(provider),
                'pool_rewards': self._pool_rewards,
                'pool_balance': self._pool_deposits,
            })
        result.raise_if_invalid()
        if self.verbose:
            print(f"✓ RECONCILED: {tag or 'stability pool'} (max drift {result.max_difference})")
        return result

    def _log(self, action: str) -> None:
        self.report.record_action(action)
        if self.verbose:
            print(f"📝 {action}")

    def _warn(self, message: str) -> None:
        if self.verbose:
            print(f"⚠️  {message}")
