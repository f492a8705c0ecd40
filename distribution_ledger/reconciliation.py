"""
reconciliation.py - Conservation checks for the distribution ledgers.

The checkers recompute aggregates from per-account state through the
ledgers' public read accessors and compare them against the ledger-level
totals. They never mutate a ledger.

Vault ledger invariants:
    Σ(debt + protocol_debt)           = aggregate_debt
    distributed_debt                  = unattributed_debt + Σ protocol_debt + retired_debt
    Σ debt + distributed_debt         = unattributed_debt + aggregate_debt + retired_debt
    (and the same three for collateral)

retired_debt is attributed debt that vaults have since repaid.

Pending (unattributed) shares cancel out of every equation above, so the
checks hold whether or not accounts have been settled.

Stability pool invariants:
    Σ compounded deposits             = pool_deposits
    Σ pending rewards                 = pool_rewards
    Σ claimed rewards + pool_rewards  = distributed_rewards
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .core import ZERO, ReconciliationError

if TYPE_CHECKING:
    from .vault import ProtocolVault
    from .stability_pool import StabilityPool


@dataclass(frozen=True, slots=True)
class Discrepancy:
    """A single failed conservation check."""
    check: str
    expected: Decimal
    actual: Decimal
    difference: Decimal

    def __str__(self) -> str:
        return f"{self.check}: expected {self.expected}, actual {self.actual} (diff {self.difference})"


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """
    Outcome of a reconciliation pass.

    Attributes:
        tag: Caller-supplied label for the pass (e.g. "after redistribution")
        valid: True if every check passed
        discrepancies: Failed checks, empty when valid
        totals: Recomputed aggregates, keyed by name
        max_difference: Largest drift seen by any check
    """
    tag: str
    valid: bool
    discrepancies: Tuple[Discrepancy, ...] = ()
    totals: Dict[str, Decimal] = field(default_factory=dict)
    max_difference: Decimal = ZERO

    def raise_if_invalid(self) -> None:
        """
        Raises:
            ReconciliationError: If any check failed
        """
        if not self.valid:
            details = "; ".join(str(d) for d in self.discrepancies)
            label = f"[{self.tag}] " if self.tag else ""
            raise ReconciliationError(f"{label}conservation violated: {details}", self)


class _Checks:
    """Accumulates comparisons for one reconciliation pass."""

    def __init__(self, tolerance: Decimal):
        self.tolerance = tolerance
        self.discrepancies: List[Discrepancy] = []
        self.max_difference = ZERO

    def compare(self, check: str, expected: Decimal, actual: Decimal) -> None:
        difference = abs(expected - actual)
        if difference > self.max_difference:
            self.max_difference = difference
        if not difference < self.tolerance:
            self.discrepancies.append(Discrepancy(check, expected, actual, difference))

    def result(self, tag: str, totals: Dict[str, Decimal]) -> ReconciliationResult:
        return ReconciliationResult(
            tag=tag,
            valid=not self.discrepancies,
            discrepancies=tuple(self.discrepancies),
            totals=dict(totals),
            max_difference=self.max_difference,
        )


def check_vault_ledger(
    vault: 'ProtocolVault',
    tag: str = "",
    tolerance: Optional[Decimal] = None,
) -> ReconciliationResult:
    """
    Check debt and collateral conservation for a vault ledger.

    Args:
        vault: Ledger to check (read only)
        tag: Label carried into the result
        tolerance: Maximum allowed drift (default: the ledger's tolerance)

    Returns:
        ReconciliationResult with recomputed totals
    """
    checks = _Checks(tolerance if tolerance is not None else vault.tolerance)

    native_debt = ZERO
    protocol_debt = ZERO
    pending_debt = ZERO
    native_collateral = ZERO
    protocol_collateral = ZERO
    pending_collateral = ZERO
    for account in vault.list_vaults():
        balances = vault.current_balances(account.vault_id)
        native_debt += balances.native_debt
        protocol_debt += balances.protocol_debt
        pending_debt += balances.pending_debt
        native_collateral += balances.native_collateral
        protocol_collateral += balances.protocol_collateral
        pending_collateral += balances.pending_collateral

    checks.compare("aggregate_debt", vault.aggregate_debt, native_debt + protocol_debt)
    checks.compare(
        "distributed_debt",
        vault.distributed_debt,
        vault.unattributed_debt + protocol_debt + vault.retired_debt,
    )
    checks.compare(
        "debt_closure",
        native_debt + vault.distributed_debt,
        vault.unattributed_debt + vault.aggregate_debt + vault.retired_debt,
    )

    checks.compare(
        "aggregate_collateral",
        vault.aggregate_collateral,
        native_collateral + protocol_collateral,
    )
    checks.compare(
        "distributed_collateral",
        vault.distributed_collateral,
        vault.unattributed_collateral + protocol_collateral + vault.retired_collateral,
    )
    checks.compare(
        "collateral_closure",
        native_collateral + vault.distributed_collateral,
        vault.unattributed_collateral + vault.aggregate_collateral + vault.retired_collateral,
    )

    return checks.result(tag, {
        'native_debt': native_debt,
        'protocol_debt': protocol_debt,
        'pending_debt': pending_debt,
        'aggregate_debt': vault.aggregate_debt,
        'unattributed_debt': vault.unattributed_debt,
        'distributed_debt': vault.distributed_debt,
        'retired_debt': vault.retired_debt,
        'native_collateral': native_collateral,
        'protocol_collateral': protocol_collateral,
        'pending_collateral': pending_collateral,
        'aggregate_collateral': vault.aggregate_collateral,
        'unattributed_collateral': vault.unattributed_collateral,
        'distributed_collateral': vault.distributed_collateral,
        'retired_collateral': vault.retired_collateral,
    })


def check_stability_pool(
    pool: 'StabilityPool',
    tag: str = "",
    tolerance: Optional[Decimal] = None,
) -> ReconciliationResult:
    """
    Check principal and reward conservation for a stability pool.

    Args:
        pool: Pool to check (read only)
        tag: Label carried into the result
        tolerance: Maximum allowed drift (default: the pool's tolerance)

    Returns:
        ReconciliationResult with recomputed totals
    """
    checks = _Checks(tolerance if tolerance is not None else pool.tolerance)

    deposits = ZERO
    rewards = ZERO
    claimed = ZERO
    for provider in pool.list_providers():
        deposits += pool.current_deposit(provider.provider_id)
        rewards += pool.pending_rewards(provider.provider_id)
        claimed += provider.claimed_rewards

    checks.compare("pool_deposits", pool.pool_deposits, deposits)
    checks.compare("pool_rewards", pool.pool_rewards, rewards)
    checks.compare("distributed_rewards", pool.distributed_rewards, claimed + pool.pool_rewards)

    return checks.result(tag, {
        'deposits': deposits,
        'pending_rewards': rewards,
        'claimed_rewards': claimed,
        'pool_deposits': pool.pool_deposits,
        'pool_rewards': pool.pool_rewards,
        'distributed_rewards': pool.distributed_rewards,
    })
