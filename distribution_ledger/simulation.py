"""
simulation.py - Randomized operation streams for the distribution ledgers

Drives a ledger through a long random sequence of operations and records
the worst conservation drift seen along the way. Used to stress the lazy
attribution math well beyond hand-written scenarios.

Amounts are drawn with numpy and quantized to fixed decimal places before
they reach the ledger, so a run is fully determined by its seed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Tuple, Union

import numpy as np

from .core import ZERO, QUANTITY_EPSILON
from .reconciliation import ReconciliationResult
from .report import Report
from .stability_pool import StabilityPool
from .vault import ProtocolVault


Operation = Tuple[str, ...]


@dataclass
class SimulationResult:
    """
    Outcome of a simulation run.

    Attributes:
        ledger: The ledger after the final operation
        operations: Every applied operation as (name, *args) tuples
        max_drift: Largest conservation drift seen at any checkpoint
        checkpoints: Number of conservation checks performed
    """
    ledger: Union[ProtocolVault, StabilityPool]
    operations: List[Operation] = field(default_factory=list)
    max_drift: Decimal = ZERO
    checkpoints: int = 0


def _amount(rng: np.random.Generator, low: float, high: float, places: int = 2) -> Decimal:
    return Decimal(str(round(float(rng.uniform(low, high)), places)))


def simulate_vault_ledger(
    seed: int = 0,
    steps: int = 200,
    vault_count: int = 5,
    check_every: int = 10,
) -> SimulationResult:
    """
    Run a random sequence of vault operations.

    Each step is one of borrow, repay, deposit, withdraw, redistribute, or
    (while fewer than vault_count vaults exist) create_vault. Conservation is
    checked every check_every steps and after the last step.

    Args:
        seed: numpy RNG seed
        steps: Number of operations to attempt
        vault_count: Maximum number of vaults
        check_every: Steps between conservation checks

    Returns:
        SimulationResult with the final ledger and the worst drift
    """
    rng = np.random.default_rng(seed)
    vault = ProtocolVault(Report(), verbose=False)
    result = SimulationResult(ledger=vault)
    ids: List[str] = []

    def create() -> None:
        vault_id = f"vault_{len(ids)}"
        debt = _amount(rng, 1000, 50000)
        collateral = _amount(rng, 0.05, 2.0, places=4)
        vault.create_vault(vault_id, debt, collateral)
        ids.append(vault_id)
        result.operations.append(("create_vault", vault_id, str(debt), str(collateral)))

    create()
    for step in range(steps):
        kind = str(rng.choice(["create", "borrow", "repay", "deposit", "withdraw", "redistribute"]))
        if kind == "create" and len(ids) < vault_count:
            create()
        elif kind == "redistribute" and vault.aggregate_debt > QUANTITY_EPSILON:
            debt = _amount(rng, 0, 5000)
            collateral = _amount(rng, 0, 0.5, places=4) if vault.aggregate_collateral > QUANTITY_EPSILON else ZERO
            vault.redistribute(debt, collateral)
            result.operations.append(("redistribute", str(debt), str(collateral)))
        elif kind in ("borrow", "repay", "deposit", "withdraw"):
            vault_id = ids[int(rng.integers(len(ids)))]
            balances = vault.current_balances(vault_id)
            if kind == "borrow":
                amount = _amount(rng, 0, 10000)
            elif kind == "repay":
                amount = min(_amount(rng, 0, 10000), balances.total_debt)
            elif kind == "deposit":
                amount = _amount(rng, 0, 1, places=4)
            else:
                amount = min(_amount(rng, 0, 1, places=4), balances.total_collateral)
            getattr(vault, kind)(amount, vault_id)
            result.operations.append((kind, vault_id, str(amount)))

        if (step + 1) % check_every == 0:
            _checkpoint(result, vault.verify_conservation(f"step {step + 1}"))

    _checkpoint(result, vault.reconcile("final"))
    return result


def simulate_stability_pool(
    seed: int = 0,
    steps: int = 200,
    provider_count: int = 5,
    check_every: int = 10,
) -> SimulationResult:
    """
    Run a random sequence of stability pool operations.

    Liquidations burn between 0 and 60% of the pool. Occasionally a
    liquidation burns the whole pool, exercising epoch rollover. Pools
    holding less than one unit are not liquidated.

    Args:
        seed: numpy RNG seed
        steps: Number of operations to attempt
        provider_count: Number of providers registered up front
        check_every: Steps between conservation checks

    Returns:
        SimulationResult with the final pool and the worst drift
    """
    rng = np.random.default_rng(seed)
    pool = StabilityPool(Report(), verbose=False)
    result = SimulationResult(ledger=pool)
    ids = [f"provider_{i}" for i in range(provider_count)]
    for provider_id in ids:
        pool.add_provider(provider_id)
        result.operations.append(("add_provider", provider_id))

    for step in range(steps):
        kind = str(rng.choice(["deposit", "deposit", "withdraw", "liquidate"]))
        if kind == "liquidate" and pool.pool_deposits >= 1:
            if rng.random() < 0.05:
                debt = pool.pool_deposits
            else:
                debt = (pool.pool_deposits * Decimal(str(round(float(rng.uniform(0, 0.6)), 4)))).quantize(Decimal("0.01"))
                debt = min(debt, pool.pool_deposits)
            reward = _amount(rng, 0, 1, places=6)
            pool.liquidate(debt, reward)
            result.operations.append(("liquidate", str(debt), str(reward)))
        elif kind == "withdraw":
            provider_id = ids[int(rng.integers(len(ids)))]
            amount = min(_amount(rng, 0, 500), pool.current_deposit(provider_id))
            pool.withdraw(amount, provider_id)
            result.operations.append(("withdraw", provider_id, str(amount)))
        else:
            provider_id = ids[int(rng.integers(len(ids)))]
            amount = _amount(rng, 1, 1000)
            pool.deposit(amount, provider_id)
            result.operations.append(("deposit", provider_id, str(amount)))

        if (step + 1) % check_every == 0:
            _checkpoint(result, pool.verify_conservation(f"step {step + 1}"))

    _checkpoint(result, pool.reconcile("final"))
    return result


def _checkpoint(result: SimulationResult, check: ReconciliationResult) -> None:
    result.checkpoints += 1
    if check.max_difference > result.max_drift:
        result.max_drift = check.max_difference
