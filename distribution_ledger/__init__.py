"""
distribution_ledger - Scaled distribution ledgers for collateralized-debt pools

Two engines share one pattern: a protocol-wide event updates a global
accumulator in O(1), and each account settles its share lazily the next
time it is touched.

    ProtocolVault   Debt and collateral redistribution across vaults
    StabilityPool   Deposits burned by liquidations, rewards paid pro rata

Usage:
    from decimal import Decimal
    from distribution_ledger import ProtocolVault, StabilityPool, Report

    report = Report()
    vault = ProtocolVault(report)
    vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
    vault.create_vault("bob", Decimal("50000"), Decimal("0.75"))
    vault.repay(Decimal("1000"), "alice")
    vault.redistribute(Decimal("3000"), Decimal("0.25"))
    vault.reconcile("after redistribution")

    pool = StabilityPool(report)
    pool.add_provider("alice")
    pool.deposit(Decimal("100"), "alice")
    pool.liquidate(Decimal("50"), Decimal("0.01"))
    pool.reconcile("after liquidation")

    report.print_report()
"""

# Core types
from .core import (
    VaultAccount,
    VaultBalances,
    Provider,
    OperationResult,
    LedgerError,
    AccountNotFound,
    AccountAlreadyExists,
    VaultNotFound,
    VaultAlreadyExists,
    EmptyPoolError,
    LiquidationExceedsDeposits,
    InsufficientBalance,
    ReconciliationError,
    TOLERANCE,
    QUANTITY_EPSILON,
    COLLATERAL_PRICE,
    pending_share,
    pending_rewards,
    compounded_deposit,
    collateral_ratio,
    within_tolerance,
)

# Ledgers
from .vault import ProtocolVault
from .stability_pool import StabilityPool

# Reconciliation
from .reconciliation import (
    Discrepancy,
    ReconciliationResult,
    check_vault_ledger,
    check_stability_pool,
)

# Reporting
from .report import Report, render_table

# Simulation
from .simulation import (
    SimulationResult,
    simulate_vault_ledger,
    simulate_stability_pool,
)

__all__ = [
    'VaultAccount', 'VaultBalances', 'Provider', 'OperationResult',
    'LedgerError', 'AccountNotFound', 'AccountAlreadyExists',
    'VaultNotFound', 'VaultAlreadyExists', 'EmptyPoolError',
    'LiquidationExceedsDeposits', 'InsufficientBalance', 'ReconciliationError',
    'TOLERANCE', 'QUANTITY_EPSILON', 'COLLATERAL_PRICE',
    'pending_share', 'pending_rewards', 'compounded_deposit',
    'collateral_ratio', 'within_tolerance',
    'ProtocolVault', 'StabilityPool',
    'Discrepancy', 'ReconciliationResult', 'check_vault_ledger', 'check_stability_pool',
    'Report', 'render_table',
    'SimulationResult', 'simulate_vault_ledger', 'simulate_stability_pool',
]

__version__ = '1.0.0'
