#!/usr/bin/env python3
"""
demo.py - Walkthrough of the scaled distribution ledgers

Each step drives a ledger through a literal sequence of operations and
prints what changed. Reconciliation runs between steps, so a conservation
break stops the demo with a ReconciliationError.

WHAT YOU'LL SEE:
  1-3: Vault ledger     - Redistribution, lazy attribution, repeated events
  4-5: Stability pool   - Liquidation, compounding, epoch rollover
  6:   Stress           - Random operation streams and their worst drift

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
import sys

from distribution_ledger import (
    ProtocolVault, StabilityPool, Report,
    simulate_vault_ledger, simulate_stability_pool,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the walkthrough. Modify these to experiment."""
    alice_debt: Decimal = Decimal("10000")
    alice_collateral: Decimal = Decimal("0.15")
    bob_debt: Decimal = Decimal("50000")
    bob_collateral: Decimal = Decimal("0.75")
    redistributed_debt: Decimal = Decimal("3000")
    redistributed_collateral: Decimal = Decimal("0.25")

    simulation_seed: int = 7
    simulation_steps: int = 500


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def show_vaults(vault: ProtocolVault):
    for account in vault.list_vaults():
        b = vault.current_balances(account.vault_id)
        print(f"  {b.vault_id:<8} native={b.native_debt:<12} attributed={b.protocol_debt:.8f} "
              f"pending={b.pending_debt:.8f} total={b.total_debt:.8f}")


# ============================================================================
# VAULT LEDGER
# ============================================================================

def step_01_smoke_test(report: Report) -> ProtocolVault:
    step_header(1, "Redistribution Smoke Test",
        "Redistribute debt and collateral, then watch it settle lazily.")

    vault = ProtocolVault(report, verbose=True)
    vault.create_vault("alice", CONFIG.alice_debt, CONFIG.alice_collateral)
    vault.create_vault("bob", CONFIG.bob_debt, CONFIG.bob_collateral)
    vault.repay(Decimal("1000"), "alice")
    vault.deposit(Decimal("0.25"), "alice")
    vault.reconcile("before redistribution")

    vault.redistribute(CONFIG.redistributed_debt, CONFIG.redistributed_collateral)
    print("\nAfter redistribute() no vault has been touched:")
    show_vaults(vault)

    vault.reconcile("after redistribution")
    vault.withdraw(Decimal("0.1"), "alice")
    vault.repay(Decimal("1000"), "alice")
    vault.reconcile("after redistribution & first repay")
    vault.borrow(Decimal("2000"), "alice")
    vault.reconcile("borrow")
    vault.redistribute(CONFIG.redistributed_debt, CONFIG.redistributed_collateral)
    vault.withdraw(Decimal("0.1"), "bob")
    vault.reconcile("after second redistribution")

    print("\nFinal balances:")
    show_vaults(vault)
    wait_for_enter()
    return vault


def step_02_repeated_redistribution(report: Report) -> ProtocolVault:
    step_header(2, "Repeated Redistribution",
        "Several events between touches compose on native plus attributed debt.")

    vault = ProtocolVault(report, verbose=False)
    vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
    vault.create_vault("bob", Decimal("20000"), Decimal("0.30"))
    vault.redistribute(Decimal("3000"), Decimal("0.25"))
    vault.redistribute(Decimal("3000"), Decimal("0.25"))
    vault.repay(Decimal("1000"), "alice")
    vault.repay(Decimal("2000"), "bob")
    vault.redistribute(Decimal("9000"), Decimal("0.25"))
    result = vault.reconcile("balances")

    show_vaults(vault)
    print(f"\nDistributed: {vault.distributed_debt}  Attributed: {result.totals['protocol_debt']:.8f}"
          f"  Unattributed: {vault.unattributed_debt:.8f}")
    wait_for_enter()
    return vault


def step_03_late_joiner():
    step_header(3, "Order Sensitivity",
        "A vault opened after a redistribution takes no share of it.")

    vault = ProtocolVault(verbose=False)
    vault.create_vault("alice", Decimal("1000"))
    vault.redistribute(Decimal("100"))
    vault.create_vault("carol", Decimal("1000"))
    show_vaults(vault)
    vault.reconcile("late joiner")
    wait_for_enter()


# ============================================================================
# STABILITY POOL
# ============================================================================

def step_04_liquidation(report: Report) -> StabilityPool:
    step_header(4, "Stability Pool Liquidation",
        "Deposits shrink pro rata and rewards accrue pro rata.")

    pool = StabilityPool(report, verbose=True)
    pool.add_provider("alice")
    pool.add_provider("bob")
    pool.deposit(Decimal("100"), "alice")
    pool.deposit(Decimal("50"), "bob")
    pool.reconcile("before liquidation")
    pool.liquidate(Decimal("50"), Decimal("0.01"))
    pool.reconcile("after liquidation")

    for provider in pool.list_providers():
        pid = provider.provider_id
        print(f"  {pid:<8} deposit={pool.current_deposit(pid):.8f} rewards={pool.pending_rewards(pid):.10f}")

    pool.withdraw(pool.current_deposit("alice"), "alice")
    pool.reconcile("alice exits")
    wait_for_enter()
    return pool


def step_05_epoch_rollover(report: Report):
    step_header(5, "Full Liquidation",
        "Burning the whole pool closes the epoch instead of driving P to zero.")

    pool = StabilityPool(report, verbose=True)
    pool.add_provider("alice")
    pool.add_provider("bob")
    pool.deposit(Decimal("100"), "alice")
    pool.liquidate(Decimal("100"), Decimal("1"))
    pool.deposit(Decimal("40"), "bob")
    pool.liquidate(Decimal("10"), Decimal("0.5"))
    pool.reconcile("after rollover")

    print(f"  epoch={pool.epoch} product={pool.product}")
    for provider in pool.list_providers():
        pid = provider.provider_id
        print(f"  {pid:<8} deposit={pool.current_deposit(pid):.8f} rewards={pool.pending_rewards(pid):.10f}")
    wait_for_enter()


# ============================================================================
# STRESS
# ============================================================================

def step_06_simulation():
    step_header(6, "Random Operation Streams",
        "Conservation holds across hundreds of random operations.")

    vaults = simulate_vault_ledger(seed=CONFIG.simulation_seed, steps=CONFIG.simulation_steps)
    pool = simulate_stability_pool(seed=CONFIG.simulation_seed, steps=CONFIG.simulation_steps)
    print(f"  vault ledger:   {len(vaults.operations)} operations, "
          f"{vaults.checkpoints} checks, max drift {vaults.max_drift}")
    print(f"  stability pool: {len(pool.operations)} operations, "
          f"{pool.checkpoints} checks, max drift {pool.max_drift}, epoch {pool.ledger.epoch}")


def main():
    report = Report()
    step_01_smoke_test(report)
    step_02_repeated_redistribution(report)
    step_03_late_joiner()
    step_04_liquidation(report)
    step_05_epoch_rollover(report)
    step_06_simulation()

    print(f"\n{'='*70}")
    print("REPORT")
    print(f"{'='*70}\n")
    report.print_report()


if __name__ == "__main__":
    main()
