"""
Idempotency Conformance Tests

INVARIANT: Settlement and reconciliation can be repeated freely.

    ∀ vault v:
        settle(v); settle(v)  ≡  settle(v)
    ∀ ledger L:
        reconcile(L); reconcile(L)  ≡  reconcile(L)   (apart from report rows)

Attribution moves a pending share exactly once: after the first settle
the vault's snapshot equals the accumulator and its pending share is
zero, so the second settle has nothing to move.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from distribution_ledger import ProtocolVault, StabilityPool, Report


def vault_state(vault: ProtocolVault):
    return (
        tuple(vault.list_vaults()),
        vault.aggregate_debt, vault.unattributed_debt,
        vault.aggregate_collateral, vault.unattributed_collateral,
    )


def pool_state(pool: StabilityPool):
    return (
        tuple(pool.list_providers()),
        pool.sum, pool.product, pool.epoch,
        pool.pool_deposits, pool.pool_rewards,
    )


amounts = st.lists(
    st.decimals(min_value=Decimal("1"), max_value=Decimal("10000"),
                places=2, allow_nan=False, allow_infinity=False),
    min_size=1,
    max_size=5,
)


class TestSettleIdempotencyProperties:
    """Property-based idempotency tests for vault settlement."""

    @given(amounts, amounts, st.integers(min_value=1, max_value=5))
    @settings(max_examples=50)
    def test_repeated_settle_changes_nothing(self, debts, redistributions, num_repeats):
        """
        PROPERTY: Settling the same vault N times equals settling it once.
        """
        vault = ProtocolVault(Report(), verbose=False)
        for i, debt in enumerate(debts):
            vault.create_vault(f"vault_{i}", debt)
        for amount in redistributions:
            vault.redistribute(amount)

        first = vault.settle("vault_0")
        after_first = vault_state(vault)
        for _ in range(num_repeats):
            assert vault.settle("vault_0") == first
        assert vault_state(vault) == after_first
        assert vault.current_balances("vault_0").pending_debt == Decimal("0")

    @given(amounts, amounts)
    @settings(max_examples=50)
    def test_settle_order_does_not_matter_for_totals(self, debts, redistributions):
        """
        PROPERTY: Settling vaults in any order attributes the same total.
        """
        forward = ProtocolVault(Report(), verbose=False)
        backward = ProtocolVault(Report(), verbose=False)
        for ledger in (forward, backward):
            for i, debt in enumerate(debts):
                ledger.create_vault(f"vault_{i}", debt)
            for amount in redistributions:
                ledger.redistribute(amount)

        ids = [f"vault_{i}" for i in range(len(debts))]
        for vault_id in ids:
            forward.settle(vault_id)
        for vault_id in reversed(ids):
            backward.settle(vault_id)

        for vault_id in ids:
            assert forward.get_vault(vault_id) == backward.get_vault(vault_id)


class TestReconcileIdempotency:

    def test_vault_reconcile_twice(self):
        vault = ProtocolVault(Report(), verbose=False)
        vault.create_vault("alice", Decimal("9000"), Decimal("0.15"))
        vault.create_vault("bob", Decimal("50000"), Decimal("0.75"))
        vault.redistribute(Decimal("3000"), Decimal("0.25"))

        first = vault.reconcile("first")
        state = vault_state(vault)
        second = vault.reconcile("second")

        assert vault_state(vault) == state
        assert first.totals == second.totals
        assert len(vault.report.reconciliation) == 6

    def test_pool_reconcile_twice(self):
        pool = StabilityPool(Report(), verbose=False)
        pool.add_provider("alice")
        pool.deposit(Decimal("100"), "alice")
        pool.liquidate(Decimal("25"), Decimal("1"))

        state = pool_state(pool)
        first = pool.reconcile("first")
        second = pool.reconcile("second")

        assert pool_state(pool) == state
        assert first.totals == second.totals
        assert len(pool.report.reconciliation) == 2

    def test_settle_without_redistribution_is_noop(self):
        vault = ProtocolVault(Report(), verbose=False)
        vault.create_vault("alice", Decimal("100"))
        before = vault_state(vault)
        vault.settle("alice")
        assert vault_state(vault) == before
