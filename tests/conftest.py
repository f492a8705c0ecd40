"""
conftest.py - Shared pytest fixtures for distribution ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Empty and funded vault ledgers
- Empty and funded stability pools
- State capture helpers for atomicity / read-only checks
"""

import pytest
from decimal import Decimal
from typing import Any, Dict

from distribution_ledger import (
    ProtocolVault,
    StabilityPool,
    Report,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def capture_vault_state(vault: ProtocolVault) -> Dict[str, Any]:
    """Everything that defines a vault ledger's accounting state."""
    return {
        'vaults': {v.vault_id: v for v in vault.list_vaults()},
        'sum_debt': vault.sum_debt,
        'sum_collateral': vault.sum_collateral,
        'aggregate_debt': vault.aggregate_debt,
        'unattributed_debt': vault.unattributed_debt,
        'distributed_debt': vault.distributed_debt,
        'retired_debt': vault.retired_debt,
        'aggregate_collateral': vault.aggregate_collateral,
        'unattributed_collateral': vault.unattributed_collateral,
        'distributed_collateral': vault.distributed_collateral,
        'retired_collateral': vault.retired_collateral,
    }


def capture_pool_state(pool: StabilityPool) -> Dict[str, Any]:
    """Everything that defines a stability pool's accounting state."""
    return {
        'providers': {p.provider_id: p for p in pool.list_providers()},
        'sum': pool.sum,
        'product': pool.product,
        'epoch': pool.epoch,
        'pool_deposits': pool.pool_deposits,
        'pool_rewards': pool.pool_rewards,
        'distributed_rewards': pool.distributed_rewards,
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def report():
    return Report()


@pytest.fixture
def vault(report):
    """Empty vault ledger, quiet."""
    return ProtocolVault(report, verbose=False)


@pytest.fixture
def funded_vault(vault):
    """
    Alice(10000, 0.15) and Bob(50000, 0.75); Alice has repaid 1000.

    Aggregate debt is 59000 and aggregate collateral 0.9.
    """
    vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
    vault.create_vault("bob", Decimal("50000"), Decimal("0.75"))
    vault.repay(Decimal("1000"), "alice")
    return vault


@pytest.fixture
def pool(report):
    """Empty stability pool, quiet."""
    return StabilityPool(report, verbose=False)


@pytest.fixture
def funded_pool(pool):
    """Alice deposits 100 and Bob deposits 50."""
    pool.add_provider("alice")
    pool.add_provider("bob")
    pool.deposit(Decimal("100"), "alice")
    pool.deposit(Decimal("50"), "bob")
    return pool


@pytest.fixture
def vault_state():
    return capture_vault_state


@pytest.fixture
def pool_state():
    return capture_pool_state
