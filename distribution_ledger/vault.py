"""
vault.py - Vault Debt Ledger with lazy redistribution

ProtocolVault tracks borrower vaults and absorbs protocol-wide
redistribution events in O(1). A redistribution only advances a global
per-unit accumulator; each vault picks up its share the next time it is
touched (borrow, repay, deposit, withdraw, settle, reconcile).

Accumulator step for a redistribution of D debt:
    sum_debt += D / aggregate_debt

Settlement of a vault against the accumulator:
    pending = (debt + protocol_debt) * (sum_debt - sum_debt_snapshot)

Collateral is redistributed the same way over its own accumulator and
aggregate.

Repayment draws on native debt first and then on attributed protocol
debt. Attributed debt paid off this way is retired: it leaves the vault
and the aggregate but stays counted in distributed_debt, so the ledger
keeps a retired_debt total for reconciliation (and retired_collateral
for withdrawals of attributed collateral).

Failure policy: unknown vaults, duplicate vaults, redistributing over an
empty aggregate, and repaying or withdrawing more than a vault holds all raise before any state changes.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .core import (
    # Types
    VaultAccount, VaultBalances, OperationResult,
    # Constants
    ZERO, TOLERANCE, QUANTITY_EPSILON, COLLATERAL_PRICE,
    # Exceptions
    VaultNotFound, VaultAlreadyExists, EmptyPoolError, InsufficientBalance,
    # Helper functions
    to_amount, pending_share, collateral_ratio,
)
from .reconciliation import ReconciliationResult, check_vault_ledger
from .report import Report


class ProtocolVault:
    """
    Debt and collateral ledger for borrower vaults.

    Design Principles:
        - O(1) redistribution: redistribute() touches three numbers, no vaults.
        - Settle before mutate: every vault operation first attributes the
          vault's pending share, then applies its own effect, then snapshots
          the accumulators.
        - All or nothing: arguments and balances are validated before any
          field is written.

    Thread Safety:
        Not thread-safe. Callers must serialize access to a ledger instance.

    Example:
        report = Report()
        vault = ProtocolVault(report, verbose=False)
        vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
        vault.create_vault("bob", Decimal("50000"), Decimal("0.75"))
        vault.redistribute(Decimal("3000"), Decimal("0.25"))
        vault.reconcile("after redistribution")
    """

    def __init__(
        self,
        report: Optional[Report] = None,
        collateral_price: Decimal = COLLATERAL_PRICE,
        redistribute_collateral: bool = True,
        tolerance: Decimal = TOLERANCE,
        verbose: bool = True,
    ):
        """
        Create an empty vault ledger.

        Args:
            report: Sink for audit lines and reconciliation rows (default: new Report)
            collateral_price: Constant collateral price for ratio reporting
            redistribute_collateral: Track collateral redistribution (default: True)
            tolerance: Maximum drift allowed by reconciliation
            verbose: Print status lines (default: True)
        """
        self.report = report if report is not None else Report()
        self.collateral_price = to_amount(collateral_price, "collateral_price")
        self.redistribute_collateral = redistribute_collateral
        self.tolerance = tolerance
        self.verbose = verbose

        self._vaults: Dict[str, VaultAccount] = {}

        # Debt accumulator and aggregates
        self._sum_debt = ZERO
        self._aggregate_debt = ZERO
        self._unattributed_debt = ZERO
        self._distributed_debt = ZERO
        self._retired_debt = ZERO

        # Collateral mirror
        self._sum_collateral = ZERO
        self._aggregate_collateral = ZERO
        self._unattributed_collateral = ZERO
        self._distributed_collateral = ZERO
        self._retired_collateral = ZERO

    # ========================================================================
    # READ ACCESSORS
    # ========================================================================

    @property
    def sum_debt(self) -> Decimal:
        """Cumulative redistributed debt per unit of debt."""
        return self._sum_debt

    @property
    def sum_collateral(self) -> Decimal:
        """Cumulative redistributed collateral per unit of collateral."""
        return self._sum_collateral

    @property
    def aggregate_debt(self) -> Decimal:
        """Native plus attributed debt across all vaults."""
        return self._aggregate_debt

    @property
    def unattributed_debt(self) -> Decimal:
        """Redistributed debt not yet settled into any vault."""
        return self._unattributed_debt

    @property
    def distributed_debt(self) -> Decimal:
        """Total debt ever passed to redistribute()."""
        return self._distributed_debt

    @property
    def retired_debt(self) -> Decimal:
        """Attributed debt repaid out of vaults."""
        return self._retired_debt

    @property
    def aggregate_collateral(self) -> Decimal:
        return self._aggregate_collateral

    @property
    def unattributed_collateral(self) -> Decimal:
        return self._unattributed_collateral

    @property
    def distributed_collateral(self) -> Decimal:
        return self._distributed_collateral

    @property
    def retired_collateral(self) -> Decimal:
        return self._retired_collateral

    def has_vault(self, vault_id: str) -> bool:
        return vault_id in self._vaults

    def get_vault(self, vault_id: str) -> VaultAccount:
        """
        Return the stored record for a vault.

        Records are immutable; the ledger replaces them on change.

        Raises:
            VaultNotFound: If the vault does not exist
        """
        return self._require(vault_id)

    def list_vaults(self) -> List[VaultAccount]:
        """All vaults in creation order."""
        return list(self._vaults.values())

    def current_balances(self, vault_id: str) -> VaultBalances:
        """
        Compute a vault's balances including its uncommitted share.

        Read-only: the pending share is computed against the current
        accumulators but not written to the vault.

        Raises:
            VaultNotFound: If the vault does not exist
        """
        vault = self._require(vault_id)
        return VaultBalances(
            vault_id=vault.vault_id,
            native_debt=vault.debt,
            protocol_debt=vault.protocol_debt,
            pending_debt=self._pending_debt(vault),
            native_collateral=vault.collateral,
            protocol_collateral=vault.protocol_collateral,
            pending_collateral=self._pending_collateral(vault),
        )

    def collateral_ratio(self, vault_id: str) -> Optional[Decimal]:
        """
        Collateral value over total debt at the configured price.

        Returns None for a vault without debt.
        """
        balances = self.current_balances(vault_id)
        return collateral_ratio(balances.total_collateral, balances.total_debt, self.collateral_price)

    # ========================================================================
    # ATTRIBUTION
    # ========================================================================

    def _require(self, vault_id: str) -> VaultAccount:
        vault = self._vaults.get(vault_id)
        if vault is None:
            raise VaultNotFound(f"Vault {vault_id} does not exist")
        return vault

    def _pending_debt(self, vault: VaultAccount) -> Decimal:
        return pending_share(vault.debt, vault.protocol_debt, self._sum_debt, vault.sum_debt_snapshot)

    def _pending_collateral(self, vault: VaultAccount) -> Decimal:
        return pending_share(
            vault.collateral, vault.protocol_collateral,
            self._sum_collateral, vault.sum_collateral_snapshot,
        )

    def _attribute(self, vault: VaultAccount) -> VaultAccount:
        """
        Move the vault's pending share out of the unattributed pool.

        The attributed amount becomes owned debt (or collateral) and joins
        the aggregate. Snapshots advance to the current accumulators, so a
        second call with no redistribution in between changes nothing.

        Returns the settled record; the caller stores it.
        """
        debt_share = self._pending_debt(vault)
        collateral_share = self._pending_collateral(vault)

        self._unattributed_debt -= debt_share
        self._aggregate_debt += debt_share
        self._unattributed_collateral -= collateral_share
        self._aggregate_collateral += collateral_share

        return replace(
            vault,
            protocol_debt=vault.protocol_debt + debt_share,
            sum_debt_snapshot=self._sum_debt,
            protocol_collateral=vault.protocol_collateral + collateral_share,
            sum_collateral_snapshot=self._sum_collateral,
        )

    def settle(self, vault_id: str) -> VaultAccount:
        """
        Attribute a vault's pending share without changing its native balances.

        Raises:
            VaultNotFound: If the vault does not exist
        """
        vault = self._attribute(self._require(vault_id))
        self._vaults[vault_id] = vault
        return vault

    # ========================================================================
    # VAULT OPERATIONS (Mutating)
    # ========================================================================

    def create_vault(self, vault_id: str, debt: Decimal, collateral: Decimal = ZERO) -> OperationResult:
        """
        Open a vault.

        The vault snapshots the current accumulators, so it takes no part in
        redistributions that happened before it existed.

        Raises:
            VaultAlreadyExists: If vault_id is already present
            ValueError: If debt or collateral is not a finite non-negative number
        """
        if not vault_id or not str(vault_id).strip():
            raise ValueError("Vault id cannot be empty")
        if vault_id in self._vaults:
            raise VaultAlreadyExists(f"Vault {vault_id} already exists")
        debt = to_amount(debt, "debt")
        collateral = to_amount(collateral, "collateral")

        self._vaults[vault_id] = VaultAccount(
            vault_id=vault_id,
            debt=debt,
            protocol_debt=ZERO,
            sum_debt_snapshot=self._sum_debt,
            collateral=collateral,
            protocol_collateral=ZERO,
            sum_collateral_snapshot=self._sum_collateral,
        )
        self._aggregate_debt += debt
        self._aggregate_collateral += collateral

        self._log(f"Added vault: {vault_id}")
        return OperationResult.APPLIED

    def borrow(self, amount: Decimal, vault_id: str) -> OperationResult:
        """
        Increase a vault's native debt.

        Raises:
            VaultNotFound: If the vault does not exist
        """
        amount = to_amount(amount)
        vault = self._attribute(self._require(vault_id))
        self._vaults[vault_id] = replace(vault, debt=vault.debt + amount)
        self._aggregate_debt += amount
        self._log(f"Borrowed {amount} for vault: {vault_id}")
        return OperationResult.APPLIED

    def repay(self, amount: Decimal, vault_id: str) -> OperationResult:
        """
        Reduce a vault's debt, native first, then attributed protocol debt.

        The protocol part of a repayment is retired: it stays in
        distributed_debt and is tracked in retired_debt.

        Raises:
            VaultNotFound: If the vault does not exist
            InsufficientBalance: If amount exceeds the vault's total debt
        """
        amount = to_amount(amount)
        vault = self._require(vault_id)
        owed = vault.debt + (vault.protocol_debt + self._pending_debt(vault))
        if amount > owed:
            raise InsufficientBalance(
                f"Repay of {amount} exceeds debt {owed} for vault {vault_id}"
            )
        vault = self._attribute(vault)
        native = min(amount, vault.debt)
        protocol = min(amount - native, vault.protocol_debt)
        self._vaults[vault_id] = replace(
            vault,
            debt=vault.debt - native,
            protocol_debt=vault.protocol_debt - protocol,
        )
        self._aggregate_debt -= native + protocol
        self._retired_debt += protocol
        self._log(f"Repaid {amount} for vault: {vault_id}")
        return OperationResult.APPLIED

    def deposit(self, amount: Decimal, vault_id: str) -> OperationResult:
        """
        Add native collateral to a vault.

        Raises:
            VaultNotFound: If the vault does not exist
        """
        amount = to_amount(amount)
        vault = self._attribute(self._require(vault_id))
        self._vaults[vault_id] = replace(vault, collateral=vault.collateral + amount)
        self._aggregate_collateral += amount
        self._log(f"Deposited {amount} collateral for vault: {vault_id}")
        return OperationResult.APPLIED

    def withdraw(self, amount: Decimal, vault_id: str) -> OperationResult:
        """
        Remove collateral from a vault, native first, then attributed.

        Raises:
            VaultNotFound: If the vault does not exist
            InsufficientBalance: If amount exceeds the vault's total collateral
        """
        amount = to_amount(amount)
        vault = self._require(vault_id)
        held = vault.collateral + (vault.protocol_collateral + self._pending_collateral(vault))
        if amount > held:
            raise InsufficientBalance(
                f"Withdrawal of {amount} exceeds collateral {held} for vault {vault_id}"
            )
        vault = self._attribute(vault)
        native = min(amount, vault.collateral)
        protocol = min(amount - native, vault.protocol_collateral)
        self._vaults[vault_id] = replace(
            vault,
            collateral=vault.collateral - native,
            protocol_collateral=vault.protocol_collateral - protocol,
        )
        self._aggregate_collateral -= native + protocol
        self._retired_collateral += protocol
        self._log(f"Withdrew {amount} collateral for vault: {vault_id}")
        return OperationResult.APPLIED

    def redistribute(self, debt_amount: Decimal, collateral_amount: Decimal = ZERO) -> OperationResult:
        """
        Spread debt (and collateral) across all open vaults in O(1).

        Each vault's share is proportional to its native plus attributed
        balance at the moment it is next settled.

        Raises:
            EmptyPoolError: If there is no debt (or, when collateral is being
                redistributed, no collateral) to divide by
            ValueError: If collateral is given while collateral
                redistribution is disabled
        """
        debt_amount = to_amount(debt_amount, "debt_amount")
        collateral_amount = to_amount(collateral_amount, "collateral_amount")

        if self._aggregate_debt <= QUANTITY_EPSILON:
            raise EmptyPoolError("Cannot redistribute debt: aggregate vault debt is zero")
        if collateral_amount > 0:
            if not self.redistribute_collateral:
                raise ValueError("Collateral redistribution is disabled for this ledger")
            if self._aggregate_collateral <= QUANTITY_EPSILON:
                raise EmptyPoolError("Cannot redistribute collateral: aggregate vault collateral is zero")

        self._sum_debt += debt_amount / self._aggregate_debt
        self._unattributed_debt += debt_amount
        self._distributed_debt += debt_amount

        if collateral_amount > 0:
            self._sum_collateral += collateral_amount / self._aggregate_collateral
            self._unattributed_collateral += collateral_amount
            self._distributed_collateral += collateral_amount

        self._log(f"Redistributed {debt_amount} debt and {collateral_amount} collateral")
        return OperationResult.APPLIED

    # ========================================================================
    # RECONCILIATION
    # ========================================================================

    def verify_conservation(self, tag: str = "") -> ReconciliationResult:
        """
        Run the conservation checks without settling or raising.

        Example:
            result = vault.verify_conservation()
            assert result.valid, result.discrepancies
        """
        return check_vault_ledger(self, tag, self.tolerance)

    def reconcile(self, tag: str = "") -> ReconciliationResult:
        """
        Settle every vault, check conservation, and report.

        Settlement preserves value, so the only lasting effect besides the
        report rows is that pending shares become attributed.

        Emits one reconciliation row per vault and a summary row.

        Raises:
            ReconciliationError: If any conservation check fails
        """
        for vault_id in list(self._vaults):
            self.settle(vault_id)

        result = self.verify_conservation(tag)
        result.raise_if_invalid()

        for vault in self._vaults.values():
            self.report.record_reconciliation_row(self._vault_row(tag, vault))
        self.report.record_reconciliation_row({
            'state': tag,
            'vault_id': '*',
            'native_debt': result.totals['native_debt'],
            'protocol_debt': result.totals['protocol_debt'],
            'aggregate_debt': self._aggregate_debt,
            'unattributed_debt': self._unattributed_debt,
            'distributed_debt': self._distributed_debt,
            'retired_debt': self._retired_debt,
            'collateral': self._aggregate_collateral,
        })
        if self.verbose:
            print(f"✓ RECONCILED: {tag or 'vaults'} (max drift {result.max_difference})")
        return result

    def _vault_row(self, tag: str, vault: VaultAccount) -> Dict[str, Any]:
        balances = self.current_balances(vault.vault_id)
        row: Dict[str, Any] = {'state': tag}
        row.update(balances.as_row())
        row['collateral_ratio'] = collateral_ratio(
            balances.total_collateral, balances.total_debt, self.collateral_price
        )
        return row

    def _log(self, action: str) -> None:
        self.report.record_action(action)
        if self.verbose:
            print(f"📝 {action}")
