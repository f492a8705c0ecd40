"""
test_vault_scenarios.py - End-to-end vault ledger scenarios

Walks complete operation sequences through ProtocolVault and reconciles
after every stage:
- Two-vault redistribution with exact expected shares
- The smoke test sequence (repay, deposit, redistribute, borrow, withdraw)
- Several redistributions between touches
- Vaults joining and leaving between redistributions
"""

import pytest
from decimal import Decimal

from distribution_ledger import ProtocolVault, Report, TOLERANCE


def close(a: Decimal, b: Decimal) -> bool:
    return abs(a - b) < TOLERANCE


def attributed_total(vault: ProtocolVault) -> Decimal:
    return sum((v.protocol_debt for v in vault.list_vaults()), Decimal("0"))


class TestTwoVaultRedistribution:
    """Alice(10000, 0.15) and Bob(50000, 0.75); Alice repays 1000; 3000 debt and 0.25 collateral redistributed."""

    def test_shares_split_by_debt(self, funded_vault):
        funded_vault.redistribute(Decimal("3000"), Decimal("0.25"))
        assert funded_vault.aggregate_debt == Decimal("59000")

        funded_vault.reconcile("after redistribution")

        alice = funded_vault.get_vault("alice")
        bob = funded_vault.get_vault("bob")
        assert close(alice.protocol_debt, Decimal("457.62711864"))
        assert close(bob.protocol_debt, Decimal("2542.37288136"))
        assert close(alice.protocol_debt + bob.protocol_debt, Decimal("3000"))
        assert alice.debt == Decimal("9000")
        assert bob.debt == Decimal("50000")

    def test_collateral_split_by_collateral(self, funded_vault):
        funded_vault.redistribute(Decimal("3000"), Decimal("0.25"))
        funded_vault.reconcile()

        alice = funded_vault.get_vault("alice")
        bob = funded_vault.get_vault("bob")
        assert close(alice.protocol_collateral, Decimal("0.25") * Decimal("0.15") / Decimal("0.9"))
        assert close(bob.protocol_collateral, Decimal("0.25") * Decimal("0.75") / Decimal("0.9"))

    def test_aggregate_absorbs_attributed_debt(self, funded_vault):
        funded_vault.redistribute(Decimal("3000"), Decimal("0.25"))
        funded_vault.reconcile()

        assert close(funded_vault.aggregate_debt, Decimal("62000"))
        assert close(funded_vault.unattributed_debt, Decimal("0"))
        assert funded_vault.distributed_debt == Decimal("3000")

    def test_report_rows(self, funded_vault, report):
        funded_vault.redistribute(Decimal("3000"), Decimal("0.25"))
        funded_vault.reconcile("after redistribution")

        alice_row, bob_row, summary = report.reconciliation
        assert alice_row['vault_id'] == "alice"
        assert close(alice_row['protocol_debt'], Decimal("457.62711864"))
        assert alice_row['pending_debt'] == Decimal("0")
        assert close(alice_row['total_debt'], Decimal("9457.62711864"))
        assert bob_row['native_debt'] == Decimal("50000")
        assert summary['vault_id'] == "*"
        assert summary['distributed_debt'] == Decimal("3000")
        assert summary['native_debt'] == Decimal("59000")

    def test_vault_row_matches_current_balances(self, funded_vault, report):
        funded_vault.redistribute(Decimal("3000"), Decimal("0.25"))
        funded_vault.reconcile("after redistribution")

        alice_row = report.reconciliation[0]
        expected = funded_vault.current_balances("alice").as_row()
        assert {k: alice_row[k] for k in expected} == expected
        assert set(alice_row) == set(expected) | {'state', 'collateral_ratio'}


class TestSmokeSequence:
    """Interleaves every vault operation with two redistributions."""

    @pytest.fixture
    def smoke_vault(self, report):
        vault = ProtocolVault(report, verbose=False)
        vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
        vault.create_vault("bob", Decimal("50000"), Decimal("0.75"))
        vault.repay(Decimal("1000"), "alice")
        vault.deposit(Decimal("0.25"), "alice")
        vault.reconcile("before redistribution")

        vault.redistribute(Decimal("3000"), Decimal("0.25"))
        vault.reconcile("after redistribution")
        vault.withdraw(Decimal("0.1"), "alice")
        vault.repay(Decimal("1000"), "alice")
        vault.reconcile("after redistribution & first repay")
        vault.borrow(Decimal("2000"), "alice")
        vault.reconcile("borrow")
        vault.redistribute(Decimal("3000"), Decimal("0.25"))
        vault.withdraw(Decimal("0.1"), "bob")
        vault.reconcile("after second redistribution")
        return vault

    def test_native_balances(self, smoke_vault):
        alice = smoke_vault.get_vault("alice")
        bob = smoke_vault.get_vault("bob")
        assert alice.debt == Decimal("10000")
        assert bob.debt == Decimal("50000")
        assert alice.collateral == Decimal("0.3")
        assert bob.collateral == Decimal("0.65")

    def test_everything_distributed_is_attributed(self, smoke_vault):
        assert smoke_vault.distributed_debt == Decimal("6000")
        assert smoke_vault.distributed_collateral == Decimal("0.5")
        assert close(attributed_total(smoke_vault), Decimal("6000"))
        assert close(smoke_vault.aggregate_debt, Decimal("66000"))
        assert close(smoke_vault.aggregate_collateral, Decimal("1.45"))

    def test_first_redistribution_uses_collateral_after_deposit(self, report):
        vault = ProtocolVault(report, verbose=False)
        vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
        vault.create_vault("bob", Decimal("50000"), Decimal("0.75"))
        vault.deposit(Decimal("0.25"), "alice")
        vault.redistribute(Decimal("0"), Decimal("0.23"))
        vault.reconcile()
        # alice holds 0.4 of 1.15
        assert close(vault.get_vault("alice").protocol_collateral, Decimal("0.08"))
        assert close(vault.get_vault("bob").protocol_collateral, Decimal("0.15"))

    def test_five_reconciliations_recorded(self, smoke_vault, report):
        states = [row['state'] for row in report.reconciliation if row['vault_id'] == '*']
        assert states == [
            "before redistribution",
            "after redistribution",
            "after redistribution & first repay",
            "borrow",
            "after second redistribution",
        ]


class TestRepeatedRedistribution:
    """Three redistributions, two of them back to back, with repayments in between."""

    def test_end_state(self, vault):
        vault.create_vault("alice", Decimal("10000"), Decimal("0.15"))
        vault.create_vault("bob", Decimal("20000"), Decimal("0.30"))
        vault.redistribute(Decimal("3000"), Decimal("0.25"))
        vault.redistribute(Decimal("3000"), Decimal("0.25"))
        vault.repay(Decimal("1000"), "alice")
        vault.repay(Decimal("2000"), "bob")
        vault.redistribute(Decimal("9000"), Decimal("0.25"))
        result = vault.reconcile("balances")

        assert close(vault.get_vault("alice").protocol_debt, Decimal("5000"))
        assert close(vault.get_vault("bob").protocol_debt, Decimal("10000"))
        assert close(result.totals['protocol_debt'], vault.distributed_debt)
        assert close(vault.aggregate_debt, Decimal("42000"))
        # collateral was never touched natively, so it splits 1:2 throughout
        assert close(vault.get_vault("alice").protocol_collateral, Decimal("0.25"))
        assert close(vault.get_vault("bob").protocol_collateral, Decimal("0.5"))


class TestChangingMembership:

    def test_vault_joining_between_redistributions(self, vault):
        vault.create_vault("alice", Decimal("1000"))
        vault.redistribute(Decimal("100"))
        vault.create_vault("carol", Decimal("1000"))
        vault.redistribute(Decimal("210"))
        vault.reconcile()

        # alice's first share was still pending, so the second event splits 1000:1000
        assert close(vault.get_vault("alice").protocol_debt, Decimal("205"))
        assert close(vault.get_vault("carol").protocol_debt, Decimal("105"))

    def test_settled_share_carries_weight(self, vault):
        vault.create_vault("alice", Decimal("1000"))
        vault.redistribute(Decimal("100"))
        vault.create_vault("carol", Decimal("1000"))
        vault.settle("alice")
        vault.redistribute(Decimal("210"))
        vault.reconcile()

        # second event splits over alice(1000 + 100) and carol(1000)
        assert close(vault.get_vault("alice").protocol_debt, Decimal("210"))
        assert close(vault.get_vault("carol").protocol_debt, Decimal("100"))

    def test_fully_repaid_vault_stops_sharing(self, vault):
        vault.create_vault("alice", Decimal("1000"))
        vault.create_vault("bob", Decimal("1000"))
        vault.repay(Decimal("1000"), "bob")
        vault.redistribute(Decimal("50"))
        vault.reconcile()

        assert close(vault.get_vault("alice").protocol_debt, Decimal("50"))
        assert vault.get_vault("bob").protocol_debt == Decimal("0")

    def test_shared_report_collects_both_ledgers(self):
        report = Report()
        first = ProtocolVault(report, verbose=False)
        second = ProtocolVault(report, verbose=False)
        first.create_vault("alice", Decimal("1"))
        second.create_vault("bob", Decimal("1"))
        first.reconcile("first")
        second.reconcile("second")
        assert [row['vault_id'] for row in report.reconciliation] == ["alice", "*", "bob", "*"]
