"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the distribution ledgers.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Debt, collateral, principal and reward conservation
2. atomicity.py - Failed operations leave no trace
3. idempotency.py - Settling and reconciling twice changes nothing

These tests use hypothesis for property-based testing.
"""
