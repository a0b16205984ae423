"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending venue.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry and debt/collateral conservation
2. atomicity.py - All-or-nothing operations across component calls
3. idempotency.py - Duplicate execution handling
4. determinism.py - Pure pricing and reproducible state
5. canonicalization.py - Content-addressable transaction identity
6. temporal.py - Maturity, liquidation window and redemption gating

These tests use hypothesis for property-based testing.
"""
