"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the market ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Pool accounting and escrow holdings
2. atomicity.py - All-or-nothing operation semantics
3. rounding.py - Floor-division payout properties
4. lifecycle.py - Market state machine ordering

These tests use hypothesis for property-based testing.
"""
