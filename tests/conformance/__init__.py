"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. rate_properties.py - Bounds and monotonicity of the rate curve and
   liquidation arithmetic
2. solvency.py - Asset conservation and pool accounting under arbitrary
   operation sequences
3. atomicity.py - Rejected operations change nothing

These tests use hypothesis for property-based testing.
"""
