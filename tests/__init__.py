"""
Warrant test suite.

This package contains tests for the Warrant authorization engine:
- Pattern matching and policy compilation tests
- Statement engine tests
- Store, transaction and attachment tests
- Effective-policy resolution and decision API tests
"""
