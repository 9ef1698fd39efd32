"""
SMBFuzzer Test Suite

Test organization:
- unit/: Unit tests for individual modules, run against recorded server
  responses and an in-memory transport
- property/: Property-based tests using Hypothesis
"""
