"""
servicegraph - Property-Based Testing Suite

Property-based tests using Hypothesis for dependency ordering invariants
over generated service graphs.
"""
