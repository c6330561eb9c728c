"""Reconciliation core: identity, status, merge and comparison report."""
