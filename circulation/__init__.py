"""Loan circulation core for a single library branch.

Catalog, user registry and loan ledger kept in process memory, with loan
lifecycle events fanned out to switchable notification channels.
"""
__version__ = "1.0.0"
