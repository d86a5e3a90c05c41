"""ledgerctl: reconciliation core for a ledger-network fleet controller."""

__version__ = "0.3.0"
