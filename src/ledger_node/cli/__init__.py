"""Command line interface for the ledger node."""
