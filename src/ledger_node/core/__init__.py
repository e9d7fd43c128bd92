"""
Ledger Node Core Module

Core functionality for running a CometBFT engine underneath the ledger:
- Engine configuration and genesis document patching
- Validator key provisioning and node identity derivation
- Child process supervision and administrative recovery
"""

__all__ = []
