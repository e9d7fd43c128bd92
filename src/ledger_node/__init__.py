"""
Ledger Node - CometBFT process supervision for the ledger application

Main Components:
- Supervisor: Launches the CometBFT child process and reacts to shutdown requests
- Document patching: Applies ledger-mandated values to config.toml and genesis.json
- Key material: Translates ledger signing keys into CometBFT validator key files
- Administration: State reset and height rollback of a stopped engine
"""

__version__ = "0.1.0"
__author__ = "Ledger Node Development Team"

__all__ = ["__version__"]
