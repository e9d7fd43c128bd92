"""
Validator key provisioning for CometBFT.

Converts a ledger consensus key into the engine's priv_validator_key.json
shape and writes a fresh priv_validator_state.json. Both files are
truncated and rewritten, never merged with prior content, and are
readable by the owner only.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Union

from ledger_node.core.config import (
    CONFIG_DIR,
    DATA_DIR,
    PRIV_VALIDATOR_KEY_FILE,
    PRIV_VALIDATOR_STATE_FILE,
)
from ledger_node.core.crypto_utils import KeyScheme, SecretKey
from ledger_node.core.cometbft_exceptions import ValidatorKeyError
from ledger_node.core.node_identity import id_from_pk

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

# Owner read/write only, regardless of umask
SECURE_FILE_MODE = 0o600


def _ed25519_key_material(sk: SecretKey) -> tuple[bytes, bytes]:
    pk_bytes = sk.public_key().to_bytes()
    # The engine stores ed25519 private keys as seed || public key
    return pk_bytes, sk.to_bytes() + pk_bytes


def _secp256k1_key_material(sk: SecretKey) -> tuple[bytes, bytes]:
    return sk.public_key().to_bytes(), sk.to_bytes()


def validator_key_to_json(sk: SecretKey) -> Dict[str, Any]:
    """Convert a consensus secret key into the engine's validator key document."""
    if sk.scheme is KeyScheme.ED25519:
        pk_bytes, kp_bytes = _ed25519_key_material(sk)
    elif sk.scheme is KeyScheme.SECP256K1:
        pk_bytes, kp_bytes = _secp256k1_key_material(sk)
    else:
        raise ValueError(f"Unsupported key scheme: {sk.scheme!r}")

    id_str = sk.scheme.value
    return {
        "address": id_from_pk(sk.public_key()).to_address(),
        "pub_key": {
            "type": f"tendermint/PubKey{id_str}",
            "value": base64.b64encode(pk_bytes).decode("ascii"),
        },
        "priv_key": {
            "type": f"tendermint/PrivKey{id_str}",
            "value": base64.b64encode(kp_bytes).decode("ascii"),
        },
    }


def _write_json(path: Path, payload: Dict[str, Any], what: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ValidatorKeyError(
            f"Couldn't create private validator {what} directory: {exc}",
            details={"path": str(path.parent)},
        ) from exc
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECURE_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            # An existing file keeps its old mode on open
            os.fchmod(f.fileno(), SECURE_FILE_MODE)
            json.dump(payload, f, indent=2)
    except OSError as exc:
        raise ValidatorKeyError(
            f"Couldn't write private validator {what} file: {exc}",
            details={"path": str(path)},
        ) from exc


def write_validator_key(home_dir: PathLike, consensus_key: SecretKey) -> Path:
    """Write <home>/config/priv_validator_key.json for the given key."""
    path = Path(home_dir) / CONFIG_DIR / PRIV_VALIDATOR_KEY_FILE
    _write_json(path, validator_key_to_json(consensus_key), "key")
    logger.info(
        "Wrote CometBFT validator key",
        extra={"event": "validator_keys.key_written", "path": str(path), "scheme": consensus_key.scheme.value},
    )
    return path


def write_validator_state(home_dir: PathLike) -> Path:
    """Write a fresh <home>/data/priv_validator_state.json."""
    path = Path(home_dir) / DATA_DIR / PRIV_VALIDATOR_STATE_FILE
    state = {
        "height": "0",
        "round": 0,
        "step": 0,
    }
    _write_json(path, state, "state")
    logger.info(
        "Wrote CometBFT validator state",
        extra={"event": "validator_keys.state_written", "path": str(path)},
    )
    return path
