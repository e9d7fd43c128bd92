"""
CometBFT genesis.json patching.

Overwrites the chain id, genesis time and block size parameters of the
genesis document generated by the engine's `init`. The application state
field is left as the engine wrote it; the ledger supplies it separately.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Union

from ledger_node.core.config import (
    BLOCK_MAX_BYTES,
    BLOCK_MAX_GAS_DISABLED,
    BLOCK_TIME_IOTA_MS_DEFAULT,
    CONFIG_DIR,
    GENESIS_FILE,
    MAX_CHAIN_ID_LENGTH,
)
from ledger_node.core.cometbft_exceptions import GenesisError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_ENGINE_TIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d{1,9}))?Z$"
)


def genesis_path(home_dir: PathLike) -> Path:
    return Path(home_dir) / CONFIG_DIR / GENESIS_FILE


def parse_chain_id(chain_id: str) -> str:
    """Validate a chain id the way the engine does."""
    if not chain_id:
        raise GenesisError("Invalid chain ID: empty")
    # The engine limits the encoded length, not the character count
    if len(chain_id.encode("utf-8")) > MAX_CHAIN_ID_LENGTH:
        raise GenesisError(
            f"Invalid chain ID: longer than {MAX_CHAIN_ID_LENGTH} bytes",
            details={"chain_id": chain_id},
        )
    if any(ch.isspace() for ch in chain_id):
        raise GenesisError("Invalid chain ID: contains whitespace", details={"chain_id": chain_id})
    return chain_id


def to_engine_time(dt: datetime) -> str:
    """Render a UTC datetime in the engine's RFC 3339 nanosecond form.

    Trailing zeros of the fraction are trimmed and a zero fraction is
    omitted, matching Go's RFC3339Nano.
    """
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise GenesisError(
            "Couldn't convert genesis time: timestamp must be timezone-aware",
            details={"genesis_time": dt.isoformat()},
        )
    try:
        utc = dt.astimezone(timezone.utc)
    except OverflowError as exc:
        raise GenesisError(
            f"Couldn't convert genesis time: {exc}",
            details={"genesis_time": dt.isoformat()},
        ) from exc
    base = f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}T{utc:%H:%M:%S}"
    nanos = f"{utc.microsecond * 1000:09d}".rstrip("0")
    if nanos:
        return f"{base}.{nanos}Z"
    return f"{base}Z"


def from_engine_time(text: str) -> datetime:
    """Parse an engine timestamp; sub-microsecond digits are truncated."""
    match = _ENGINE_TIME_RE.match(text)
    if not match:
        raise GenesisError(f"Invalid engine timestamp: {text!r}")
    parsed = datetime.strptime(match.group("base"), "%Y-%m-%dT%H:%M:%S")
    frac = (match.group("frac") or "").ljust(9, "0")
    return parsed.replace(microsecond=int(frac[:6]), tzinfo=timezone.utc)


def patch_genesis_document(
    genesis: Dict[str, Any],
    chain_id: str,
    genesis_time: datetime,
) -> Dict[str, Any]:
    genesis["chain_id"] = parse_chain_id(chain_id)
    genesis["genesis_time"] = to_engine_time(genesis_time)

    consensus_params = genesis.setdefault("consensus_params", {})
    block = consensus_params.get("block") or {}
    # int64 fields are JSON strings in the engine's encoding
    block["max_bytes"] = str(BLOCK_MAX_BYTES)
    block["max_gas"] = str(BLOCK_MAX_GAS_DISABLED)
    block.setdefault("time_iota_ms", str(BLOCK_TIME_IOTA_MS_DEFAULT))
    consensus_params["block"] = block
    return genesis


def write_genesis(home_dir: PathLike, chain_id: str, genesis_time: datetime) -> Path:
    """Patch <home>/config/genesis.json in place.

    Raises:
        GenesisError: The file cannot be read, decoded, converted or rewritten
    """
    path = genesis_path(home_dir)
    try:
        with open(path, "r", encoding="utf-8") as f:
            genesis = json.load(f)
    except OSError as exc:
        raise GenesisError(
            f"Couldn't open the genesis file at {path}, error: {exc}",
            details={"path": str(path)},
        ) from exc
    except ValueError as exc:
        raise GenesisError(
            f"Couldn't deserialize the genesis file at {path}, error: {exc}",
            details={"path": str(path)},
        ) from exc
    if not isinstance(genesis, dict):
        raise GenesisError(
            f"Couldn't deserialize the genesis file at {path}, error: not a JSON object",
            details={"path": str(path)},
        )

    patch_genesis_document(genesis, chain_id, genesis_time)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(genesis, f, indent=2)
    except OSError as exc:
        raise GenesisError(
            f"Couldn't write the CometBFT genesis file at {path}, error: {exc}",
            details={"path": str(path)},
        ) from exc

    logger.info(
        "Patched CometBFT genesis",
        extra={"event": "genesis.patched", "path": str(path), "chain_id": chain_id},
    )
    return path
