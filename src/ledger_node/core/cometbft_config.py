"""
CometBFT config.toml patching.

The engine's own `init` materializes config.toml; before every start the
ledger reads it, applies operator overrides followed by the values the
ledger requires, and rewrites the whole file. Fields not named here pass
through untouched, comments included.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any, Optional, Union

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.toml_document import TOMLDocument

from ledger_node import __version__
from ledger_node.core.config import (
    CONFIG_DIR,
    CONFIG_FILE,
    MEMPOOL_KEEP_INVALID_TXS_IN_CACHE,
    MEMPOOL_MAX_TX_BYTES,
    MEMPOOL_MAX_TXS_BYTES,
    MEMPOOL_SIZE,
    RPC_MAX_BODY_BYTES,
)
from ledger_node.core.cometbft_exceptions import (
    ConfigLoadError,
    ConfigSerializeError,
    OpenWriteConfigError,
    WriteConfigError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_VERSION_SUFFIX_RE = re.compile(r"-\d+\.\d+\.\d+(?:-[0-9A-Za-z.]+)?(?:\+[0-9A-Za-z.]+)?$")


def config_path(home_dir: PathLike) -> Path:
    return Path(home_dir) / CONFIG_DIR / CONFIG_FILE


def load_config(path: Path) -> TOMLDocument:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(
            f"Failed to load CometBFT config file: {exc}",
            details={"path": str(path)},
        ) from exc
    try:
        return tomlkit.parse(text)
    except TOMLKitError as exc:
        raise ConfigLoadError(
            f"Failed to load CometBFT config file: {exc}",
            details={"path": str(path)},
        ) from exc


def _table(document: MutableMapping[str, Any], name: str) -> MutableMapping[str, Any]:
    if name not in document:
        document[name] = tomlkit.table()
    return document[name]


def _merge(target: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, MutableMapping):
            _merge(current, value)
        else:
            target[key] = value


def with_version_suffix(moniker: str, version: str) -> str:
    # init keeps an existing config.toml, so a restart or upgrade sees the
    # moniker with a previous version already appended
    base = _VERSION_SUFFIX_RE.sub("", moniker)
    return f"{base}-{version}"


def apply_ledger_overrides(
    document: MutableMapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
    version: str = __version__,
) -> MutableMapping[str, Any]:
    """Apply operator overrides, then the values the ledger requires.

    Raises:
        ConfigSerializeError: The overrides are not a table
    """
    if overrides is not None and not isinstance(overrides, Mapping):
        raise ConfigSerializeError(
            f"CometBFT config overrides must be a table, got {type(overrides).__name__}"
        )
    if overrides:
        _merge(document, overrides)

    document["moniker"] = with_version_suffix(str(document.get("moniker", "")), version)

    consensus = _table(document, "consensus")
    consensus["create_empty_blocks"] = True

    mempool = _table(document, "mempool")
    # Invalid txs are never re-applied, so they can't become valid later
    mempool["keep_invalid_txs_in_cache"] = MEMPOOL_KEEP_INVALID_TXS_IN_CACHE
    # Large enough for governance proposals carrying wasm code
    mempool["max_tx_bytes"] = MEMPOOL_MAX_TX_BYTES
    # 50x the max proposal size
    mempool["max_txs_bytes"] = MEMPOOL_MAX_TXS_BYTES
    mempool["size"] = MEMPOOL_SIZE

    rpc = _table(document, "rpc")
    rpc["max_body_bytes"] = RPC_MAX_BODY_BYTES

    return document


def update_cometbft_config(
    home_dir: PathLike,
    overrides: Optional[Mapping[str, Any]] = None,
    version: str = __version__,
) -> Path:
    """Patch <home>/config/config.toml in place.

    Raises:
        ConfigLoadError: The file is missing or not valid TOML
        ConfigSerializeError: The patched document cannot be encoded
        OpenWriteConfigError: The file cannot be opened for writing
        WriteConfigError: Writing the encoded document failed
    """
    path = config_path(home_dir)
    document = load_config(path)

    try:
        apply_ledger_overrides(document, overrides, version)
        config_str = tomlkit.dumps(document)
    except (TOMLKitError, TypeError, ValueError) as exc:
        raise ConfigSerializeError(
            f"Failed to serialize CometBFT config TOML to string: {exc}",
            details={"path": str(path)},
        ) from exc

    try:
        file = open(path, "w", encoding="utf-8")
    except OSError as exc:
        raise OpenWriteConfigError(
            f"Failed to open CometBFT config for writing: {exc}",
            details={"path": str(path)},
        ) from exc
    with file:
        try:
            file.write(config_str)
        except OSError as exc:
            raise WriteConfigError(
                f"Failed to write CometBFT config: {exc}",
                details={"path": str(path)},
            ) from exc

    logger.info(
        "Patched CometBFT config",
        extra={"event": "cometbft_config.patched", "path": str(path), "moniker": str(document["moniker"])},
    )
    return path
