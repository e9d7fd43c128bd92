"""
Ledger Node CometBFT Configuration

Values the ledger mandates for the engine, plus the process-wide settings
that locate the engine binary and control its output.

The environment is read once into an EngineSettings value which is then
passed explicitly to the supervisor and the administrative operations.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from ledger_node.core.cometbft_exceptions import EnginePathError

logger = logging.getLogger(__name__)


# Environment variables
ENV_VAR_COMETBFT = "COMETBFT"
ENV_VAR_CMT_STDOUT = "LEDGER_CMT_STDOUT"
ENV_VAR_LOG_LEVEL = "LEDGER_LOG_LEVEL"

DEFAULT_COMETBFT_BINARY = "cometbft"

# Files under the engine home directory
CONFIG_DIR = "config"
DATA_DIR = "data"
CONFIG_FILE = "config.toml"
GENESIS_FILE = "genesis.json"
PRIV_VALIDATOR_KEY_FILE = "priv_validator_key.json"
PRIV_VALIDATOR_STATE_FILE = "priv_validator_state.json"

MIB = 1024 * 1024

# Mempool limits
# https://forum.cosmos.network/t/our-understanding-of-the-cosmos-hub-mempool-issues/12040
MEMPOOL_KEEP_INVALID_TXS_IN_CACHE = False
MEMPOOL_MAX_TX_BYTES = 1 * MIB
# Reference proposal size used to size the mempool
MAX_PROPOSAL_BYTES = 6 * MIB
MEMPOOL_MAX_TXS_BYTES = 50 * MAX_PROPOSAL_BYTES
MEMPOOL_SIZE = 4000

# Raised from the engine default of 1_000_000, some WASM payloads are large
RPC_MAX_BODY_BYTES = 2_000_000

# 6 MiB of txs + 10 MiB for evidence, headers and protobuf overhead
BLOCK_MAX_BYTES = 16 * MIB
# Gas is metered by the ledger, so it is disabled at the engine level
BLOCK_MAX_GAS_DISABLED = -1
# Engine default, kept if init already wrote one
BLOCK_TIME_IOTA_MS_DEFAULT = 1000

# Chain id limits enforced by the engine, in bytes
MAX_CHAIN_ID_LENGTH = 50


class EngineMode(Enum):
    VALIDATOR = "validator"
    FULL = "full"
    SEED = "seed"


@dataclass(frozen=True)
class EngineSettings:
    """Where the engine binary lives and whether its stdout is shown."""

    binary: str = DEFAULT_COMETBFT_BINARY
    log_stdout: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """Build settings from environment variables.

        Raises:
            EnginePathError: If COMETBFT is set but is not valid text
        """
        env = os.environ if environ is None else environ
        return cls(
            binary=resolve_cometbft_binary(env),
            log_stdout=parse_stdout_toggle(env.get(ENV_VAR_CMT_STDOUT)),
        )


def resolve_cometbft_binary(environ: Mapping[str, str]) -> str:
    """Use COMETBFT as the engine location if set, otherwise assume it is on PATH."""
    path = environ.get(ENV_VAR_COMETBFT)
    if path is None:
        return DEFAULT_COMETBFT_BINARY
    try:
        # Undecodable bytes from the OS surface as lone surrogates
        path.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EnginePathError(
            f"Failed to convert {ENV_VAR_COMETBFT} to a string: {path!r}",
            details={"env_var": ENV_VAR_COMETBFT},
        ) from exc
    logger.info(
        "Using CometBFT path from env variable: %s",
        path,
        extra={"event": "config.cometbft_path", "path": path},
    )
    return path


def parse_stdout_toggle(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() == "true"


@dataclass
class LedgerConfig:
    """Ledger-level settings for the engine.

    `cometbft` holds operator overrides for config.toml as nested tables.
    They are applied before the ledger-mandated values, which always win.
    """

    mode: EngineMode = EngineMode.VALIDATOR
    cometbft: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "EngineMode",
    "EngineSettings",
    "LedgerConfig",
    "resolve_cometbft_binary",
    "parse_stdout_toggle",
]
