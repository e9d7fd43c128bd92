"""
Administrative operations on a stopped CometBFT engine.

Both run the engine binary synchronously, once, with no retries. They must
not be used against a home directory a supervisor is currently running.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Union

from ledger_node.core.config import CONFIG_DIR, EngineSettings
from ledger_node.core.cometbft_exceptions import ResetError, RollBackError
from ledger_node.core.rollback import parse_rollback_height

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def reset(home_dir: PathLike, settings: Optional[EngineSettings] = None) -> None:
    """Reset all engine state and remove its config directory.

    Raises:
        ResetError: The reset command failed or the config dir can't be removed
    """
    settings = settings or EngineSettings.from_env()
    home = Path(home_dir)
    args = [settings.binary, "reset-state", "unsafe-all", "--home", str(home)]
    try:
        result = subprocess.run(args, capture_output=True, check=False)
    except OSError as exc:
        raise ResetError(
            f"Failed to reset CometBFT node's data: {exc}",
            details={"home": str(home)},
        ) from exc
    if result.returncode != 0:
        raise ResetError(
            f"Failed to reset CometBFT node's data: exit status: {result.returncode}",
            details={"home": str(home), "stderr": result.stderr.decode("utf-8", "replace")},
        )

    config_dir = home / CONFIG_DIR
    try:
        shutil.rmtree(config_dir)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise ResetError(
            f"Failed to reset CometBFT node's config: {exc}",
            details={"path": str(config_dir)},
        ) from exc

    logger.info("CometBFT state reset", extra={"event": "admin.reset", "home": str(home)})


def rollback(home_dir: PathLike, settings: Optional[EngineSettings] = None) -> int:
    """Roll the engine state back one height and return the new height.

    Raises:
        RollBackError: The command could not run or its output is not understood
    """
    settings = settings or EngineSettings.from_env()
    home = Path(home_dir)
    # https://github.com/cometbft/cometbft/blob/main/cmd/cometbft/commands/rollback.go
    args = [settings.binary, "rollback", "unsafe-all", "--home", str(home)]
    try:
        result = subprocess.run(args, capture_output=True, check=False)
    except OSError as exc:
        raise RollBackError(
            f"Failed to rollback CometBFT state: {exc}",
            stage=RollBackError.SPAWN,
            details={"home": str(home)},
        ) from exc

    try:
        output = result.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise RollBackError(
            f"Failed to rollback CometBFT state: {exc}",
            stage=RollBackError.DECODE,
        ) from exc

    height = parse_rollback_height(output)
    logger.info(
        "CometBFT state rolled back to height %d",
        height,
        extra={"event": "admin.rollback", "home": str(home), "height": height},
    )
    return height
