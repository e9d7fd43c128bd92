"""
CometBFT process supervisor.

Initializes the engine home, patches genesis.json and config.toml, then runs
`cometbft start` as a child process until it exits or the ledger asks it to
shut down through a one-shot abort channel.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from ledger_node.core.cometbft_config import update_cometbft_config
from ledger_node.core.cometbft_exceptions import (
    EngineRuntimeError,
    InitError,
    StartUpError,
)
from ledger_node.core.config import EngineSettings, LedgerConfig
from ledger_node.core.genesis import write_genesis

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class AbortChannelClosed(RuntimeError):
    """Raised to an abort requester when the supervisor is no longer listening."""


class AbortReceiver:
    """Supervisor side of the abort channel.

    Resolves with a reply future when shutdown is requested, or with None
    when the sender was dropped without being used.
    """

    def __init__(self, request: "asyncio.Future[Optional[asyncio.Future[None]]]"):
        self._request = request
        self.closed = False

    @property
    def request(self) -> "asyncio.Future[Optional[asyncio.Future[None]]]":
        return self._request

    def close(self) -> None:
        """Stop listening; a pending requester is told nobody will reply."""
        self.closed = True
        if self._request.done():
            reply = self._request.result()
            if reply is not None and not reply.done():
                reply.set_exception(AbortChannelClosed("CometBFT supervisor stopped before replying"))


class AbortSender:
    """Requester side of the abort channel. Usable exactly once."""

    def __init__(self, receiver: AbortReceiver):
        self._receiver = receiver
        self._used = False

    def abort(self) -> "asyncio.Future[None]":
        """Request shutdown, returning a future resolved once the engine is killed."""
        if self._used:
            raise RuntimeError("Abort signal already used")
        if self._receiver.closed:
            raise AbortChannelClosed("CometBFT supervisor is not running")
        self._used = True
        reply: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._receiver.request.set_result(reply)
        return reply

    async def request_shutdown(self) -> None:
        await self.abort()

    def close(self) -> None:
        """Drop the sender without using it."""
        if self._used:
            return
        self._used = True
        if not self._receiver.request.done():
            self._receiver.request.set_result(None)


def abort_channel() -> tuple[AbortSender, AbortReceiver]:
    """Create a paired abort sender and receiver on the running loop."""
    request = asyncio.get_running_loop().create_future()
    receiver = AbortReceiver(request)
    return AbortSender(receiver), receiver


def describe_exit_status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


async def init_cometbft(home_dir: Path, settings: EngineSettings, ledger_config: LedgerConfig) -> None:
    """Run `cometbft init <mode> --home <dir>`.

    Raises:
        InitError: The command can't be spawned or exits non-zero
    """
    mode = ledger_config.mode.value
    try:
        process = await asyncio.create_subprocess_exec(
            settings.binary,
            "init",
            mode,
            "--home",
            str(home_dir),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as exc:
        raise InitError(f"Failed to initialize CometBFT: {exc}", details={"home": str(home_dir)}) from exc

    if process.returncode != 0:
        raise InitError(
            f"CometBFT failed to initialize with {describe_exit_status(process.returncode)}",
            details={
                "home": str(home_dir),
                "mode": mode,
                "stdout": stdout.decode("utf-8", "replace"),
                "stderr": stderr.decode("utf-8", "replace"),
            },
        )
    logger.debug("CometBFT initialized", extra={"event": "supervisor.initialized", "mode": mode})


async def _kill(process: asyncio.subprocess.Process) -> None:
    # The child may exit between the race and the kill
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    await process.wait()


async def run(
    home_dir: PathLike,
    chain_id: str,
    genesis_time: datetime,
    proxy_app_address: str,
    ledger_config: LedgerConfig,
    abort_recv: AbortReceiver,
    settings: Optional[EngineSettings] = None,
) -> None:
    """Run the CometBFT node until it exits or an abort is received.

    Raises:
        EnginePathError: COMETBFT is set but not valid text (settings from env)
        InitError, GenesisError, ConfigLoadError, OpenWriteConfigError,
        ConfigSerializeError, WriteConfigError: Start-up preparation failed
        StartUpError: The engine could not be spawned
        EngineRuntimeError: The engine exited unsuccessfully
    """
    try:
        settings = settings or EngineSettings.from_env()
        home = Path(home_dir)

        await init_cometbft(home, settings, ledger_config)

        # Both documents are final before the engine reads them
        write_genesis(home, chain_id, genesis_time)
        update_cometbft_config(home, ledger_config.cometbft)

        process = await _spawn_cometbft(home, proxy_app_address, settings)
        await _supervise(process, abort_recv)
    finally:
        abort_recv.close()


async def _spawn_cometbft(
    home_dir: Path,
    proxy_app_address: str,
    settings: EngineSettings,
) -> asyncio.subprocess.Process:
    try:
        process = await asyncio.create_subprocess_exec(
            settings.binary,
            "start",
            "--proxy_app",
            proxy_app_address,
            "--home",
            str(home_dir),
            stdout=None if settings.log_stdout else subprocess.DEVNULL,
        )
    except OSError as exc:
        raise StartUpError(f"Failed to start up CometBFT node: {exc}", details={"home": str(home_dir)}) from exc
    logger.info("CometBFT node started", extra={"event": "supervisor.started", "pid": process.pid})
    return process


async def _supervise(process: asyncio.subprocess.Process, abort_recv: AbortReceiver) -> None:
    wait_task = asyncio.ensure_future(process.wait())
    try:
        await asyncio.wait({wait_task, abort_recv.request}, return_when=asyncio.FIRST_COMPLETED)

        if abort_recv.request.done():
            reply = abort_recv.request.result()
            if reply is None:
                logger.error(
                    "The CometBFT abort sender has unexpectedly dropped",
                    extra={"event": "supervisor.abort_sender_dropped"},
                )
            logger.info("Shutting down CometBFT node...", extra={"event": "supervisor.shutdown"})
            await _kill(process)
            if reply is not None and not reply.done():
                reply.set_result(None)
            return

        returncode = wait_task.result()
        if returncode != 0:
            status = describe_exit_status(returncode)
            logger.error(
                "CometBFT node exited: %s",
                status,
                extra={"event": "supervisor.exited", "returncode": returncode},
            )
            raise EngineRuntimeError(status, returncode=returncode)
        logger.info("CometBFT node exited", extra={"event": "supervisor.exited", "returncode": 0})
    finally:
        if not wait_task.done():
            wait_task.cancel()
        # No orphaned engine if this task is cancelled or fails
        if process.returncode is None:
            await _kill(process)
