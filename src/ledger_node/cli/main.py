#!/usr/bin/env python3
"""
Ledger Node CLI - CometBFT engine supervision and recovery

Commands:
- run: initialize, patch and supervise a CometBFT node
- reset / rollback: administrative recovery of a stopped node
- init-validator / node-id: validator key provisioning helpers
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from ledger_node import __version__
from ledger_node.core import admin, supervisor
from ledger_node.core.cometbft_exceptions import CometBFTError, get_error_context
from ledger_node.core.config import ENV_VAR_LOG_LEVEL, EngineMode, EngineSettings, LedgerConfig
from ledger_node.core.crypto_utils import KeyScheme, PublicKey, SecretKey
from ledger_node.core.logging_config import setup_logging
from ledger_node.core.node_identity import id_from_pk
from ledger_node.core.validator_keys import write_validator_key, write_validator_state

logger = logging.getLogger(__name__)

console = Console()

SCHEMES = {scheme.name.lower(): scheme for scheme in KeyScheme}


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, extra={"event": "cli.error", **get_error_context(exc)})
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _parse_genesis_time(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise click.BadParameter(f"not an RFC 3339 timestamp: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _load_overrides(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            overrides = json.load(f)
    except ValueError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--cometbft-overrides") from exc
    if not isinstance(overrides, dict):
        raise click.BadParameter(
            f"expected a JSON object, got {type(overrides).__name__}",
            param_hint="--cometbft-overrides",
        )
    return overrides


def _echo_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2))


@click.group()
@click.version_option(__version__, prog_name="ledger-node")
@click.option(
    "--log-level",
    default=lambda: os.getenv(ENV_VAR_LOG_LEVEL, "INFO"),
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Log level (env: LEDGER_LOG_LEVEL)",
)
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also write JSON logs here")
@click.option("--json-output", is_flag=True, help="Output machine-readable JSON")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_file: Optional[str], json_output: bool):
    """Supervise and administer the CometBFT engine under the ledger."""
    setup_logging(name="ledger_node", log_file=log_file, level=log_level)
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json_output


def _settings() -> EngineSettings:
    try:
        return EngineSettings.from_env()
    except CometBFTError as exc:
        _cli_fail(exc)


async def _run_until_signalled(home: str, chain_id: str, genesis_time: datetime, proxy_app: str,
                               ledger_config: LedgerConfig, settings: EngineSettings) -> None:
    abort_send, abort_recv = supervisor.abort_channel()
    loop = asyncio.get_running_loop()

    def _request_shutdown() -> None:
        try:
            abort_send.abort()
        except RuntimeError:
            logger.debug("Shutdown already requested", extra={"event": "cli.shutdown_repeated"})

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _request_shutdown)
    try:
        await supervisor.run(home, chain_id, genesis_time, proxy_app, ledger_config, abort_recv, settings)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)


@cli.command("run")
@click.option("--home", "home", required=True, type=click.Path(file_okay=False), help="CometBFT home directory")
@click.option("--chain-id", required=True, help="Chain identifier written into genesis")
@click.option("--genesis-time", required=True, help="Genesis time, RFC 3339 (UTC if no offset)")
@click.option("--proxy-app", default="tcp://127.0.0.1:26658", show_default=True, help="ABCI address of the ledger")
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in EngineMode]),
    default=EngineMode.VALIDATOR.value,
    show_default=True,
)
@click.option(
    "--cometbft-overrides",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file of config.toml overrides",
)
def run_node(home: str, chain_id: str, genesis_time: str, proxy_app: str, mode: str,
             cometbft_overrides: Optional[str]):
    """Initialize, patch and run the CometBFT node."""
    settings = _settings()
    overrides = _load_overrides(cometbft_overrides) if cometbft_overrides else {}
    ledger_config = LedgerConfig(mode=EngineMode(mode), cometbft=overrides)
    try:
        asyncio.run(
            _run_until_signalled(home, chain_id, _parse_genesis_time(genesis_time), proxy_app,
                                 ledger_config, settings)
        )
    except CometBFTError as exc:
        _cli_fail(exc)
    console.print("[green]CometBFT node stopped[/]")


@cli.command("reset")
@click.option("--home", "home", required=True, type=click.Path(file_okay=False))
@click.option("--yes", "assume_yes", is_flag=True, help="Do not ask for confirmation")
def reset_node(home: str, assume_yes: bool):
    """Erase all CometBFT state and config under HOME."""
    if not assume_yes:
        click.confirm(f"Reset all CometBFT state in {home}?", abort=True)
    settings = _settings()
    try:
        admin.reset(home, settings)
    except CometBFTError as exc:
        _cli_fail(exc)
    console.print(f"[green]CometBFT state in {home} reset[/]")


@cli.command("rollback")
@click.option("--home", "home", required=True, type=click.Path(file_okay=False))
@click.pass_context
def rollback_node(ctx: click.Context, home: str):
    """Roll CometBFT state back by one height."""
    settings = _settings()
    try:
        height = admin.rollback(home, settings)
    except CometBFTError as exc:
        _cli_fail(exc)
        return
    if ctx.obj.get("json_output"):
        return _echo_json({"height": height})
    console.print(f"[green]Rolled back CometBFT state to height[/] [cyan]{height}[/]")


@cli.command("init-validator")
@click.option("--home", "home", required=True, type=click.Path(file_okay=False))
@click.option("--scheme", type=click.Choice(sorted(SCHEMES)), default="ed25519", show_default=True)
@click.option(
    "--secret-key-hex",
    envvar="LEDGER_CONSENSUS_KEY",
    default=None,
    help="Consensus secret key (env: LEDGER_CONSENSUS_KEY); generated if omitted",
)
@click.pass_context
def init_validator(ctx: click.Context, home: str, scheme: str, secret_key_hex: Optional[str]):
    """Write priv_validator_key.json and a fresh priv_validator_state.json."""
    key_scheme = SCHEMES[scheme]
    try:
        if secret_key_hex:
            secret_key = SecretKey.from_hex(key_scheme, secret_key_hex)
        else:
            secret_key = SecretKey.generate(key_scheme)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--secret-key-hex") from exc

    try:
        key_path = write_validator_key(home, secret_key)
        state_path = write_validator_state(home)
    except CometBFTError as exc:
        _cli_fail(exc)
        return

    node_id = id_from_pk(secret_key.public_key())
    if ctx.obj.get("json_output"):
        return _echo_json({
            "node_id": str(node_id),
            "address": node_id.to_address(),
            "key_file": str(key_path),
            "state_file": str(state_path),
        })
    table = Table(title="Validator Key", show_header=False, box=box.ROUNDED)
    table.add_row("[cyan]Node ID", str(node_id))
    table.add_row("[cyan]Address", node_id.to_address())
    table.add_row("[cyan]Key file", str(key_path))
    table.add_row("[cyan]State file", str(state_path))
    console.print(table)


@cli.command("node-id")
@click.option("--scheme", type=click.Choice(sorted(SCHEMES)), default="ed25519", show_default=True)
@click.argument("public_key_hex")
@click.pass_context
def node_id(ctx: click.Context, scheme: str, public_key_hex: str):
    """Derive the CometBFT node id of PUBLIC_KEY_HEX."""
    try:
        public_key = PublicKey.from_hex(SCHEMES[scheme], public_key_hex)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="PUBLIC_KEY_HEX") from exc
    derived = id_from_pk(public_key)
    if ctx.obj.get("json_output"):
        return _echo_json({"node_id": str(derived), "address": derived.to_address()})
    console.print(f"[cyan]Node ID:[/] {derived}")
    console.print(f"[cyan]Address:[/] {derived.to_address()}")


def main():
    """Main CLI entry point."""
    return cli(obj={})


if __name__ == "__main__":
    sys.exit(main() or 0)
