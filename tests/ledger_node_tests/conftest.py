import json
import stat
import sys
from pathlib import Path

import pytest

from ledger_node.core.config import EngineSettings


SAMPLE_CONFIG_TOML = """\
# This is a TOML config file.
# For more information, see https://github.com/toml-lang/toml

proxy_app = "tcp://127.0.0.1:26658"
moniker = "validator-0"

[rpc]
laddr = "tcp://127.0.0.1:26657"
# Maximum size of request body, in bytes
max_body_bytes = 1000000

[mempool]
size = 5000
max_txs_bytes = 1073741824
max_tx_bytes = 1048576
keep_invalid_txs_in_cache = true

[consensus]
timeout_commit = "1s"
create_empty_blocks = false
"""

SAMPLE_GENESIS = {
    "genesis_time": "2024-01-01T00:00:00.123456789Z",
    "chain_id": "test-chain-K8sQcX",
    "initial_height": "1",
    "consensus_params": {
        "block": {"max_bytes": "22020096", "max_gas": "-1", "time_iota_ms": "1000"},
        "evidence": {"max_age_num_blocks": "100000", "max_age_duration": "172800000000000", "max_bytes": "1048576"},
        "validator": {"pub_key_types": ["ed25519"]},
        "version": {"app": "0"},
    },
    "app_hash": "",
}

FAKE_COMETBFT = """\
#!{python}
import json
import os
import shutil
import sys
import time

args = sys.argv[1:]
home = args[args.index("--home") + 1]
command = args[0]
os.makedirs(home, exist_ok=True)
with open(os.path.join(home, "invocations.log"), "a") as f:
    f.write(" ".join(args) + "\\n")

config_dir = os.path.join(home, "config")
if command == "init":
    code = int(os.environ.get("FAKE_CMT_INIT_EXIT", "0"))
    if code:
        sys.stderr.write("init failed\\n")
        sys.exit(code)
    os.makedirs(config_dir, exist_ok=True)
    config_path = os.path.join(config_dir, "config.toml")
    if not os.path.exists(config_path):
        with open(config_path, "w") as f:
            f.write({config!r})
    genesis_path = os.path.join(config_dir, "genesis.json")
    if not os.path.exists(genesis_path):
        with open(genesis_path, "w") as f:
            f.write({genesis!r})
elif command == "start":
    with open(os.path.join(config_dir, "genesis.json")) as f:
        genesis = json.load(f)
    with open(os.path.join(home, "start_seen.json"), "w") as f:
        json.dump({{"chain_id": genesis["chain_id"], "pid": os.getpid()}}, f)
    print("starting fake cometbft", flush=True)
    code = os.environ.get("FAKE_CMT_START_EXIT")
    if code is not None:
        sys.exit(int(code))
    time.sleep(60)
elif command == "reset-state":
    code = int(os.environ.get("FAKE_CMT_RESET_EXIT", "0"))
    if code:
        sys.exit(code)
    shutil.rmtree(os.path.join(home, "data"), ignore_errors=True)
elif command == "rollback":
    sys.stdout.write(os.environ.get(
        "FAKE_CMT_ROLLBACK_STDOUT",
        "Rolled back state to height 41 and hash 6F1C2E5B9A\\n",
    ))
"""


@pytest.fixture
def sample_config_toml():
    return SAMPLE_CONFIG_TOML


@pytest.fixture
def sample_genesis():
    return json.loads(json.dumps(SAMPLE_GENESIS))


@pytest.fixture
def cometbft_home(tmp_path):
    """A home directory as left behind by `cometbft init`."""
    home = tmp_path / "cometbft"
    config_dir = home / "config"
    config_dir.mkdir(parents=True)
    (config_dir / "config.toml").write_text(SAMPLE_CONFIG_TOML, encoding="utf-8")
    (config_dir / "genesis.json").write_text(json.dumps(SAMPLE_GENESIS, indent=2), encoding="utf-8")
    return home


@pytest.fixture
def fake_cometbft(tmp_path, monkeypatch):
    """Path to an executable script standing in for the cometbft binary."""
    for name in ("FAKE_CMT_INIT_EXIT", "FAKE_CMT_START_EXIT", "FAKE_CMT_RESET_EXIT", "FAKE_CMT_ROLLBACK_STDOUT"):
        monkeypatch.delenv(name, raising=False)
    script = tmp_path / "bin" / "cometbft"
    script.parent.mkdir()
    script.write_text(
        FAKE_COMETBFT.format(
            python=sys.executable,
            config=SAMPLE_CONFIG_TOML,
            genesis=json.dumps(SAMPLE_GENESIS, indent=2),
        ),
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def engine_settings(fake_cometbft):
    return EngineSettings(binary=str(fake_cometbft), log_stdout=False)


def read_invocations(home: Path) -> list[str]:
    log = home / "invocations.log"
    if not log.exists():
        return []
    return log.read_text().splitlines()


@pytest.fixture
def invocations():
    return read_invocations
