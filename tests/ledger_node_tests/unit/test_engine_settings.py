import pytest

from ledger_node.core.cometbft_exceptions import EnginePathError
from ledger_node.core.config import (
    DEFAULT_COMETBFT_BINARY,
    ENV_VAR_CMT_STDOUT,
    ENV_VAR_COMETBFT,
    EngineMode,
    EngineSettings,
    LedgerConfig,
    parse_stdout_toggle,
)


def test_defaults_when_env_empty():
    settings = EngineSettings.from_env({})
    assert settings.binary == DEFAULT_COMETBFT_BINARY
    assert settings.log_stdout is False


def test_binary_from_env():
    settings = EngineSettings.from_env({ENV_VAR_COMETBFT: "/opt/cometbft/bin/cometbft"})
    assert settings.binary == "/opt/cometbft/bin/cometbft"


def test_binary_env_not_valid_text():
    # how the OS surfaces an undecodable byte in an environment value
    with pytest.raises(EnginePathError):
        EngineSettings.from_env({ENV_VAR_COMETBFT: "/opt/\udcffcometbft"})


@pytest.mark.parametrize("value, expected", [
    ("true", True),
    ("TRUE", True),
    (" True \n", True),
    ("1", False),
    ("yes", False),
    ("", False),
    (None, False),
])
def test_stdout_toggle(value, expected):
    assert parse_stdout_toggle(value) is expected


def test_stdout_toggle_from_env():
    assert EngineSettings.from_env({ENV_VAR_CMT_STDOUT: "True"}).log_stdout is True


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv(ENV_VAR_COMETBFT, "cometbft-v0.37")
    monkeypatch.delenv(ENV_VAR_CMT_STDOUT, raising=False)
    assert EngineSettings.from_env() == EngineSettings(binary="cometbft-v0.37", log_stdout=False)


def test_ledger_config_defaults():
    config = LedgerConfig()
    assert config.mode is EngineMode.VALIDATOR
    assert config.cometbft == {}
