import json
from datetime import datetime, timedelta, timezone

import pytest

from ledger_node.core.cometbft_exceptions import GenesisError
from ledger_node.core.genesis import (
    from_engine_time,
    parse_chain_id,
    to_engine_time,
    write_genesis,
)

GENESIS_TIME = datetime(2024, 5, 1, 12, 30, 15, 250000, tzinfo=timezone.utc)


def _read(home):
    return json.loads((home / "config" / "genesis.json").read_text())


class TestWriteGenesis:
    def test_chain_id_time_and_block_params(self, cometbft_home):
        write_genesis(cometbft_home, "ledger-mainnet.a1b2c3", GENESIS_TIME)
        genesis = _read(cometbft_home)

        assert genesis["chain_id"] == "ledger-mainnet.a1b2c3"
        assert genesis["genesis_time"] == "2024-05-01T12:30:15.25Z"
        block = genesis["consensus_params"]["block"]
        assert int(block["max_bytes"]) == 16 * 1024 * 1024
        assert int(block["max_gas"]) == -1

    def test_other_fields_left_as_generated(self, cometbft_home, sample_genesis):
        write_genesis(cometbft_home, "ledger-test", GENESIS_TIME)
        genesis = _read(cometbft_home)

        assert genesis["consensus_params"]["block"]["time_iota_ms"] == "1000"
        assert genesis["consensus_params"]["evidence"] == sample_genesis["consensus_params"]["evidence"]
        assert genesis["initial_height"] == "1"
        assert "app_state" not in genesis

    def test_missing_block_params_are_created(self, cometbft_home, sample_genesis):
        del sample_genesis["consensus_params"]
        (cometbft_home / "config" / "genesis.json").write_text(json.dumps(sample_genesis))
        write_genesis(cometbft_home, "ledger-test", GENESIS_TIME)
        assert _read(cometbft_home)["consensus_params"]["block"] == {
            "max_bytes": "16777216",
            "max_gas": "-1",
            "time_iota_ms": "1000",
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(GenesisError):
            write_genesis(tmp_path, "ledger-test", GENESIS_TIME)

    def test_malformed_file(self, cometbft_home):
        (cometbft_home / "config" / "genesis.json").write_text("{not json")
        with pytest.raises(GenesisError):
            write_genesis(cometbft_home, "ledger-test", GENESIS_TIME)

    def test_invalid_chain_id_leaves_file_untouched(self, cometbft_home):
        before = (cometbft_home / "config" / "genesis.json").read_text()
        with pytest.raises(GenesisError):
            write_genesis(cometbft_home, "", GENESIS_TIME)
        assert (cometbft_home / "config" / "genesis.json").read_text() == before


class TestChainId:
    def test_valid(self):
        assert parse_chain_id("ledger-mainnet.a1b2c3") == "ledger-mainnet.a1b2c3"

    @pytest.mark.parametrize("chain_id", ["", "x" * 51, "has space", "tab\tbed"])
    def test_invalid(self, chain_id):
        with pytest.raises(GenesisError):
            parse_chain_id(chain_id)

    def test_fifty_characters_allowed(self):
        assert parse_chain_id("c" * 50) == "c" * 50

    def test_length_counts_utf8_bytes(self):
        assert parse_chain_id("\u00e9" * 25) == "\u00e9" * 25
        with pytest.raises(GenesisError):
            parse_chain_id("\u00e9" * 26)


class TestEngineTime:
    def test_whole_seconds_omit_fraction(self):
        assert to_engine_time(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "2024-01-01T00:00:00Z"

    def test_microseconds_rendered_as_trimmed_nanos(self):
        dt = datetime(2024, 1, 1, 0, 0, 0, 123450, tzinfo=timezone.utc)
        assert to_engine_time(dt) == "2024-01-01T00:00:00.12345Z"

    def test_offset_converted_to_utc(self):
        dt = datetime(2024, 1, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_engine_time(dt) == "2024-01-01T00:00:00Z"

    def test_naive_datetime_rejected(self):
        with pytest.raises(GenesisError):
            to_engine_time(datetime(2024, 1, 1))

    def test_early_years_zero_padded(self):
        assert to_engine_time(datetime(1, 1, 1, tzinfo=timezone.utc)) == "0001-01-01T00:00:00Z"

    def test_parse_engine_nanoseconds(self):
        parsed = from_engine_time("2024-01-01T00:00:00.123456789Z")
        assert parsed == datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)

    @pytest.mark.parametrize("text", ["2024-01-01", "2024-01-01T00:00:00+02:00", "2024-01-01T00:00:00.Z"])
    def test_parse_rejects_non_engine_forms(self, text):
        with pytest.raises(GenesisError):
            from_engine_time(text)
