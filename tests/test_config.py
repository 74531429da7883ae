"""
Configuration Test Suite

Coverage:
  - whole-token amounts in TOML tables become base units
  - missing files fall back to defaults
  - STAKEPOOL_* environment overrides
  - validation errors
  - load_config resolution through STAKEPOOL_CONFIG
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from stakepool.config import PoolConfig, RegistryConfig, StakePoolConfig, load_config
from stakepool.constants import (
    DEFAULT_MIN_STAKE_AMOUNT,
    DEFAULT_PROTOCOL_FEE_RATE,
    DEFAULT_WITHDRAWAL_DELAY_EPOCHS,
    UNIT,
    from_units,
    to_units,
)
from stakepool.exceptions import ConfigurationError


ENV_VARS = (
    "STAKEPOOL_CONFIG",
    "STAKEPOOL_SUBMIT_THRESHOLD",
    "STAKEPOOL_WITHDRAWAL_DELAY_EPOCHS",
    "STAKEPOOL_PROTOCOL_FEE_RATE",
    "STAKEPOOL_DAO_ADDRESS",
    "STAKEPOOL_INSURANCE_ADDRESS",
    "STAKEPOOL_DEFAULT_COMMISSION_RATE",
    "STAKEPOOL_MIN_STAKE_AMOUNT",
    "STAKEPOOL_ALLOW_RESTAKE",
)

SAMPLE = """
[pool]
submit_threshold = "5000"
delegation_lower_bound = "0.5"
withdrawal_delay_epochs = 3
protocol_fee_rate = 500
dao_address = "0xdao"

[registry]
default_commission_rate = 250
min_stake_amount = "80"
allow_restake = true
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, text=SAMPLE):
    path = tmp_path / "stakepool.toml"
    path.write_text(text)
    return str(path)


class TestUnits:

    def test_whole_tokens(self):
        assert to_units("1") == UNIT
        assert to_units("0.5") == UNIT // 2
        assert to_units(3) == 3 * UNIT

    def test_too_many_decimals(self):
        with pytest.raises(ValueError):
            to_units("0.0000000000000000001")

    def test_from_units(self):
        assert str(from_units(UNIT * 3 // 2)) == "1.5"


class TestFromDict:

    def test_defaults(self):
        config = StakePoolConfig.from_dict({})
        assert config.pool.withdrawal_delay_epochs == DEFAULT_WITHDRAWAL_DELAY_EPOCHS
        assert config.pool.protocol_fee_rate == DEFAULT_PROTOCOL_FEE_RATE
        assert config.registry.min_stake_amount == DEFAULT_MIN_STAKE_AMOUNT
        assert config.registry.allow_unjail is True

    def test_amounts_are_base_units(self):
        pool = PoolConfig.from_dict({"submit_threshold": "5000", "delegation_lower_bound": "0.5"})
        assert pool.submit_threshold == 5000 * UNIT
        assert pool.delegation_lower_bound == UNIT // 2

    def test_bad_amount(self):
        with pytest.raises(ConfigurationError, match="submit_threshold"):
            PoolConfig.from_dict({"submit_threshold": "lots"})

    def test_bad_bool(self):
        with pytest.raises(ConfigurationError):
            RegistryConfig.from_dict({"allow_unjail": "maybe"})

    def test_string_bool(self):
        assert RegistryConfig.from_dict({"allow_restake": "True"}).allow_restake is True


class TestValidate:

    def test_fee_out_of_range(self):
        with pytest.raises(ConfigurationError):
            PoolConfig(protocol_fee_rate=10_001).validate()

    def test_negative_delay(self):
        with pytest.raises(ConfigurationError):
            PoolConfig(withdrawal_delay_epochs=-1).validate()

    def test_empty_dao(self):
        with pytest.raises(ConfigurationError):
            PoolConfig(dao_address="").validate()

    def test_commission_out_of_range(self):
        with pytest.raises(ConfigurationError):
            RegistryConfig(default_commission_rate=20_000).validate()


class TestFromFile:

    def test_load(self, tmp_path):
        config = StakePoolConfig.from_file(write_config(tmp_path))
        assert config.pool.submit_threshold == 5000 * UNIT
        assert config.pool.withdrawal_delay_epochs == 3
        assert config.pool.protocol_fee_rate == 500
        assert config.pool.dao_address == "0xdao"
        assert config.pool.insurance_address == "insurance"
        assert config.registry.default_commission_rate == 250
        assert config.registry.min_stake_amount == 80 * UNIT
        assert config.registry.allow_restake is True

    def test_missing_file_gives_defaults(self, tmp_path):
        config = StakePoolConfig.from_file(str(tmp_path / "absent.toml"))
        assert config == StakePoolConfig()

    def test_malformed_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            StakePoolConfig.from_file(write_config(tmp_path, "[pool\nbroken"))

    def test_invalid_values_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            StakePoolConfig.from_file(write_config(tmp_path, "[pool]\nprotocol_fee_rate = 20000\n"))

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STAKEPOOL_WITHDRAWAL_DELAY_EPOCHS", "9")
        monkeypatch.setenv("STAKEPOOL_SUBMIT_THRESHOLD", "12.5")
        monkeypatch.setenv("STAKEPOOL_ALLOW_RESTAKE", "false")
        monkeypatch.setenv("STAKEPOOL_MIN_STAKE_AMOUNT", "15")
        config = StakePoolConfig.from_file(write_config(tmp_path))
        assert config.pool.withdrawal_delay_epochs == 9
        assert config.pool.submit_threshold == 12 * UNIT + UNIT // 2
        assert config.registry.allow_restake is False
        assert config.registry.min_stake_amount == 15 * UNIT

    def test_to_dict_uses_whole_tokens(self, tmp_path):
        data = StakePoolConfig.from_file(write_config(tmp_path)).to_dict()
        assert data["pool"]["submit_threshold"] == "5000"
        assert data["registry"]["min_stake_amount"] == "80"
        assert data["pool"]["protocol_fee_rate"] == 500


class TestLoadConfig:

    def test_explicit_path(self, tmp_path):
        assert load_config(write_config(tmp_path)).pool.protocol_fee_rate == 500

    def test_env_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STAKEPOOL_CONFIG", write_config(tmp_path))
        assert load_config().registry.default_commission_rate == 250

    def test_default_file_in_cwd(self, tmp_path, monkeypatch):
        write_config(tmp_path)
        monkeypatch.chdir(tmp_path)
        assert load_config().pool.withdrawal_delay_epochs == 3
