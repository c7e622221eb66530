import dataclasses

import pytest

from session_wallet.config import ENTRYPOINT_V06, SEPOLIA_CHAIN_ID, PipelineConfig


def test_defaults_target_sepolia_entry_point_v06(monkeypatch):
    for name in ("RPC_URL", "BUNDLER_URL", "CHAIN_ID", "ENTRY_POINT_ADDRESS", "VERIFY_USER_OP_HASH"):
        monkeypatch.delenv(name, raising=False)

    config = PipelineConfig.from_env()

    assert config.chain_id == SEPOLIA_CHAIN_ID
    assert config.entry_point_address == ENTRYPOINT_V06
    assert config.verify_user_op_hash is False


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://node:8545")
    monkeypatch.setenv("BUNDLER_URL", "http://bundler:4337")
    monkeypatch.setenv("CHAIN_ID", "31337")
    monkeypatch.setenv("ENTRY_POINT_ADDRESS", ENTRYPOINT_V06.lower())
    monkeypatch.setenv("VERIFY_USER_OP_HASH", "true")

    config = PipelineConfig.from_env()

    assert config.rpc_url == "http://node:8545"
    assert config.bundler_url == "http://bundler:4337"
    assert config.chain_id == 31337
    assert config.entry_point_address == ENTRYPOINT_V06
    assert config.verify_user_op_hash is True


def test_config_is_immutable(config):
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.chain_id = 1


@pytest.mark.parametrize("kwargs", [{"entry_point_address": "0x1234"}, {"chain_id": 0}])
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(**kwargs)
