from pathlib import Path

import pytest

from sui_ptb import config as config_module
from sui_ptb.config import NETWORK_URLS, ConfigurationError, RPCConfig, load_rpc_config


def test_load_rpc_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        rpc:
          url: http://filehost:9000
          timeout: 5
          headers:
            x-api-key: file-key
        """
    )

    env_map = {
        "SUI_RPC_URL": "https://envhost:443",
        "SUI_RPC_TIMEOUT": "12.5",
    }

    config = load_rpc_config(config_path=config_path, env=env_map)

    assert isinstance(config, RPCConfig)
    assert config.url == "https://envhost:443"
    assert config.use_https is True
    assert config.timeout == 12.5
    assert config.headers == {"x-api-key": "file-key"}


def test_load_rpc_config_reads_yaml_when_env_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / ".sui_ptb.yaml"
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", config_path)
    monkeypatch.setattr(config_module, "_CONFIG_PATH_OVERRIDE", None)

    config_path.write_text(
        """
        rpc:
          network: testnet
          timeout: 8
        """
    )

    config = load_rpc_config(env={})

    assert config.url == NETWORK_URLS["testnet"]
    assert config.network == "testnet"
    assert config.timeout == 8.0
    assert config.use_https is True


def test_load_rpc_config_defaults_to_localnet(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    monkeypatch.setattr(config_module, "_CONFIG_PATH_OVERRIDE", None)

    config = load_rpc_config(env={})

    assert config.url == NETWORK_URLS["localnet"]
    assert config.network == "localnet"
    assert config.timeout == 30.0
    assert config.use_https is False


def test_overrides_win_and_url_beats_network(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    monkeypatch.setattr(config_module, "_CONFIG_PATH_OVERRIDE", None)

    from_network = load_rpc_config(env={"SUI_NETWORK": "devnet"}, overrides={"network": "mainnet"})
    from_url = load_rpc_config(
        env={"SUI_NETWORK": "devnet", "SUI_RPC_URL": "https://custom.example:443"},
        overrides={"headers": {"authorization": "Bearer t"}},
    )

    assert from_network.url == NETWORK_URLS["mainnet"]
    assert from_url.url == "https://custom.example:443"
    assert from_url.headers == {"authorization": "Bearer t"}


def test_set_default_config_path_requires_the_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "_CONFIG_PATH_OVERRIDE", None)
    config_module.set_default_config_path(tmp_path / "absent.yaml")

    with pytest.raises(ConfigurationError, match="Config file not found"):
        load_rpc_config(env={})


@pytest.mark.parametrize(
    "env_map",
    [
        {"SUI_NETWORK": "moonnet"},
        {"SUI_RPC_URL": "ftp://node"},
        {"SUI_RPC_TIMEOUT": "soon"},
        {"SUI_RPC_TIMEOUT": "-1"},
    ],
)
def test_load_rpc_config_rejects_invalid_values(tmp_path: Path, env_map) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc: {}\n")

    with pytest.raises(ConfigurationError):
        load_rpc_config(config_path=config_path, env=env_map)


def test_load_rpc_config_rejects_non_mapping_sections(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc:\n  headers: [a, b]\n")

    with pytest.raises(ConfigurationError):
        load_rpc_config(config_path=config_path, env={})

    config_path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        load_rpc_config(config_path=config_path, env={})
