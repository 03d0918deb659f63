import json

import pytest

from webquery.config import (
    Decompression,
    HttpConfig,
    TransportSettings,
    load_config,
    save_config,
    validate_header,
)
from webquery.errors import ConfigurationError


def test_with_methods_return_new_configs():
    base = HttpConfig()
    changed = base.with_timeout(5).with_user_agent("bot/1.0").with_proxy("http://proxy.test:3128")

    assert base.timeout == 100.0
    assert base.user_agent == ""
    assert base.proxy is None
    assert changed.timeout == 5.0
    assert changed.user_agent == "bot/1.0"
    assert changed.proxy == "http://proxy.test:3128"


def test_headers_set_replace_and_append():
    config = HttpConfig().with_added_header("X-Tag", "a").with_added_header("x-tag", "b")
    assert config.headers.get_all("X-TAG") == ["a", "b"]

    replaced = config.with_header("X-Tag", "c")
    assert replaced.headers.get_all("x-tag") == ["c"]
    assert replaced.without_header("X-Tag").headers.get("X-Tag") is None


@pytest.mark.parametrize(
    "name,value",
    [
        ("Bad Header", "x"),
        ("X-Ok", "line\r\nInjected: yes"),
        ("", "x"),
        ("X-Ok", "nul\x00"),
    ],
)
def test_invalid_headers_are_rejected(name, value):
    with pytest.raises(ConfigurationError):
        validate_header(name, value)
    with pytest.raises(ConfigurationError):
        HttpConfig().with_added_header(name, value)


def test_invalid_timeout_and_decompression():
    with pytest.raises(ConfigurationError):
        HttpConfig(timeout=0)
    with pytest.raises(ConfigurationError):
        HttpConfig().with_decompression("brotli")
    assert HttpConfig().with_decompression("NONE").decompression is Decompression.NONE


def test_credentials_accept_pairs_and_mappings():
    assert HttpConfig().with_credentials(("u", "p")).credentials == ("u", "p")
    assert HttpConfig.from_dict({"credentials": {"username": "u", "password": "p"}}).credentials == ("u", "p")
    with pytest.raises(ConfigurationError):
        HttpConfig().with_credentials(("only-user",))


def test_transport_settings_ignore_user_agent_and_headers():
    base = HttpConfig()
    assert TransportSettings.from_config(base) == TransportSettings.from_config(
        base.with_user_agent("other").with_added_header("X-A", "1")
    )
    assert TransportSettings.from_config(base) != TransportSettings.from_config(base.with_timeout(3))


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigurationError, match="Unknown config keys"):
        HttpConfig.from_dict({"timeout": 3, "retries": 2})


def test_yaml_round_trip(tmp_path):
    config = (
        HttpConfig()
        .with_timeout(12.5)
        .with_user_agent("webquery-test")
        .with_added_header("Accept-Language", "en")
        .with_added_header("Accept-Language", "de")
        .with_decompression(Decompression.NONE)
    )
    path = tmp_path / "nested" / "http.yaml"
    save_config(config, path)

    assert load_config(path) == config


def test_json_config_with_defaults(tmp_path):
    path = tmp_path / "http.json"
    path.write_text(json.dumps({"user_agent": "json-agent", "headers": {"X-Key": ["1", "2"]}}), encoding="utf-8")

    config = load_config(path)
    assert config.user_agent == "json-agent"
    assert config.timeout == 100.0
    assert config.headers.get_all("x-key") == ["1", "2"]


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="Unsupported config suffix"):
        load_config(tmp_path / "http.toml")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Could not parse"):
        load_config(broken)

    listed = tmp_path / "listed.yaml"
    listed.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(listed)
