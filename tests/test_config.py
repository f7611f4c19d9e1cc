import pytest

from loctranslate.config import (
    DEFAULT_URL,
    Settings,
    coerce_setting,
    load_settings,
    read_config_table,
)
from loctranslate.errors import ConfigError

CONFIG = """
[tool.loctranslate]
urls = ["http://localhost:14366/", "http://localhost:14367/"]
timeout = 30
line_delay = "0.5"
throttle_every = "4"
source = "key"
name_contains = "zh_Hans"

[tool.loctranslate.cache]
enabled = "yes"
path = "cache.db"
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "pyproject.toml"
    path.write_text(CONFIG, encoding="utf-8")
    return str(path)


def write_config(tmp_path, body):
    path = tmp_path / "pyproject.toml"
    path.write_text(f"[tool.loctranslate]\n{body}\n", encoding="utf-8")
    return str(path)


def test_defaults_without_file(tmp_path):
    settings = load_settings(str(tmp_path / "missing.toml"))
    assert settings == Settings()
    assert settings.urls == [DEFAULT_URL]


def test_other_tools_ignored(tmp_path):
    path = tmp_path / "pyproject.toml"
    path.write_text('[tool.black]\nline-length = 100\n', encoding="utf-8")
    assert load_settings(str(path)) == Settings()


def test_reads_tool_section(config_path):
    settings = load_settings(config_path)
    assert settings.urls == ["http://localhost:14366/", "http://localhost:14367/"]
    assert settings.timeout == 30.0
    assert settings.line_delay == 0.5
    assert settings.throttle_every == 4
    assert settings.source == "key"
    assert settings.name_contains == "zh_Hans"
    assert settings.cache_enabled is True
    assert settings.cache_path == "cache.db"


def test_overrides_win_and_none_ignored(config_path):
    settings = load_settings(config_path, {"timeout": 5.0, "source": None, "urls": ["http://x:1/"]})
    assert settings.timeout == 5.0
    assert settings.source == "key"
    assert settings.urls == ["http://x:1/"]


def test_unknown_override_rejected(config_path):
    with pytest.raises(ConfigError):
        load_settings(config_path, {"colour": "blue"})


@pytest.mark.parametrize("body", ['colour = "blue"', '[tool.loctranslate.cache]\nsize = 3'])
def test_unknown_table_key_rejected(tmp_path, body):
    with pytest.raises(ConfigError, match="Unknown setting"):
        load_settings(write_config(tmp_path, body))


@pytest.mark.parametrize("body", ['throttle_every = "bad"', "timeout = true", "source = 3", 'urls = 5'])
def test_badly_typed_table_value_rejected(tmp_path, body):
    with pytest.raises(ConfigError, match="Invalid value"):
        load_settings(write_config(tmp_path, body))


@pytest.mark.parametrize(
    "overrides",
    [{"backend": "deepl"}, {"source": "both"}, {"timeout": 0}, {"urls": []}, {"line_delay": -1.0}],
)
def test_invalid_values_rejected(tmp_path, overrides):
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "missing.toml"), overrides)


def test_invalid_toml(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[tool.loctranslate\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        read_config_table(str(path))


@pytest.mark.parametrize(
    "name, value, expected",
    [
        ("throttle_every", "7", 7),
        ("timeout", 3, 3.0),
        ("cache_enabled", "off", False),
        ("cache_enabled", True, True),
        ("urls", "http://one/", ["http://one/"]),
        ("urls", ("http://a/", "http://b/"), ["http://a/", "http://b/"]),
    ],
)
def test_coerce_setting(name, value, expected):
    assert coerce_setting(name, value) == expected


def test_coerce_rejects_unknown_bool_word():
    with pytest.raises(ConfigError):
        coerce_setting("cache_enabled", "maybe")
