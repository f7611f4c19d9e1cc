import logging
import os
import tomllib
from dataclasses import dataclass, field

from .errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.environ.get("LOCTRANSLATE_CONFIG", "pyproject.toml")
DEFAULT_URL = "http://localhost:14366/"
DEFAULT_TIMEOUT = 60.0
DEFAULT_LINE_DELAY = 0.1
DEFAULT_THROTTLE_EVERY = 10
DEFAULT_THROTTLE_DELAY = 0.1
DEFAULT_TRACKING_FILE = ".loctranslate_progress.json"
DEFAULT_CACHE_PATH = ".loctranslate_cache.sqlite3"
DEFAULT_MODEL = "staka/fugumt-ja-en"

BACKENDS = ("sugoi", "pipeline")
SOURCES = ("value", "key")
TRUE_WORDS = {"1", "true", "yes", "on"}
FALSE_WORDS = {"0", "false", "no", "off"}


@dataclass
class Settings:
    backend: str = "sugoi"
    urls: list[str] = field(default_factory=lambda: [DEFAULT_URL])
    timeout: float = DEFAULT_TIMEOUT
    line_delay: float = DEFAULT_LINE_DELAY
    throttle_every: int = DEFAULT_THROTTLE_EVERY
    throttle_delay: float = DEFAULT_THROTTLE_DELAY
    source: str = "value"
    include: str = "*.json"
    name_contains: str = ""
    tracking_file: str = DEFAULT_TRACKING_FILE
    model: str = DEFAULT_MODEL
    device: str = "cpu"
    cache_enabled: bool = False
    cache_path: str = DEFAULT_CACHE_PATH

    def validate(self) -> "Settings":
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend: {self.backend!r} (expected one of {BACKENDS})")
        if self.source not in SOURCES:
            raise ConfigError(f"Unknown source: {self.source!r} (expected one of {SOURCES})")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.backend == "sugoi" and not self.urls:
            raise ConfigError("At least one translation server URL is required")
        if self.line_delay < 0 or self.throttle_delay < 0:
            raise ConfigError("Delays must not be negative")
        return self


# Setting name -> value type. The [cache] sub-table maps onto cache_*.
SETTING_TYPES = {
    "backend": str,
    "urls": list,
    "timeout": float,
    "line_delay": float,
    "throttle_every": int,
    "throttle_delay": float,
    "source": str,
    "include": str,
    "name_contains": str,
    "tracking_file": str,
    "model": str,
    "device": str,
    "cache_enabled": bool,
    "cache_path": str,
}
CACHE_TABLE_KEYS = {"enabled": "cache_enabled", "path": "cache_path"}


def read_config_table(path: str) -> dict:
    """Return the [tool.loctranslate] table of a TOML file, {} when absent."""
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "rb") as f:
            document = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    LOGGER.debug("Loaded config: %s", path)
    return document.get("tool", {}).get("loctranslate", {})


def flatten_table(table: dict) -> dict:
    values = {}
    for key, value in table.items():
        if key == "cache" and isinstance(value, dict):
            for cache_key, cache_value in value.items():
                if cache_key not in CACHE_TABLE_KEYS:
                    raise ConfigError(f"Unknown setting: cache.{cache_key}")
                values[CACHE_TABLE_KEYS[cache_key]] = cache_value
        elif key in SETTING_TYPES:
            values[key] = value
        else:
            raise ConfigError(f"Unknown setting: {key}")
    return values


def coerce_setting(name: str, value):
    """Convert a TOML or command-line value to the type of setting ``name``.

    Numbers may be given as strings, booleans as yes/no words, and a single
    URL may stand in for a list of them.
    """
    expected = SETTING_TYPES.get(name)
    if expected is None:
        raise ConfigError(f"Unknown setting: {name}")
    if expected is bool:
        if isinstance(value, bool):
            return value
        word = str(value).strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    elif expected is list:
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
    elif expected is str:
        if isinstance(value, str):
            return value
    elif not isinstance(value, bool):
        try:
            return expected(value)
        except (TypeError, ValueError):
            pass
    raise ConfigError(f"Invalid value for {name}: {value!r}")


def load_settings(path: str | None = DEFAULT_CONFIG_PATH, overrides: dict | None = None) -> Settings:
    """Build settings from the [tool.loctranslate] table, then apply overrides.

    Overrides with a value of None are ignored so argparse defaults can be
    passed straight through.
    """
    values = flatten_table(read_config_table(path or ""))
    values.update({key: value for key, value in (overrides or {}).items() if value is not None})
    settings = Settings(**{name: coerce_setting(name, value) for name, value in values.items()})
    return settings.validate()
