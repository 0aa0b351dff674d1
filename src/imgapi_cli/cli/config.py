"""Configuration file support for the imgapi CLIs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path.home() / ".imgapi_cli" / "config.toml"
CONFIG_PATH_ENV_VAR = "IMGAPI_CLI_CONFIG"


@dataclass(frozen=True)
class CLIConfig:
    url: str | None = None
    user: str | None = None
    identities: tuple[str, ...] = ()
    insecure: bool = False
    progress: bool = True


class ConfigError(ValueError):
    """Raised when CLI config is invalid."""


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path} is not valid TOML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc


def _flag(source: dict[str, Any], key: str, default: bool) -> bool:
    # Quoted strings such as "true" are rejected.
    value = source.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must be a string")
    return value.strip() or None


def _identities(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ConfigError("identity must be a path or a list of paths")
    return tuple(item.strip() for item in value if item.strip())


def config_path(path: str | Path | None = None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.getenv(CONFIG_PATH_ENV_VAR)
    if env_path and env_path.strip():
        return Path(env_path.strip()).expanduser()
    return DEFAULT_CONFIG_PATH


def load_cli_config(path: str | Path | None = None, *, section: str | None = None) -> CLIConfig:
    """Load settings from TOML.

    Keys may sit at the top level or in a table named after the CLI (for
    example ``[updates-imgadm]``); the table wins over top-level keys.
    """
    source_path = config_path(path)
    if not source_path.exists():
        if path:
            raise ConfigError(f"config file not found: {source_path}")
        return CLIConfig()

    parsed = _load_toml(source_path)
    source = {key: value for key, value in parsed.items() if not isinstance(value, dict)}
    if section is not None:
        table = parsed.get(section)
        if isinstance(table, dict):
            source.update(table)
        elif table is not None:
            raise ConfigError(f"[{section}] must be a table")

    url = _optional_str(source.get("url"), "url")
    if url is not None and not url.startswith(("http://", "https://")):
        raise ConfigError("url must start with http:// or https://")

    return CLIConfig(
        url=url,
        user=_optional_str(source.get("user"), "user"),
        identities=_identities(source.get("identity")),
        insecure=_flag(source, "insecure", False),
        progress=_flag(source, "progress", True),
    )
