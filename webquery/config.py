"""Immutable HTTP configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import ConfigurationError
from .types import HttpHeaders

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_INVALID_VALUE_RE = re.compile(r"[\r\n\x00]")


class Decompression(str, Enum):
    """Which content codings the transport asks for and decodes."""

    AUTO = "auto"
    NONE = "none"


Credentials = tuple[str, str]


def validate_header(name: str, value: str) -> None:
    """Raise `ConfigurationError` for a header that cannot go on the wire."""

    if not isinstance(name, str) or not _TOKEN_RE.match(name):
        raise ConfigurationError(f"Invalid header name: {name!r}")
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid value for header '{name}': {value!r}")
    if _INVALID_VALUE_RE.search(value):
        raise ConfigurationError(f"Invalid value for header '{name}': {value!r}")


def _as_float(value: Any, key: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid float for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigurationError(f"Invalid bool for '{key}': {value!r}")


def _as_credentials(value: Any) -> Credentials | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = (value.get("username"), value.get("password"))
    if isinstance(value, (list, tuple)) and len(value) == 2 and all(isinstance(item, str) for item in value):
        return (value[0], value[1])
    raise ConfigurationError(f"Invalid credentials: expected (username, password), got {value!r}")


def _to_decompression(value: Any) -> Decompression:
    if isinstance(value, Decompression):
        return value
    if isinstance(value, str):
        try:
            return Decompression(value.strip().lower())
        except ValueError as exc:
            raise ConfigurationError(f"Invalid decompression mode: {value!r}") from exc
    raise ConfigurationError(f"Invalid decompression mode: {value!r}")


@dataclass(frozen=True, slots=True)
class HttpConfig:
    """Settings applied to every request of a stage.

    Instances never change; each `with_*` method returns a new config that
    shares the fields it leaves alone.
    """

    timeout: float = DEFAULT_TIMEOUT_SECONDS
    credentials: Credentials | None = None
    proxy: str | None = None
    decompression: Decompression = Decompression.AUTO
    ignore_invalid_server_certificate: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    headers: HttpHeaders = field(default_factory=HttpHeaders)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0")
        if _INVALID_VALUE_RE.search(self.user_agent):
            raise ConfigurationError(f"Invalid user agent: {self.user_agent!r}")
        for name, value in self.headers:
            validate_header(name, value)

    def with_timeout(self, seconds: float) -> "HttpConfig":
        return self if seconds == self.timeout else replace(self, timeout=float(seconds))

    def with_credentials(self, credentials: Credentials | None) -> "HttpConfig":
        return replace(self, credentials=_as_credentials(credentials))

    def with_proxy(self, proxy: str | None) -> "HttpConfig":
        return replace(self, proxy=proxy or None)

    def with_decompression(self, mode: Decompression | str) -> "HttpConfig":
        return replace(self, decompression=_to_decompression(mode))

    def with_ignore_invalid_server_certificate(self, value: bool = True) -> "HttpConfig":
        return replace(self, ignore_invalid_server_certificate=bool(value))

    def with_user_agent(self, user_agent: str) -> "HttpConfig":
        return replace(self, user_agent=user_agent)

    def with_headers(self, headers: HttpHeaders | Mapping[str, Any]) -> "HttpConfig":
        return replace(self, headers=HttpHeaders.of(headers))

    def with_header(self, name: str, *values: str) -> "HttpConfig":
        """Replace all values of header `name`."""

        for value in values:
            validate_header(name, value)
        return replace(self, headers=self.headers.set(name, *values))

    def with_added_header(self, name: str, value: str) -> "HttpConfig":
        validate_header(name, value)
        return replace(self, headers=self.headers.add(name, value))

    def without_header(self, name: str) -> "HttpConfig":
        return replace(self, headers=self.headers.remove(name))

    def to_dict(self) -> dict[str, Any]:
        """Serialize config for files and logs (credentials included)."""

        return {
            "timeout": self.timeout,
            "credentials": None if self.credentials is None else list(self.credentials),
            "proxy": self.proxy,
            "decompression": self.decompression.value,
            "ignore_invalid_server_certificate": self.ignore_invalid_server_certificate,
            "user_agent": self.user_agent,
            "headers": self.headers.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HttpConfig":
        """Build config from a parsed dictionary; missing keys take defaults."""

        unknown = set(payload) - {
            "timeout",
            "credentials",
            "proxy",
            "decompression",
            "ignore_invalid_server_certificate",
            "user_agent",
            "headers",
        }
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")

        timeout = _as_float(payload.get("timeout", DEFAULT_TIMEOUT_SECONDS), "timeout")
        headers = payload.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise ConfigurationError(f"'headers' must be a mapping, got {type(headers).__name__}")

        return cls(
            timeout=DEFAULT_TIMEOUT_SECONDS if timeout is None else timeout,
            credentials=_as_credentials(payload.get("credentials")),
            proxy=None if payload.get("proxy") is None else str(payload["proxy"]),
            decompression=_to_decompression(payload.get("decompression", Decompression.AUTO)),
            ignore_invalid_server_certificate=_as_bool(
                payload.get("ignore_invalid_server_certificate", False),
                "ignore_invalid_server_certificate",
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            headers=HttpHeaders.of(headers),
        )


@dataclass(frozen=True, slots=True)
class TransportSettings:
    """The part of `HttpConfig` that requires a new transport when it changes."""

    timeout: float
    credentials: Credentials | None
    decompression: Decompression
    proxy: str | None
    ignore_invalid_server_certificate: bool

    @classmethod
    def from_config(cls, config: HttpConfig) -> "TransportSettings":
        return cls(
            timeout=config.timeout,
            credentials=config.credentials,
            decompression=config.decompression,
            proxy=config.proxy,
            ignore_invalid_server_certificate=config.ignore_invalid_server_certificate,
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> HttpConfig:
    """Load HttpConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigurationError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    try:
        if suffix == ".json":
            payload = json.loads(config_path.read_text(encoding="utf-8"))
        else:
            payload = _load_yaml(config_path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse config at {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigurationError(f"Config at {config_path} must be a mapping")

    return HttpConfig.from_dict(payload)


def save_config(config: HttpConfig, path: str | Path) -> None:
    """Save HttpConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ConfigurationError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "Credentials",
    "Decompression",
    "HttpConfig",
    "TransportSettings",
    "load_config",
    "save_config",
    "validate_header",
]
