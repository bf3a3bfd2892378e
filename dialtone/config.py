"""
Configuration for dialtone.

ClientConfig and RetryPolicy are immutable snapshots. Out-of-range bounds
are clamped silently at construction rather than rejected.

The loader reads the flat camelCase key map (apiKey, model, ...) from a
dict, a YAML file or a property-list file. String values may reference
environment variables as ${ENV_VAR}; a .env file is picked up on import.
"""

from __future__ import annotations

import dataclasses
import math
import os
import plistlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping
from xml.parsers.expat import ExpatError

import httpx
import yaml
from dotenv import load_dotenv

from dialtone.errors import ConfigNotFound, InvalidConfigFile, InvalidValue, MissingRequiredKey

load_dotenv()

DEFAULT_ENDPOINT = "https://api.openai.com/v1/responses"
DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})

CONFIG_NAME = "dialtone"
CONFIG_SUFFIXES = (".yaml", ".yml", ".plist")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.4
    max_delay: float = 8.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.2
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_attempts", max(1, int(self.max_attempts)))
        object.__setattr__(self, "base_delay", max(0.0, float(self.base_delay)))
        object.__setattr__(self, "max_delay", max(0.0, float(self.max_delay)))
        object.__setattr__(self, "backoff_multiplier", max(1.0, float(self.backoff_multiplier)))
        object.__setattr__(self, "jitter_ratio", min(max(0.0, float(self.jitter_ratio)), 1.0))
        object.__setattr__(
            self, "retryable_status_codes", frozenset(int(c) for c in self.retryable_status_codes)
        )

    @classmethod
    def none(cls) -> "RetryPolicy":
        """Single attempt, never retry."""
        return cls(max_attempts=1)

    @classmethod
    def standard(cls) -> "RetryPolicy":
        return cls()


@dataclass(frozen=True)
class ClientConfig:
    api_key: str
    model: str = DEFAULT_MODEL
    system_prompt: str = ""
    temperature: float = 0.5
    max_context_characters: int = 16_000
    max_history_items: int = 100
    request_timeout: float = 60.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy.standard)
    endpoint: str = DEFAULT_ENDPOINT

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_context_characters", max(1, int(self.max_context_characters)))
        object.__setattr__(self, "max_history_items", max(1, int(self.max_history_items)))
        object.__setattr__(self, "request_timeout", max(1.0, float(self.request_timeout)))

    def with_changes(self, **changes: Any) -> "ClientConfig":
        return dataclasses.replace(self, **changes)

    def masked(self) -> dict:
        """Loader-style key map with the API key hidden, for display."""
        key = self.api_key
        shown = f"{key[:3]}…{key[-4:]}" if len(key) > 10 else "****"
        rp = self.retry_policy
        return {
            "apiKey": shown,
            "model": self.model,
            "systemPrompt": self.system_prompt,
            "temperature": self.temperature,
            "maxContextCharacters": self.max_context_characters,
            "maxHistoryItems": self.max_history_items,
            "requestTimeout": self.request_timeout,
            "endpoint": self.endpoint,
            "retryMaxAttempts": rp.max_attempts,
            "retryBaseDelay": rp.base_delay,
            "retryMaxDelay": rp.max_delay,
            "retryBackoffMultiplier": rp.backoff_multiplier,
            "retryJitterRatio": rp.jitter_ratio,
            "retryableStatusCodes": sorted(rp.retryable_status_codes),
        }


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _string(raw: Mapping, key: str) -> str | None:
    value = raw.get(key)
    if not isinstance(value, str):
        return None
    return _resolve_env_vars(value).strip()


def _required_string(raw: Mapping, key: str) -> str:
    value = _string(raw, key)
    if not value:
        raise MissingRequiredKey(key)
    return value


def _is_number(value: Any) -> bool:
    # .inf and .nan read as absent
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int) and not isinstance(value, bool)


def _int(raw: Mapping, key: str) -> int | None:
    value = raw.get(key)
    return int(value) if _is_number(value) else None


def _float(raw: Mapping, key: str) -> float | None:
    value = raw.get(key)
    return float(value) if _is_number(value) else None


def _int_list(raw: Mapping, key: str) -> list[int] | None:
    value = raw.get(key)
    if not isinstance(value, (list, tuple)) or not all(_is_number(v) for v in value):
        return None
    return [int(v) for v in value]


def _endpoint(raw: Mapping) -> str:
    value = _string(raw, "endpoint")
    if value is None:
        return DEFAULT_ENDPOINT
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        url = None
    if url is None or url.scheme not in ("http", "https") or not url.host or " " in value:
        raise InvalidValue(key="endpoint", expected="a valid URL string")
    return value


def _pick(value, default):
    return default if value is None else value


def config_from_dict(raw: Mapping[str, Any]) -> ClientConfig:
    """Build a ClientConfig from the flat camelCase key map."""
    api_key = _required_string(raw, "apiKey")

    retry_policy = RetryPolicy(
        max_attempts=_pick(_int(raw, "retryMaxAttempts"), 3),
        base_delay=_pick(_float(raw, "retryBaseDelay"), 0.4),
        max_delay=_pick(_float(raw, "retryMaxDelay"), 8.0),
        backoff_multiplier=_pick(_float(raw, "retryBackoffMultiplier"), 2.0),
        jitter_ratio=_pick(_float(raw, "retryJitterRatio"), 0.2),
        retryable_status_codes=_pick(
            _int_list(raw, "retryableStatusCodes"), DEFAULT_RETRYABLE_STATUS_CODES
        ),
    )

    return ClientConfig(
        api_key=api_key,
        model=_pick(_string(raw, "model"), DEFAULT_MODEL),
        system_prompt=_pick(_string(raw, "systemPrompt"), ""),
        temperature=_pick(_float(raw, "temperature"), 0.5),
        max_context_characters=_pick(_int(raw, "maxContextCharacters"), 16_000),
        max_history_items=_pick(_int(raw, "maxHistoryItems"), 100),
        request_timeout=_pick(_float(raw, "requestTimeout"), 60.0),
        retry_policy=retry_policy,
        endpoint=_endpoint(raw),
    )


def _read_mapping(path: Path) -> dict:
    try:
        if path.suffix == ".plist":
            with open(path, "rb") as f:
                raw = plistlib.load(f)
        else:
            with open(path) as f:
                raw = yaml.safe_load(f)
    except (plistlib.InvalidFileException, ExpatError, yaml.YAMLError, ValueError):
        raise InvalidConfigFile(str(path)) from None

    if not isinstance(raw, dict):
        raise InvalidConfigFile(str(path))
    # YAML files may keep the keys under a `client:` block
    nested = raw.get("client")
    if isinstance(nested, dict) and "apiKey" not in raw:
        return nested
    return raw


def load_config(path: str | Path) -> ClientConfig:
    """Load a ClientConfig from a .yaml/.yml or .plist file."""
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigNotFound(str(config_path))
    return config_from_dict(_read_mapping(config_path))


def default_search_dirs() -> list[Path]:
    return [Path.cwd(), Path.home() / ".config" / CONFIG_NAME]


def find_config(
    name: str = CONFIG_NAME,
    search_dirs: Iterable[str | Path] | None = None,
) -> ClientConfig:
    """Load the first <name>.yaml / .yml / .plist found in search_dirs."""
    dirs = default_search_dirs() if search_dirs is None else [Path(d) for d in search_dirs]
    for directory in dirs:
        for suffix in CONFIG_SUFFIXES:
            candidate = Path(directory) / f"{name}{suffix}"
            if candidate.is_file():
                return load_config(candidate)
    raise ConfigNotFound(name)
