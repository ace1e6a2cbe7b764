from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

H_PROXY_URL = "x-proxy-url"
H_FAILURE_RATE = "x-failure-rate"
H_FAILURE_STATUS = "x-failure-status-code"
H_RETURN_ORIGINAL = "x-return-original"
H_CONSTANT_DELAY = "x-constant-delay-ms"
H_MAX_RANDOM_DELAY = "x-max-random-delay-ms"

MAX_DELAY_MS = 600_000


class ConfigError(RuntimeError):
    pass


class InvalidInputError(Exception):
    """
    Raised for caller mistakes: a malformed override header, a body that is
    not JSON, or a target URL that is not absolute. Always surfaced as 400.
    """

    def __init__(self, kind: str, details: str):
        super().__init__(f"{kind}: {details}")
        self.kind = kind
        self.details = details


def is_absolute_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        # e.g. an unbalanced IPv6 bracket
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass(frozen=True)
class ProcessConfig:
    target_url: str
    success_probability: float = 0.8
    upstream_timeout_s: float = 10.0

    def __post_init__(self):
        if not is_absolute_url(self.target_url):
            raise ConfigError(f"TARGET_URL must be an absolute http(s) URL, got {self.target_url!r}")
        if not (0.0 <= self.success_probability <= 1.0):
            raise ConfigError("SUCCESS_PROBABILITY must be a float between 0.0 and 1.0")
        if self.upstream_timeout_s <= 0:
            raise ConfigError("UPSTREAM_TIMEOUT_S must be positive")

    @property
    def failure_rate(self) -> float:
        return 1.0 - self.success_probability

    @classmethod
    def from_env(cls) -> "ProcessConfig":
        """
        Read once at startup. A .env file in the working directory is honored.
        """
        load_dotenv()

        target_url = os.getenv("TARGET_URL")
        if not target_url:
            raise ConfigError("TARGET_URL must be set")

        try:
            success_probability = float(os.getenv("SUCCESS_PROBABILITY", "0.8"))
        except ValueError:
            raise ConfigError("SUCCESS_PROBABILITY must be a float between 0.0 and 1.0") from None

        try:
            timeout_s = float(os.getenv("UPSTREAM_TIMEOUT_S", "10.0"))
        except ValueError:
            raise ConfigError("UPSTREAM_TIMEOUT_S must be a number of seconds") from None

        return cls(
            target_url=target_url,
            success_probability=success_probability,
            upstream_timeout_s=timeout_s,
        )


@dataclass(frozen=True)
class EffectiveConfig:
    target_url: str
    failure_rate: float = 0.0
    constant_delay_ms: int = 0
    max_random_delay_ms: int = 0
    failure_status: int = 500
    return_original: bool = False


# --- header parsing -------------------------------------------------------

def _get(headers: Mapping[str, str], name: str) -> Optional[str]:
    # starlette Headers are case-insensitive; plain dicts from tests may not be
    value = headers.get(name)
    if value is None:
        for k, v in headers.items():
            if k.lower() == name:
                return v
    return value


def resolve_target_url(headers: Mapping[str, str], process: ProcessConfig) -> str:
    raw = _get(headers, H_PROXY_URL)
    if raw is None:
        return process.target_url
    raw = raw.strip()
    if not is_absolute_url(raw):
        raise InvalidInputError("Invalid target URL", f"X-Proxy-Url is not an absolute URL: {raw!r}")
    return raw


def resolve_failure_rate(headers: Mapping[str, str], process: ProcessConfig) -> float:
    raw = _get(headers, H_FAILURE_RATE)
    if raw is None:
        return process.failure_rate
    try:
        rate = float(raw)
    except ValueError:
        raise InvalidInputError("Invalid header", f"X-Failure-Rate must be a number, got {raw!r}") from None
    # NaN fails both comparisons
    if not (0.0 <= rate <= 1.0):
        raise InvalidInputError("Invalid header", f"X-Failure-Rate must be between 0.0 and 1.0, got {raw!r}")
    return rate


def _ascii_int(raw: str) -> Optional[int]:
    # str.isdigit also accepts non-ASCII digits such as superscripts
    raw = raw.strip()
    if not raw or len(raw) > 9 or not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


def _parse_delay(headers: Mapping[str, str], name: str, label: str) -> int:
    raw = _get(headers, name)
    if raw is None:
        return 0
    value = _ascii_int(raw)
    if value is None or value > MAX_DELAY_MS:
        raise InvalidInputError(
            "Invalid header", f"{label} must be an integer between 0 and {MAX_DELAY_MS}, got {raw!r}"
        )
    return value


def resolve_delays(headers: Mapping[str, str]) -> tuple[int, int]:
    return (
        _parse_delay(headers, H_CONSTANT_DELAY, "X-Constant-Delay-Ms"),
        _parse_delay(headers, H_MAX_RANDOM_DELAY, "X-Max-Random-Delay-Ms"),
    )


def resolve_failure_status(headers: Mapping[str, str]) -> int:
    raw = _get(headers, H_FAILURE_STATUS)
    if raw is None:
        return 500
    value = _ascii_int(raw)
    if value is None or not (400 <= value <= 599):
        raise InvalidInputError(
            "Invalid header", f"X-Failure-Status-Code must be an HTTP error status (400-599), got {raw!r}"
        )
    return value


def resolve_return_original(headers: Mapping[str, str]) -> bool:
    raw = _get(headers, H_RETURN_ORIGINAL)
    if raw is None:
        return False
    value = raw.strip().lower()
    if value not in ("true", "false"):
        raise InvalidInputError("Invalid header", f"X-Return-Original must be 'true' or 'false', got {raw!r}")
    return value == "true"


# --- per-endpoint resolution ----------------------------------------------

def resolve_for_proxy(headers: Mapping[str, str], process: ProcessConfig) -> EffectiveConfig:
    return EffectiveConfig(
        target_url=resolve_target_url(headers, process),
        failure_rate=process.failure_rate,
    )


def resolve_for_delay(headers: Mapping[str, str], process: ProcessConfig) -> EffectiveConfig:
    constant_ms, max_random_ms = resolve_delays(headers)
    return EffectiveConfig(
        target_url=resolve_target_url(headers, process),
        constant_delay_ms=constant_ms,
        max_random_delay_ms=max_random_ms,
    )


def resolve_for_failure(headers: Mapping[str, str], process: ProcessConfig) -> EffectiveConfig:
    return EffectiveConfig(
        target_url=resolve_target_url(headers, process),
        failure_rate=resolve_failure_rate(headers, process),
        failure_status=resolve_failure_status(headers),
        return_original=resolve_return_original(headers),
    )


def resolve_for_webhook(process: ProcessConfig) -> EffectiveConfig:
    # nothing is forwarded, so no header knobs apply
    return EffectiveConfig(target_url=process.target_url, failure_rate=process.failure_rate)
