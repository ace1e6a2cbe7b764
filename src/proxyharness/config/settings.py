from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    proxy_http: str
    timeout_s: float


def get_settings() -> Settings:
    """
    Where the proxy client should point and how long it waits per call.
    PROXY_HTTP defaults to the local docker-compose port.
    """
    return Settings(
        proxy_http=os.getenv("PROXY_HTTP", "http://127.0.0.1:3000"),
        timeout_s=float(os.getenv("PROXY_CLIENT_TIMEOUT_S", "30")),
    )
