from __future__ import annotations
from typing import Any, Optional

import httpx

from proxyharness.config.settings import Settings
from proxyharness.utils.retry import RetryPolicy, with_retries

class ProxyApiClient:
    """
    Thin caller for the flaky proxy. Pass `http` to drive an in-process app
    (e.g. fastapi.testclient.TestClient, which is an httpx.Client).
    """

    def __init__(self, base_url: str = "http://127.0.0.1:3000", timeout_s: float = 30.0, *, http: Optional[httpx.Client] = None):
        self._owned = http is None
        self._client = http if http is not None else httpx.Client(base_url=base_url, timeout=timeout_s)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProxyApiClient":
        return cls(settings.proxy_http, settings.timeout_s)

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    def close(self) -> None:
        if self._owned:
            self._client.close()

    def __enter__(self) -> "ProxyApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def healthcheck(self) -> dict:
        r = self._client.get("/healthcheck")
        r.raise_for_status()
        return r.json()

    def post_once(self, path: str, body: Any, headers: Optional[dict] = None) -> httpx.Response:
        return self._client.post(path, json=body, headers=headers or {})

    def post(self, path: str, body: Any, headers: Optional[dict] = None, *, policy: RetryPolicy | None = None) -> httpx.Response:
        """
        With a policy, error statuses are retried until a 2xx arrives or the
        attempts run out, in which case the last httpx error is raised.
        """
        if policy is None:
            return self.post_once(path, body, headers)

        def attempt() -> httpx.Response:
            r = self.post_once(path, body, headers)
            r.raise_for_status()
            return r

        return with_retries(attempt, policy)

    def proxy(self, body: Any, *, target_url: str | None = None, policy: RetryPolicy | None = None) -> httpx.Response:
        return self.post("/proxy", body, _headers(target_url=target_url), policy=policy)

    def delay(
        self,
        body: Any,
        *,
        constant_delay_ms: int | None = None,
        max_random_delay_ms: int | None = None,
        target_url: str | None = None,
    ) -> httpx.Response:
        headers = _headers(target_url=target_url)
        if constant_delay_ms is not None:
            headers["X-Constant-Delay-Ms"] = str(constant_delay_ms)
        if max_random_delay_ms is not None:
            headers["X-Max-Random-Delay-Ms"] = str(max_random_delay_ms)
        return self.post("/delay", body, headers)

    def failure(
        self,
        body: Any,
        *,
        failure_rate: float | None = None,
        failure_status: int | None = None,
        return_original: bool | None = None,
        target_url: str | None = None,
        policy: RetryPolicy | None = None,
    ) -> httpx.Response:
        headers = _headers(target_url=target_url)
        if failure_rate is not None:
            headers["X-Failure-Rate"] = str(failure_rate)
        if failure_status is not None:
            headers["X-Failure-Status-Code"] = str(failure_status)
        if return_original is not None:
            headers["X-Return-Original"] = "true" if return_original else "false"
        return self.post("/failure", body, headers, policy=policy)

    def webhook(self, body: Any, *, policy: RetryPolicy | None = None) -> httpx.Response:
        return self.post("/webhook", body, policy=policy)


def _headers(*, target_url: str | None) -> dict:
    headers = {}
    if target_url is not None:
        headers["X-Proxy-Url"] = target_url
    return headers
