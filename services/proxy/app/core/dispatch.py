from __future__ import annotations
import json
import logging
from typing import Any, Union

import httpx

from .outcome import DispatchError, UpstreamSuccess

log = logging.getLogger(__name__)


class UpstreamDispatcher:
    """
    POSTs the caller's raw JSON body to the resolved target and classifies the
    result. Any response the upstream produces, 4xx/5xx included, is relayed
    as UpstreamSuccess; only transport problems become DispatchError.
    """

    def __init__(self, client: httpx.AsyncClient, timeout_s: float = 10.0):
        self._client = client
        self._timeout_s = timeout_s

    async def dispatch(
        self, target_url: str, raw_body: bytes, request_body: Any
    ) -> Union[UpstreamSuccess, DispatchError]:
        try:
            resp = await self._client.post(
                target_url,
                content=raw_body,
                headers={"content-type": "application/json"},
                timeout=self._timeout_s,
            )
        except httpx.TimeoutException as e:
            log.warning("upstream timeout after %.1fs target=%s", self._timeout_s, target_url)
            return DispatchError("Upstream timeout", str(e) or type(e).__name__, target_url, request_body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("failed to forward request target=%s err=%r", target_url, e)
            return DispatchError("Failed to forward request", str(e) or type(e).__name__, target_url, request_body)

        # empty upstream body (e.g. 204) is relayed as null
        if not resp.content.strip():
            return UpstreamSuccess(status=resp.status_code, body=None, target_url=target_url)

        try:
            body = json.loads(resp.content)
        except ValueError as e:
            log.warning("upstream returned non-JSON body target=%s status=%s", target_url, resp.status_code)
            return DispatchError(
                "Invalid upstream response",
                f"upstream returned a non-JSON body (status {resp.status_code}): {e}",
                target_url,
                request_body,
            )

        log.debug("upstream responded target=%s status=%s", target_url, resp.status_code)
        return UpstreamSuccess(status=resp.status_code, body=body, target_url=target_url)
