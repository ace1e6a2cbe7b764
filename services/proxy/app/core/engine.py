from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .config import (
    InvalidInputError,
    ProcessConfig,
    resolve_for_delay,
    resolve_for_failure,
    resolve_for_proxy,
    resolve_for_webhook,
)
from .delay import DelayInjector
from .dispatch import UpstreamDispatcher
from .faults import FailureGate
from .outcome import (
    Endpoint,
    InvalidInput,
    RequestOutcome,
    SimulatedFailure,
    UpstreamSuccess,
)

log = logging.getLogger(__name__)


def parse_json_body(content_type: Optional[str], raw_body: bytes) -> Any:
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type != "application/json" and not media_type.endswith("+json"):
        raise InvalidInputError(
            "Unsupported content type", f"Content-Type must be application/json, got {content_type!r}"
        )
    try:
        return json.loads(raw_body)
    except ValueError as e:
        raise InvalidInputError("Invalid request body", f"request body is not valid JSON: {e}") from None


@dataclass
class ForwardingEngine:
    """
    Runs one request through resolve -> delay -> gate -> dispatch and returns
    the single outcome the envelope builder turns into a response. Holds no
    per-request state; the process config is read-only.
    """

    process: ProcessConfig
    dispatcher: UpstreamDispatcher
    gate: FailureGate = field(default_factory=FailureGate)
    delay: DelayInjector = field(default_factory=DelayInjector)

    async def handle(
        self,
        endpoint: Endpoint,
        headers: Mapping[str, str],
        content_type: Optional[str],
        raw_body: bytes,
    ) -> RequestOutcome:
        try:
            request_body = parse_json_body(content_type, raw_body)
        except InvalidInputError as e:
            log.info("rejecting /%s request: %s", endpoint.value, e)
            return InvalidInput(e.kind, e.details)

        try:
            if endpoint == Endpoint.DELAY:
                cfg = resolve_for_delay(headers, self.process)
            elif endpoint == Endpoint.FAILURE:
                cfg = resolve_for_failure(headers, self.process)
            elif endpoint == Endpoint.WEBHOOK:
                cfg = resolve_for_webhook(self.process)
            else:
                cfg = resolve_for_proxy(headers, self.process)
        except InvalidInputError as e:
            log.info("rejecting /%s request: %s", endpoint.value, e)
            return InvalidInput(e.kind, e.details, request_body=request_body)

        applied = None
        if endpoint == Endpoint.DELAY:
            applied = await self.delay.apply(cfg.constant_delay_ms, cfg.max_random_delay_ms)
            log.debug("applied delay constant=%sms random=%sms", applied.constant_delay_ms, applied.random_delay_ms)
        elif self.gate.should_fail(cfg.failure_rate):
            target = None if endpoint == Endpoint.WEBHOOK else cfg.target_url
            log.info("simulated failure on /%s rate=%.3f status=%s", endpoint.value, cfg.failure_rate, cfg.failure_status)
            return SimulatedFailure(target, cfg.failure_rate, request_body, cfg.failure_status)

        if endpoint == Endpoint.WEBHOOK:
            return UpstreamSuccess(status=200, body=None, target_url=None)

        result = await self.dispatcher.dispatch(cfg.target_url, raw_body, request_body)
        if isinstance(result, UpstreamSuccess):
            return UpstreamSuccess(
                status=result.status,
                body=result.body,
                target_url=result.target_url,
                applied_delay=applied,
                return_original=cfg.return_original,
            )
        return result
