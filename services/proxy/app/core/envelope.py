from __future__ import annotations
from typing import Any

from .outcome import (
    DispatchError,
    Endpoint,
    InvalidInput,
    RequestOutcome,
    SimulatedFailure,
    UpstreamSuccess,
)

SUCCESS_MESSAGES = {
    Endpoint.PROXY: "Request forwarded",
    Endpoint.FAILURE: "Request forwarded",
    Endpoint.WEBHOOK: "Webhook received",
}


def build_envelope(outcome: RequestOutcome, endpoint: Endpoint) -> tuple[int, Any]:
    """
    Map a request outcome to (HTTP status, JSON body). Pure projection.
    """
    if isinstance(outcome, SimulatedFailure):
        body = {"error": "Simulated failure"}
        if outcome.target_url is not None:
            body["target_url"] = outcome.target_url
        body["failure_rate"] = outcome.failure_rate
        body["status_code"] = outcome.status_code
        body["request_body"] = outcome.request_body
        return outcome.status_code, body

    if isinstance(outcome, DispatchError):
        return 500, {
            "error": outcome.kind,
            "details": outcome.message,
            "target_url": outcome.target_url,
            "request_body": outcome.request_body,
        }

    if isinstance(outcome, InvalidInput):
        body = {"error": outcome.kind, "details": outcome.message}
        if outcome.target_url is not None:
            body["target_url"] = outcome.target_url
        if outcome.request_body is not None:
            body["request_body"] = outcome.request_body
        return 400, body

    if isinstance(outcome, UpstreamSuccess):
        if outcome.return_original:
            return outcome.status, outcome.body

        body = {"status": "success"}
        if endpoint == Endpoint.DELAY:
            delay = outcome.applied_delay
            body["applied_delays"] = {
                "constant_delay_ms": delay.constant_delay_ms if delay else 0,
                "random_delay_ms": delay.random_delay_ms if delay else 0,
            }
        else:
            body["message"] = SUCCESS_MESSAGES[endpoint]
        if endpoint != Endpoint.WEBHOOK:
            body["target_url"] = outcome.target_url
            body["response"] = outcome.body
        return 200, body

    raise TypeError(f"unknown outcome: {outcome!r}")
