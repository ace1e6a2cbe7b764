from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .delay import AppliedDelay


class Endpoint(str, Enum):
    PROXY = "proxy"
    DELAY = "delay"
    FAILURE = "failure"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class SimulatedFailure:
    target_url: Optional[str]
    failure_rate: float
    request_body: Any
    status_code: int = 500


@dataclass(frozen=True)
class DispatchError:
    kind: str
    message: str
    target_url: str
    request_body: Any


@dataclass(frozen=True)
class InvalidInput:
    kind: str
    message: str
    target_url: Optional[str] = None
    request_body: Any = None


@dataclass(frozen=True)
class UpstreamSuccess:
    status: int
    body: Any
    target_url: Optional[str]
    applied_delay: Optional[AppliedDelay] = None
    return_original: bool = False


RequestOutcome = Union[SimulatedFailure, DispatchError, InvalidInput, UpstreamSuccess]
