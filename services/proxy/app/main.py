import asyncio
import logging
import os
import random
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Awaitable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from services.proxy.app.core.config import ProcessConfig
from services.proxy.app.core.delay import DelayInjector, Sleeper
from services.proxy.app.core.dispatch import UpstreamDispatcher
from services.proxy.app.core.engine import ForwardingEngine
from services.proxy.app.core.envelope import build_envelope
from services.proxy.app.core.faults import FailureGate, RandomSource
from services.proxy.app.core.outcome import Endpoint, RequestOutcome

HTTP_HOST = os.getenv("PROXY_HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("PROXY_HTTP_PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DISCONNECT_POLL_S = 0.05

log = logging.getLogger(__name__)


class HealthOut(BaseModel):
    status: str = "healthy"
    timestamp: str


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    process: Optional[ProcessConfig] = None,
    *,
    rng: Optional[RandomSource] = None,
    sleep: Optional[Sleeper] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the proxy app. Anything not injected is created at startup:
    the process config from the environment, a fresh random.Random, and a
    pooled httpx.AsyncClient that is closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        cfg = process or ProcessConfig.from_env()
        owned_client = None
        http = client
        if http is None:
            http = owned_client = httpx.AsyncClient()

        source = rng or random.Random()
        delay = DelayInjector(rng=source, sleep=sleep or asyncio.sleep)
        app.state.process = cfg
        app.state.engine = ForwardingEngine(
            process=cfg,
            dispatcher=UpstreamDispatcher(http, timeout_s=cfg.upstream_timeout_s),
            gate=FailureGate(rng=source),
            delay=delay,
        )
        log.info(
            "proxy ready target_url=%s success_probability=%.3f timeout=%.1fs",
            cfg.target_url, cfg.success_probability, cfg.upstream_timeout_s,
        )
        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()

    app = FastAPI(title="Flaky HTTP Proxy", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        log.exception("unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal proxy error", "details": "unexpected error while handling the request"})

    @app.get("/healthcheck", response_model=HealthOut)
    def healthcheck():
        return HealthOut(timestamp=datetime.now(timezone.utc).isoformat())

    @app.post("/proxy")
    async def proxy(request: Request):
        return await _serve(request, Endpoint.PROXY)

    @app.post("/delay")
    async def delay(request: Request):
        return await _serve(request, Endpoint.DELAY)

    @app.post("/failure")
    async def failure(request: Request):
        return await _serve(request, Endpoint.FAILURE)

    @app.post("/webhook")
    async def webhook(request: Request):
        return await _serve(request, Endpoint.WEBHOOK)

    return app


async def _serve(request: Request, endpoint: Endpoint) -> Response:
    engine: ForwardingEngine = request.app.state.engine
    raw_body = await request.body()
    outcome = await _run_until_disconnect(
        request,
        engine.handle(endpoint, request.headers, request.headers.get("content-type"), raw_body),
    )
    if outcome is None:
        # client is gone; nobody reads this
        return Response(status_code=499)
    status, body = build_envelope(outcome, endpoint)
    return JSONResponse(status_code=status, content=body)


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_S)


async def _run_until_disconnect(
    request: Request, work: Awaitable[RequestOutcome]
) -> Optional[RequestOutcome]:
    """
    Race the engine against the client connection. If the client hangs up
    first, the engine task is cancelled, which interrupts the injected sleep
    or the in-flight upstream request and releases its connection.
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [t for t in (task, watcher) if not t.done()]
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        return task.result()
    log.info("client disconnected from %s, abandoned request", request.url.path)
    return None


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=HTTP_HOST,
        port=HTTP_PORT,
        log_level=LOG_LEVEL.lower(),
    )
