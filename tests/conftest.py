"""Shared pytest fixtures: config factory, mock transports and a fake backend."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from aiohttp import web

from manimatic.config import Config
from manimatic.utils.api_client import ApiClient


def make_config(**overrides) -> Config:
    values = {
        "api_base_url": "http://backend.test",
        "generation_timeout_seconds": 2.0,
        "request_timeout_seconds": 2.0,
        "probe_timeout_seconds": 2.0,
    }
    values.update(overrides)
    return Config(_env_file=None, **values)


@pytest.fixture
def config_factory() -> Callable[..., Config]:
    return make_config


class Recorder:
    """httpx.MockTransport handler that records requests and answers from a route table."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = routes or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.path}"
        answer = self.routes.get(key)
        if answer is None:
            return httpx.Response(404)
        if callable(answer):
            return answer(request)
        return answer

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest_asyncio.fixture
async def mock_client(recorder):
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    client = ApiClient("http://backend.test", http_client=http, request_timeout=2.0, probe_timeout=2.0)
    yield client
    await http.aclose()


class FakeBackend:
    """
    In-process stand-in for the animation API.

    Serves the metadata endpoints, accepts triggering calls, and streams
    whatever the test pushes over a real text/event-stream response.
    """

    def __init__(self):
        self.health_status = 200
        self.generate_status = 204
        self.compile_status = 204
        self.features: List[Dict[str, Any]] = [
            {"key": "user-compile", "description": "Edit and compile scripts", "enabled": True},
            {"key": "high-quality", "description": "4K rendering", "enabled": False},
        ]
        self.models: Dict[str, Any] = {"models": ["fast-v1", "slow-v2"], "default_model": "fast-v1"}
        self.requests: List[Dict[str, Any]] = []
        self.connected = asyncio.Event()
        self.url = ""
        self._streams: List[asyncio.Queue] = []
        self._runner: Optional[web.AppRunner] = None

    def calls(self, path: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["path"] == path]

    async def _record(self, request: web.Request) -> None:
        body = None
        if request.can_read_body:
            body = await request.json()
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "body": body,
            "cookie": request.cookies.get("session"),
        })

    async def handle_healthz(self, request: web.Request) -> web.Response:
        await self._record(request)
        response = web.Response(status=self.health_status)
        response.set_cookie("session", "sess-1")
        return response

    async def handle_features(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"version": "0.1.0", "features": self.features})

    async def handle_models(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response(self.models)

    async def handle_generate(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(status=self.generate_status)

    async def handle_compile(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(status=self.compile_status)

    async def handle_events(self, request: web.Request) -> web.StreamResponse:
        await self._record(request)
        response = web.StreamResponse(headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
        })
        await response.prepare(request)
        queue: asyncio.Queue = asyncio.Queue()
        self._streams.append(queue)
        self.connected.set()
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                await response.write(chunk.encode("utf-8"))
        finally:
            self._streams.remove(queue)
        return response

    def push(self, kind: str, data: Dict[str, Any], session_id: str = "sess-1") -> None:
        payload = json.dumps({"kind": kind, "sessionId": session_id, "data": data})
        self.push_raw(f"data: {payload}\n\n")

    def push_raw(self, chunk: str) -> None:
        for queue in self._streams:
            queue.put_nowait(chunk)

    def end_streams(self) -> None:
        for queue in list(self._streams):
            queue.put_nowait(None)

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self.handle_healthz)
        app.router.add_get("/features", self.handle_features)
        app.router.add_get("/models", self.handle_models)
        app.router.add_post("/generate", self.handle_generate)
        app.router.add_post("/compile", self.handle_compile)
        app.router.add_get("/events", self.handle_events)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        await site.start()
        host, port = self._runner.addresses[0][:2]
        self.url = f"http://{host}:{port}"

    async def stop(self) -> None:
        self.end_streams()
        if self._runner is not None:
            await self._runner.cleanup()


@pytest_asyncio.fixture
async def backend():
    server = FakeBackend()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def session(backend):
    """A started session connected to the fake backend's event stream."""
    from manimatic.session import Session

    live = Session(make_config(api_base_url=backend.url, generation_timeout_seconds=1.0))
    await live.start()
    await asyncio.wait_for(backend.connected.wait(), timeout=5)
    yield live
    await live.close()
