"""Pytest configuration and fixtures for tunnel gateway tests."""

import asyncio
from types import SimpleNamespace

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from tunnelgate import create_app
from tunnelgate.config import AccessConfig, Config, RegistryConfig, UpstreamConfig
from tunnelgate.registry import LocalRegistryTransport, RegistryReply


class FakeRegistry:
    """In-process tunnel registry that records every lookup."""

    def __init__(self):
        self.records: list[dict] = []
        self.status = 200
        self.reason = "OK"
        self.calls: list[dict[str, str]] = []

    def add(self, client_id: str, tunnel_url: str, created_at: int = 1700000000000):
        self.records.append({
            "clientId": client_id,
            "tunnelUrl": tunnel_url,
            "createdAt": created_at,
            "updatedAt": created_at + 1000,
        })

    async def __call__(self, headers):
        self.calls.append({k.lower(): v for k, v in headers})
        if self.status != 200:
            return RegistryReply(self.status, self.reason)
        return RegistryReply(200, "OK", {
            "success": True,
            "data": list(self.records),
            "count": len(self.records),
        })


class UpstreamRecorder:
    """Tunnel endpoint that echoes and records what it receives."""

    def __init__(self):
        self.base_url = ""
        self.requests: list[SimpleNamespace] = []
        self.process_registry = {
            "proxy_base_url": "https://tunnel.example",
            "available_processes": [
                {
                    "name": "billing",
                    "services": [
                        {
                            "name": "billing.Invoices",
                            "methods": [
                                {"name": "Get", "input_type": "GetRequest",
                                 "output_type": "Invoice"},
                                {"name": "Watch", "input_type": "WatchRequest",
                                 "output_type": "Invoice", "server_streaming": True},
                            ],
                        },
                    ],
                },
                {
                    "name": "greeter",
                    "services": [
                        {
                            "name": "hello.Greeter",
                            "methods": [
                                {"name": "SayHello", "input_type": "HelloRequest",
                                 "output_type": "HelloReply"},
                            ],
                        },
                    ],
                },
            ],
            "timestamp": "2026-01-01T00:00:00Z",
        }
        self.invoke_status = 200
        self.invoke_reply: object = {"success": True, "data": {"message": "hello"}}

    def paths(self) -> list[str]:
        return [r.path for r in self.requests]

    async def slow(self, request: web.Request) -> web.StreamResponse:
        """Write ``chunk0;`` .. ``chunk{n-1};`` with a pause after each."""
        count = int(request.path.rsplit("/", 1)[1])
        response = web.StreamResponse()
        await response.prepare(request)
        for i in range(count):
            await response.write(f"chunk{i};".encode())
            await asyncio.sleep(0.3)
        await response.write_eof()
        return response

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append(SimpleNamespace(
            method=request.method,
            path=request.path,
            query=request.query_string,
            headers=request.headers.copy(),
            body=body,
        ))

        if request.path == "/api/grpc/registry":
            return web.json_response(self.process_registry)
        if request.path == "/api/grpc/invoke":
            if isinstance(self.invoke_reply, str):
                return web.Response(text=self.invoke_reply, status=self.invoke_status)
            return web.json_response(self.invoke_reply, status=self.invoke_status)
        if request.path.startswith("/slow/"):
            return await self.slow(request)
        if request.path.startswith("/status/"):
            status = int(request.path.rsplit("/", 1)[1])
            return web.json_response(
                {"status": status}, status=status, headers={"X-Upstream": "status"}
            )

        return web.json_response(
            {
                "method": request.method,
                "path": request.path,
                "query": request.query_string,
                "length": len(body),
            },
            headers={"X-Upstream": "echo"},
        )


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
async def upstream():
    """Start a recording tunnel endpoint on a local port."""
    recorder = UpstreamRecorder()
    web_app = web.Application(client_max_size=64 * 1024 * 1024)
    web_app.router.add_route("*", "/{tail:.*}", recorder.handle)

    server = TestServer(web_app)
    await server.start_server()
    recorder.base_url = f"http://{server.host}:{server.port}"
    yield recorder
    await server.close()


@pytest.fixture
def test_config() -> Config:
    """Create test configuration."""
    return Config(
        port=8787,
        debug=True,
        registry=RegistryConfig(url="http://registry.invalid", timeout=2),
        upstream=UpstreamConfig(timeout=5),
        access=AccessConfig(),
    )


@pytest.fixture
def make_client(test_config, registry):
    """Build a test client, optionally with access settings."""
    def _make(**access):
        if access:
            test_config.access = AccessConfig(**access)
        app = create_app(test_config, registry_transport=LocalRegistryTransport(registry))
        return app.test_client()
    return _make


@pytest.fixture
def client(make_client):
    """Create test client."""
    return make_client()
