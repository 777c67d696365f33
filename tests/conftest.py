"""Shared test fixtures for the loadscope test suite."""

from __future__ import annotations

import asyncio
import socket
import threading
from typing import TYPE_CHECKING

import pytest
from aiohttp import web

from loadscope._internal.config import LoadScopeConfig
from loadscope.dsl.scenario import Scenario, ScenarioLibrary, Step

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Target service handlers
# =============================================================================

_USERS = [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Linus"}]


async def _root_handler(request: web.Request) -> web.Response:
    """Plain-text greeting, like the original service's health check."""
    return web.Response(text="Hello, World!")


async def _health_handler(request: web.Request) -> web.Response:
    """Health check with a small fixed latency."""
    await asyncio.sleep(0.01)
    return web.json_response({"status": "ok"})


async def _list_users_handler(request: web.Request) -> web.Response:
    return web.json_response(_USERS)


async def _create_user_handler(request: web.Request) -> web.Response:
    payload = await request.json()
    return web.json_response({"id": 3, **payload}, status=201)


async def _get_user_handler(request: web.Request) -> web.Response:
    user_id = int(request.match_info["user_id"])
    for user in _USERS:
        if user["id"] == user_id:
            return web.json_response(user)
    return web.json_response({"error": "not found"}, status=404)


async def _fail_handler(request: web.Request) -> web.Response:
    """Always fails with a 500."""
    return web.json_response({"error": True}, status=500)


async def _delay_handler(request: web.Request) -> web.Response:
    """Respond after a configurable delay (query param: ?delay=0.5)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.json_response({"delayed_by": delay})


async def _echo_handler(request: web.Request) -> web.Response:
    """Echo back request details as JSON."""
    body = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "path": str(request.path),
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": body.decode("utf-8", errors="replace"),
        },
    )


def _create_target_app() -> web.Application:
    """Build the target service app with all test routes."""
    app = web.Application()
    app.router.add_get("/", _root_handler)
    app.router.add_get("/health", _health_handler)
    app.router.add_get("/user/users", _list_users_handler)
    app.router.add_post("/user/users", _create_user_handler)
    app.router.add_get("/user/users/{user_id}", _get_user_handler)
    app.router.add_route("*", "/fail", _fail_handler)
    app.router.add_get("/delay", _delay_handler)
    app.router.add_route("*", "/echo{path:.*}", _echo_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def target_server() -> AsyncIterator[str]:
    """Aiohttp target server on the test's event loop.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    app = _create_target_app()
    port = _get_free_port()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def sync_target_server() -> Iterator[str]:
    """Target server running in a background thread.

    For tests that call the blocking ``LoadTestRunner.run()`` or the CLI,
    which start their own event loop on the main thread.
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        app = _create_target_app()
        runner = web.AppRunner(app)
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)


@pytest.fixture
def unused_url() -> str:
    """Base URL on a port nothing listens on."""
    return f"http://127.0.0.1:{_get_free_port()}"


@pytest.fixture
def fast_config() -> LoadScopeConfig:
    """Configuration with short ticks and pauses for quick runs."""
    return LoadScopeConfig(
        tick_interval=0.1,
        grace_period=2.0,
        think_time=(0.01, 0.02),
        request_timeout=5.0,
        health_path="/health",
        seed=7,
    )


@pytest.fixture
def health_library() -> ScenarioLibrary:
    """Single scenario hitting GET /health."""
    return ScenarioLibrary([Scenario("health", weight=1, steps=[Step("GET /health")])])


@pytest.fixture
def user_library() -> ScenarioLibrary:
    """Two user scenarios plus a declared endpoint nothing exercises."""
    return ScenarioLibrary(
        [
            Scenario("health", weight=1, steps=[Step("GET /")]),
            Scenario(
                "users",
                weight=1,
                abort_on_failure=True,
                steps=[
                    Step("GET /user/users"),
                    Step(
                        "POST /user/users",
                        body={"name": "Grace"},
                        expected_status=frozenset({201}),
                    ),
                    Step(
                        "GET /user/users/:id",
                        path=lambda rng: f"/user/users/{rng.randint(1, 2)}",
                    ),
                ],
            ),
        ],
        endpoints=[
            "GET /",
            "GET /user/users",
            "POST /user/users",
            "GET /user/users/:id",
            "POST /mqtt/pub",
        ],
    )


@pytest.fixture
def scenario_file(tmp_path: Path, sync_target_server: str) -> Path:
    """Scenario file pointing at the threaded target server."""
    code = f'''\
from __future__ import annotations

from loadscope import Scenario, ScenarioLibrary, Step, body_contains

name = "CLI Test Run"
base_url = "{sync_target_server}"
think_time = (0.01, 0.02)

library = ScenarioLibrary(
    [
        Scenario("health", weight=3, steps=[Step("GET /health")]),
        Scenario(
            "root",
            weight=1,
            steps=[Step("GET /", assertions=[body_contains("Hello")])],
        ),
    ],
    endpoints=["GET /health", "GET /", "GET /user/users"],
)

plan = ["0.5s:2", "0.5s:2", "0.3s:0"]

thresholds = {{
    "http_req_duration": ["p(95)<500"],
    "http_req_failed": ["rate<0.05"],
}}
'''
    path = tmp_path / "cli_scenario.py"
    path.write_text(code)
    return path
