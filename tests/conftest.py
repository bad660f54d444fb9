"""
Shared fixtures: fake ComfyUI workers served over real HTTP, plus a
recording sleep so backoff can be checked without waiting.
"""
import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from comfyui_router.utils.network import cleanup_client_session


class FakeWorker:
    """Minimal ComfyUI worker that records every request it receives."""

    def __init__(self, running=0, pending=0):
        self.queue_body = {
            "queue_running": [[i, f"run-{i}"] for i in range(running)],
            "queue_pending": [[i, f"pending-{i}"] for i in range(pending)],
        }
        self.queue_status = 200
        self.stats_status = 200
        self.prompt_status = 200
        self.prompt_body = None
        self.prompt_delay = 0
        # One status per upload attempt; 200 once exhausted
        self.upload_statuses = []
        self.requests = []
        self.prompts = []
        self.uploads = []
        self.server = None

    @property
    def url(self):
        return f"http://{self.server.host}:{self.server.port}"

    def count(self, method, path):
        return sum(1 for entry in self.requests if entry == (method, path))

    def _app(self):
        app = web.Application()
        app.router.add_get("/queue", self._queue)
        app.router.add_get("/system_stats", self._system_stats)
        app.router.add_post("/prompt", self._prompt)
        app.router.add_post("/upload/image", self._upload)
        app.router.add_post("/upload/mask", self._upload)
        app.router.add_get("/history/{prompt_id}", self._history)
        return app

    async def start(self):
        self.server = TestServer(self._app())
        await self.server.start_server()
        return self

    async def close(self):
        await self.server.close()

    async def _queue(self, request):
        self.requests.append(("GET", "/queue"))
        if self.queue_status != 200:
            return web.Response(status=self.queue_status, text="queue unavailable")
        if isinstance(self.queue_body, str):
            return web.Response(text=self.queue_body)
        return web.json_response(self.queue_body)

    async def _system_stats(self, request):
        self.requests.append(("GET", "/system_stats"))
        if self.stats_status != 200:
            return web.Response(status=self.stats_status, text="stats unavailable")
        return web.json_response({"system": {"os": "posix"}, "devices": []})

    async def _prompt(self, request):
        self.requests.append(("POST", "/prompt"))
        self.prompts.append(await request.json())
        if self.prompt_delay:
            await asyncio.sleep(self.prompt_delay)
        if self.prompt_status != 200:
            return web.Response(status=self.prompt_status, text=self.prompt_body or "prompt rejected")
        return web.json_response(self.prompt_body or {"prompt_id": "abc123", "number": 1, "node_errors": {}})

    async def _upload(self, request):
        self.requests.append(("POST", request.path))
        form = await request.post()
        image = form.get("image")
        self.uploads.append({
            "path": request.path,
            "filename": image.filename,
            "bytes": image.file.read(),
            "fields": {key: value for key, value in form.items() if key != "image"},
        })
        status = self.upload_statuses.pop(0) if self.upload_statuses else 200
        if status != 200:
            return web.Response(status=status, text="upload failed")
        return web.json_response({"name": image.filename, "subfolder": "", "type": "input"})

    async def _history(self, request):
        self.requests.append(("GET", "/history"))
        prompt_id = request.match_info["prompt_id"]
        return web.json_response({prompt_id: {"status": {"completed": True}}})


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)

    @property
    def total(self):
        return sum(self.delays)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    config_file = tmp_path / "router_config.json"
    monkeypatch.setenv("COMFYUI_ROUTER_CONFIG", str(config_file))
    return config_file


@pytest_asyncio.fixture(autouse=True)
async def shared_session_cleanup():
    yield
    await cleanup_client_session()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest_asyncio.fixture
async def make_worker():
    workers = []

    async def _make(**kwargs):
        worker = FakeWorker(**kwargs)
        await worker.start()
        workers.append(worker)
        return worker

    yield _make

    for worker in workers:
        await worker.close()


@pytest.fixture
def dead_endpoint():
    """URL of a local port nothing listens on."""
    return f"http://127.0.0.1:{unused_port()}"


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
