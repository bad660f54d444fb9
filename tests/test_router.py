import pytest

from comfyui_router.models import DispatchRequest, ErrorKind, JobCategory
from comfyui_router.registry import WorkerPool
from comfyui_router.router import DispatchRouter


class SelectorSpy:
    """Selector stub returning a fixed worker and counting calls."""

    def __init__(self, choice):
        self.choice = choice
        self.calls = 0

    async def __call__(self, pool, *, timeout=None, session=None):
        self.calls += 1
        return self.choice


@pytest.fixture
def workflow():
    return {"prompt": {"59": {"class_type": "SaveImage", "inputs": {"filename_prefix": "img_1"}}}}


class TestResolveTarget:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", [JobCategory.AFFINITY, JobCategory.BALANCED])
    async def test_override_always_wins(self, category):
        selector = SelectorSpy("http://pool-b")
        router = DispatchRouter(WorkerPool("http://primary", ("http://pool-a", "http://pool-b")), selector=selector)

        target = await router.resolve_target(DispatchRequest(category=category, override="http://elsewhere"))

        assert target == "http://elsewhere"
        assert selector.calls == 0

    @pytest.mark.asyncio
    async def test_affinity_goes_to_primary(self):
        selector = SelectorSpy("http://pool-b")
        router = DispatchRouter(WorkerPool("http://primary", ("http://pool-a", "http://pool-b")), selector=selector)

        target = await router.resolve_target(DispatchRequest(category=JobCategory.AFFINITY))

        assert target == "http://primary"
        assert selector.calls == 0

    @pytest.mark.asyncio
    async def test_balanced_uses_selector(self):
        selector = SelectorSpy("http://pool-b")
        router = DispatchRouter(WorkerPool("http://primary", ("http://pool-a", "http://pool-b")), selector=selector)

        target = await router.resolve_target(DispatchRequest(category=JobCategory.BALANCED))

        assert target == "http://pool-b"
        assert selector.calls == 1

    @pytest.mark.asyncio
    async def test_category_given_as_string(self):
        router = DispatchRouter(WorkerPool("http://primary", ("http://pool-a",)), selector=SelectorSpy("http://pool-a"))

        assert await router.resolve_target(DispatchRequest(category="affinity")) == "http://primary"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_balanced_job_lands_on_least_loaded_worker(self, make_worker, session, workflow):
        primary = await make_worker()
        busy = await make_worker(running=1, pending=2)
        idle = await make_worker()
        router = DispatchRouter(WorkerPool(primary.url, (busy.url, idle.url)), session=session)

        result = await router.dispatch(DispatchRequest(category=JobCategory.BALANCED, payload=workflow))

        assert result.success
        assert result.endpoint == idle.url
        assert result.data["prompt_id"] == "abc123"
        assert idle.prompts == [workflow]
        assert busy.prompts == [] and primary.prompts == []

    @pytest.mark.asyncio
    async def test_affinity_job_ignores_load(self, make_worker, session, workflow):
        primary = await make_worker(pending=10)
        idle = await make_worker()
        router = DispatchRouter(WorkerPool(primary.url, (idle.url,)), session=session)

        result = await router.dispatch(DispatchRequest(category=JobCategory.AFFINITY, payload=workflow))

        assert result.endpoint == primary.url
        assert primary.prompts == [workflow]
        assert primary.count("GET", "/queue") == 0

    @pytest.mark.asyncio
    async def test_server_error_is_returned_with_endpoint(self, make_worker, session, workflow):
        primary = await make_worker()
        primary.prompt_status = 500
        primary.prompt_body = '{"error": "invalid prompt"}'
        router = DispatchRouter(WorkerPool(primary.url, (primary.url,)), session=session)

        result = await router.dispatch(DispatchRequest(category=JobCategory.AFFINITY, payload=workflow))

        assert not result.success
        assert result.endpoint == primary.url
        assert result.error.kind is ErrorKind.SERVER_ERROR
        assert result.error.status == 500
        assert result.error.body == '{"error": "invalid prompt"}'
        # Submissions are never retried
        assert primary.count("POST", "/prompt") == 1

    @pytest.mark.asyncio
    async def test_unreachable_override_reports_transport_error(self, make_worker, dead_endpoint, session):
        primary = await make_worker()
        router = DispatchRouter(WorkerPool(primary.url, (primary.url,)), session=session)

        result = await router.dispatch(
            DispatchRequest(category=JobCategory.BALANCED, payload={}, override=dead_endpoint)
        )

        assert result.endpoint == dead_endpoint
        assert result.error.kind is ErrorKind.NETWORK_UNREACHABLE
        assert result.to_dict()["serverUrl"] == dead_endpoint
        assert primary.requests == []

    @pytest.mark.asyncio
    async def test_all_workers_down_still_attempts_first(self, make_worker, session):
        primary = await make_worker()
        down = await make_worker()
        down.queue_status = 502
        down.prompt_status = 502
        router = DispatchRouter(WorkerPool(primary.url, (down.url,)), session=session)

        result = await router.dispatch(DispatchRequest(category=JobCategory.BALANCED, payload={}))

        assert result.endpoint == down.url
        assert result.error.status == 502


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_defaults_to_primary(self, make_worker, session, recording_sleep):
        primary = await make_worker()
        other = await make_worker()
        router = DispatchRouter(WorkerPool(primary.url, (other.url,)), session=session, sleep=recording_sleep)

        result = await router.upload(b"img", filename="in.png")

        assert result.ok
        assert result.endpoint == primary.url
        assert primary.uploads[0]["filename"] == "in.png"
        assert other.uploads == []

    @pytest.mark.asyncio
    async def test_upload_respects_attempt_limit(self, make_worker, session, recording_sleep):
        primary = await make_worker()
        primary.upload_statuses = [500, 500]
        router = DispatchRouter(
            WorkerPool(primary.url, (primary.url,)), session=session, sleep=recording_sleep, upload_attempts=2
        )

        result = await router.upload(b"img", override=primary.url)

        assert result.error.kind is ErrorKind.UPLOAD_EXHAUSTED
        assert primary.count("POST", "/upload/image") == 2
        assert recording_sleep.delays == [2]
