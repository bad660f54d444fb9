"""
Dispatch entry point: resolve which worker a job goes to and submit it.
"""
import asyncio

from .models import DispatchRequest, DispatchResult, JobCategory
from .selector import select_best_worker
from .transport import call_worker
from .upload import upload_with_retry
from .utils.constants import UPLOAD_IMAGE_PATH, UPLOAD_MAX_ATTEMPTS


class DispatchRouter:
    """Routes jobs over a fixed WorkerPool.

    `affinity` jobs go to the primary, `balanced` jobs to the least-loaded
    pool worker; an explicit override always wins. Submissions are never
    retried, failures come back in the DispatchResult.
    """

    def __init__(self, pool, *, selector=select_best_worker, timeout=None, session=None,
                 upload_attempts=UPLOAD_MAX_ATTEMPTS, sleep=asyncio.sleep):
        self.pool = pool
        self.selector = selector
        self.timeout = timeout
        self.session = session
        self.upload_attempts = upload_attempts
        self.sleep = sleep

    async def resolve_target(self, request: DispatchRequest) -> str:
        if request.override:
            return request.override
        category = JobCategory(request.category)
        if category is JobCategory.AFFINITY:
            return self.pool.primary
        return await self.selector(self.pool, timeout=self.timeout, session=self.session)

    async def dispatch(self, request: DispatchRequest) -> DispatchResult:
        target = await self.resolve_target(request)
        result = await call_worker(
            target,
            request.path,
            "POST",
            payload=request.payload,
            timeout=self.timeout,
            session=self.session,
        )
        return DispatchResult.from_call(result)

    async def upload(self, payload, *, override=None, filename="image.png", path=UPLOAD_IMAGE_PATH,
                     fields=None, content_type="image/png"):
        """Upload an input image to `override` or the primary."""
        return await upload_with_retry(
            override or self.pool.primary,
            payload,
            filename=filename,
            content_type=content_type,
            path=path,
            fields=fields,
            max_attempts=self.upload_attempts,
            sleep=self.sleep,
            timeout=self.timeout,
            session=self.session,
        )
