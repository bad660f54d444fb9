import asyncio
from urllib.parse import quote

from aiohttp import web

from .models import TASK_CATEGORIES, DispatchRequest, ErrorKind, JobCategory
from .queue_probe import fetch_server_queue
from .router import DispatchRouter
from .transport import call_worker
from .utils.constants import (
    HISTORY_PATH,
    QUEUE_PATH,
    SYSTEM_STATS_PATH,
    UPLOAD_IMAGE_PATH,
    UPLOAD_MAX_ATTEMPTS,
    UPLOAD_MASK_PATH,
)
from .utils.logging import debug_log, log
from .utils.network import cleanup_client_session, handle_api_error


ROUTER_KEY = web.AppKey("router", DispatchRouter)

routes = web.RouteTableDef()

# HTTP status returned to our caller for each failure kind
STATUS_BY_KIND = {
    ErrorKind.TIMEOUT: 408,
    ErrorKind.CONNECTION_RESET: 503,
    ErrorKind.NETWORK_UNREACHABLE: 503,
    ErrorKind.DNS_FAILURE: 503,
    ErrorKind.CANNOT_CONNECT: 503,
    ErrorKind.SERVER_ERROR: 500,
    ErrorKind.UPLOAD_EXHAUSTED: 500,
    ErrorKind.OTHER: 500,
}

BEST_WORKER_ACTIONS = ("best_worker", "best_upscale_server", "best_bump_server")

# ComfyUI upload form fields passed through untouched
UPLOAD_PASSTHROUGH_FIELDS = ("type", "subfolder", "overwrite")


def status_for(error):
    return STATUS_BY_KIND.get(error.kind, 500)


def resolve_category(data):
    """Category from an explicit `category`, else from the `task` name."""
    if data.get("category"):
        return JobCategory(data["category"])
    task = data.get("task")
    if task:
        if task not in TASK_CATEGORIES:
            raise ValueError(f"Unknown task '{task}'")
        return TASK_CATEGORIES[task]
    return JobCategory.AFFINITY


@routes.post("/router/prompt")
async def prompt_endpoint(request):
    try:
        try:
            data = await request.json()
        except ValueError as e:
            return await handle_api_error(request, f"Invalid JSON body: {e}", 400)
        if not isinstance(data, dict):
            return await handle_api_error(request, "Request body must be a JSON object", 400)

        try:
            category = resolve_category(data)
        except ValueError as e:
            return await handle_api_error(request, e, 400)

        payload = data.get("payload")
        if payload is None:
            return await handle_api_error(request, "Missing 'payload'", 400)

        router = request.app[ROUTER_KEY]
        result = await router.dispatch(
            DispatchRequest(category=category, payload=payload, override=data.get("server_url") or None)
        )
        if result.success:
            debug_log(f"Dispatched {category.value} job to {result.endpoint}")
            return web.json_response(result.to_dict())

        log(f"Dispatch to {result.endpoint} failed: {result.error.message}")
        return web.json_response(result.to_dict(), status=status_for(result.error))
    except Exception as e:
        return await handle_api_error(request, e)


@routes.put("/router/upload")
async def upload_endpoint(request):
    try:
        form = await request.post()
        image_field = form.get("image")
        if not isinstance(image_field, web.FileField):
            return await handle_api_error(request, "No file provided", 400)

        image_bytes = image_field.file.read()
        debug_log(f"File received: {image_field.filename} ({len(image_bytes)} bytes)")

        path = UPLOAD_MASK_PATH if form.get("kind") == "mask" else UPLOAD_IMAGE_PATH
        fields = {key: form[key] for key in UPLOAD_PASSTHROUGH_FIELDS if key in form}

        router = request.app[ROUTER_KEY]
        result = await router.upload(
            image_bytes,
            override=form.get("server_url") or None,
            filename=image_field.filename or "image.png",
            content_type=image_field.content_type or "image/png",
            path=path,
            fields=fields,
        )
        if not result.ok:
            log(f"Upload failed: {result.error.message}")
            return web.json_response(result.to_dict(), status=status_for(result.error))
        return web.json_response(result.to_dict())
    except Exception as e:
        return await handle_api_error(request, e)


@routes.get("/router/{action}")
async def action_endpoint(request):
    try:
        action = request.match_info["action"]
        router = request.app[ROUTER_KEY]
        target = request.query.get("server_url") or router.pool.primary

        if action in BEST_WORKER_ACTIONS:
            best = await router.resolve_target(DispatchRequest(category=JobCategory.BALANCED))
            return web.json_response({"success": True, "data": {"serverUrl": best}})

        if action == "all_queues":
            results = await asyncio.gather(
                *[
                    fetch_server_queue(endpoint, timeout=router.timeout, session=router.session)
                    for endpoint in router.pool.all_endpoints()
                ]
            )
            return web.json_response({"success": True, "data": results})

        if action == "history":
            prompt_id = request.query.get("prompt_id")
            if not prompt_id:
                return await handle_api_error(request, "prompt_id required for history action", 400)
            path = f"{HISTORY_PATH}/{quote(prompt_id, safe='')}"
        elif action == "queue":
            path = QUEUE_PATH
        elif action in ("system_stats", "test_connection"):
            path = SYSTEM_STATS_PATH
        else:
            return await handle_api_error(request, "Invalid action", 400)

        result = await call_worker(target, path, timeout=router.timeout, session=router.session)
        status = 200 if result.ok else status_for(result.error)
        return web.json_response(result.to_dict(), status=status)
    except Exception as e:
        return await handle_api_error(request, e)


async def _close_shared_session(app):
    await cleanup_client_session()


def create_app(pool, *, timeout=None, session=None, upload_attempts=UPLOAD_MAX_ATTEMPTS,
               sleep=asyncio.sleep):
    """aiohttp application serving the router endpoints for `pool`."""
    app = web.Application()
    app[ROUTER_KEY] = DispatchRouter(
        pool,
        timeout=timeout,
        session=session,
        upload_attempts=upload_attempts,
        sleep=sleep,
    )
    app.add_routes(routes)
    app.on_cleanup.append(_close_shared_session)
    return app
