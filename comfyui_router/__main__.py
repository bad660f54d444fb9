#!/usr/bin/env python3
"""
Run the router HTTP front: python -m comfyui_router
"""
import sys

from aiohttp import web

from .api import create_app
from .registry import WorkerPool
from .utils.config import (
    ensure_config_exists,
    get_listen_address,
    get_transport_timeout_seconds,
    get_upload_max_attempts,
    load_config,
)
from .utils.constants import get_config_file
from .utils.logging import log


def main():
    ensure_config_exists()
    config = load_config()

    try:
        pool = WorkerPool.from_config(config)
    except ValueError as e:
        log(f"Error: invalid configuration in {get_config_file()}: {e}")
        sys.exit(1)

    host, port = get_listen_address(config)
    log(f"Primary server: {pool.primary}")
    log(f"Worker pool: {', '.join(pool.workers)}")

    app = create_app(
        pool,
        timeout=get_transport_timeout_seconds(),
        upload_attempts=get_upload_max_attempts(),
    )
    web.run_app(app, host=host, port=port)


if __name__ == "__main__":
    main()
