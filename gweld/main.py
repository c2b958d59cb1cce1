import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from gweld.config import HOST, INDEX_DOCUMENT, LOG_LEVEL, PORT, SERVE_ROOT
from gweld.routers import live_router, static_router
from gweld.services.known_files_service import seed_known_files
from gweld.services.reference_graph import reset_references
from gweld.services.session_service import close_all_sessions, reset_sessions
from gweld.services.watch_service import watch_root

logger = logging.getLogger(__name__)


def create_app(serve_root: Optional[str] = None, watch: bool = True, index_document: str = INDEX_DOCUMENT) -> FastAPI:
    # Canonicalize once; every resolved path is compared against this
    root = os.path.realpath(serve_root or SERVE_ROOT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reset_references()
        reset_sessions()
        count = seed_known_files(root)
        logger.info("Watching %s (%d files)...", root, count)

        stop_event = asyncio.Event()
        watcher = asyncio.create_task(watch_root(root, stop_event)) if watch else None
        try:
            yield
        finally:
            closed = close_all_sessions()
            logger.info("Server stopped, closed %d live connection(s)", closed)
            stop_event.set()
            if watcher is not None:
                await watcher

    app = FastAPI(
        title="gweld",
        description="Static file server that reloads the browser when served files change.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.serve_root = root
    app.state.index_document = index_document

    # The event stream route has to be matched before the catch-all
    app.include_router(live_router.router)
    app.include_router(static_router.router)
    return app


app = create_app()


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    root = argv[0] if argv else SERVE_ROOT
    port = PORT
    if len(argv) > 1:
        try:
            port = int(argv[1])
        except ValueError:
            logger.error("You gave %s as the port. It's not a number.", argv[1])
            return 2

    if not os.path.isdir(root):
        logger.error("%s is not a directory", root)
        return 2

    # Open event streams never finish on their own, don't wait long for them
    uvicorn.run(create_app(root), host=HOST, port=port, timeout_graceful_shutdown=1)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
