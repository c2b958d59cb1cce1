import logging
import os
import time

from fastapi import APIRouter, Request
from fastapi.responses import Response

from gweld.services.delivery_service import (
    DeliveryError,
    build_not_found,
    build_placeholder_page,
    build_unavailable,
    deliver,
)
from gweld.services.known_files_service import get_mime_type, is_known
from gweld.services.path_service import normalize_url_path, origin_from_headers, resolve_request_path
from gweld.services.reference_graph import record_reference
from gweld.services.session_service import next_session_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.api_route("/{file_path:path}", methods=ALL_METHODS)
async def serve_file(request: Request, file_path: str):
    request_id = next_session_id()
    started = time.perf_counter()
    raw_path = request.scope.get("raw_path", b"").decode("latin-1") or request.url.path

    response = await dispatch(request, raw_path)

    elapsed = (time.perf_counter() - started) * 1000
    logger.debug(
        "#%d %s %s -> %d (%.1fms)", request_id, request.method, raw_path, response.status_code, elapsed
    )
    return response


async def dispatch(request: Request, raw_path: str) -> Response:
    # Only support get requests
    if request.method != "GET":
        return build_unavailable()

    state = request.app.state
    root: str = state.serve_root
    index_document: str = state.index_document

    resolved = resolve_request_path(root, raw_path, index_document)
    if resolved is None:
        logger.warning("Illegal access request to %s", raw_path)
        return build_not_found()

    url_path = normalize_url_path(raw_path, index_document)

    if not is_known(resolved):
        if resolved == os.path.join(root, index_document):
            # Nothing to show yet; the landing page reloads once index.html appears
            record_reference(resolved, url_path)
            return build_placeholder_page()
        logger.info("File not found %s", resolved)
        return build_not_found()

    mime = get_mime_type(resolved)
    if mime == "text/html":
        # A page is its own origin, whoever linked to it
        origin = url_path
    else:
        origin = origin_from_headers(request.headers.get("referer"), url_path, index_document)

    try:
        return await deliver(resolved, mime, origin, request.headers.get("range"))
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        # Deleted while we were waiting on the disk; the watcher will catch up
        logger.info("File vanished before it could be read %s", resolved)
        return build_not_found()
    except DeliveryError as e:
        logger.error("Failed to serve %s: %s", resolved, e)
        return build_unavailable()
