from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from gweld.config import HAS_UPDATE_PATH
from gweld.services.path_service import origin_from_headers
from gweld.services.session_service import create_session, session_event_stream

router = APIRouter(tags=["live"])

@router.get(HAS_UPDATE_PATH)
async def has_update(request: Request):
    # The injected script's referer is the page that wants reloading
    origin = origin_from_headers(
        request.headers.get("referer"), HAS_UPDATE_PATH, request.app.state.index_document
    )
    session = create_session(origin)

    headers = {
        "Connection": "keep-alive",
        "Cache-Control": "no-cache",
    }
    return StreamingResponse(
        session_event_stream(session, request.is_disconnected),
        media_type="text/event-stream",
        headers=headers,
    )
