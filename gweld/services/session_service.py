import asyncio
import itertools
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from gweld.config import DISCONNECT_POLL_SECONDS
from gweld.models.session_models import LiveSession

logger = logging.getLogger(__name__)

RELOAD_MESSAGE = "reload"
RELOAD_FRAME = "data: 'reload'\n\n"

# Open event streams by id, and the ids watching each url path
_SESSIONS: Dict[int, LiveSession] = {}
_SESSIONS_BY_URL: Dict[str, Set[int]] = {}

_session_ids = itertools.count(1)


def next_session_id() -> int:
    return next(_session_ids)


def create_session(url_path: str) -> LiveSession:
    session = LiveSession(session_id=next_session_id(), url_path=url_path)
    _SESSIONS[session.session_id] = session
    _SESSIONS_BY_URL.setdefault(url_path, set()).add(session.session_id)
    logger.debug("Session %d watching %s", session.session_id, url_path)
    return session


def get_session(session_id: int):
    return _SESSIONS.get(session_id)


def get_session_ids_for(url_paths: Iterable[str]) -> Set[int]:
    ids: Set[int] = set()
    for url_path in url_paths:
        ids.update(_SESSIONS_BY_URL.get(url_path, ()))
    return ids


def notify_session(session_id: int) -> bool:
    """
    Push the reload message to an open session.
    Returns False if the session is gone or was already notified.
    """
    session = _SESSIONS.get(session_id)
    if session is None or session.notified:
        return False
    session.notified = True
    session.push(RELOAD_MESSAGE)
    return True


def cleanup_sessions(session_ids: Iterable[int]) -> None:
    for session_id in list(session_ids):
        session = _SESSIONS.pop(session_id, None)
        if session is None:
            continue
        watchers = _SESSIONS_BY_URL.get(session.url_path)
        if watchers is not None:
            watchers.discard(session_id)
            if not watchers:
                del _SESSIONS_BY_URL[session.url_path]


def close_all_sessions() -> int:
    """
    End every open stream without a reload, used on shutdown.
    """
    sessions: List[LiveSession] = list(_SESSIONS.values())
    for session in sessions:
        session.push(None)
    cleanup_sessions([s.session_id for s in sessions])
    return len(sessions)


def open_session_count() -> int:
    return len(_SESSIONS)


def sessions_watching(url_path: str) -> Set[int]:
    return set(_SESSIONS_BY_URL.get(url_path, ()))


async def session_event_stream(
    session: LiveSession,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """
    Body of a /_has_update response: one reload frame once notified, nothing
    if closed on shutdown. While idle it checks is_disconnected every
    DISCONNECT_POLL_SECONDS, since nothing is written that could fail.
    """
    getter = asyncio.ensure_future(session.queue.get())
    try:
        while True:
            done, _pending = await asyncio.wait({getter}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                break
            if is_disconnected is not None and await is_disconnected():
                return
        if getter.result() == RELOAD_MESSAGE:
            yield RELOAD_FRAME
    finally:
        getter.cancel()
        # Covers the browser closing the tab before anything changed
        cleanup_sessions([session.session_id])
        logger.debug("Session %d closed", session.session_id)


def reset_sessions() -> None:
    _SESSIONS.clear()
    _SESSIONS_BY_URL.clear()
