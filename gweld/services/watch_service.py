import asyncio
import logging
import os
from typing import Optional

from watchfiles import Change, awatch

from gweld.models.common_models import EventKind, FsEvent
from gweld.services.invalidation_service import handle_fs_event

logger = logging.getLogger(__name__)


def to_fs_event(root: str, change: Change, path: str) -> Optional[FsEvent]:
    relative = os.path.relpath(path, root)
    if relative == os.curdir or relative.startswith(os.pardir):
        return None

    if change == Change.modified:
        return FsEvent(kind=EventKind.MODIFIED, path=relative)
    # A batch can hold both an add and a delete for the same path (atomic
    # saves), so trust the disk over the order they were reported in
    kind = EventKind.CREATED if os.path.isfile(path) else EventKind.DELETED
    return FsEvent(kind=kind, path=relative)


async def watch_root(root: str, stop_event: asyncio.Event, **watch_kwargs) -> None:
    """
    Feed filesystem changes under root into the invalidation engine until
    stop_event is set. If the watcher itself dies, live reload stops but the
    server keeps serving files.
    """
    # watchfiles' default filter hides node_modules, .git, swap files and
    # more; served files can live anywhere and swap files are normalized later
    watch_kwargs.setdefault("watch_filter", None)
    try:
        async for changes in awatch(root, stop_event=stop_event, recursive=True, **watch_kwargs):
            for change, path in changes:
                event = to_fs_event(root, change, path)
                if event is not None:
                    handle_fs_event(root, event)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Watching %s failed, live reload is disabled", root)
