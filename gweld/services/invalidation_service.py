import logging
import os
import re
from typing import List, Optional, Set

from gweld.models.common_models import EventKind, FsEvent
from gweld.services import known_files_service, reference_graph, session_service
from gweld.services.path_service import is_inside_root, url_path_to_resolved

logger = logging.getLogger(__name__)

# vim: .name.swp .name.swo ... .name.swx, and the 4913 write check file
_VIM_SWAP = re.compile(r"^\.(?P<target>.+)\.sw[a-px]$")
_BACKUP = re.compile(r"^(?P<target>.+)~$")
_PROBE_NAMES = {"4913"}


def normalize_swap_file(event: FsEvent) -> Optional[FsEvent]:
    """
    Rewrite editor swap/backup file events in terms of the real file.

    Writes into a swap file mean nothing to the browser and are dropped.
    Creating, renaming or removing one happens when the editor saves, so it
    becomes a modification of the file being edited.
    """
    directory, name = os.path.split(event.path)
    if name in _PROBE_NAMES:
        return None

    match = _VIM_SWAP.match(name) or _BACKUP.match(name)
    if match is None:
        return event

    if event.kind == EventKind.MODIFIED:
        return None
    target = os.path.join(directory, match.group("target"))
    return FsEvent(kind=EventKind.MODIFIED, path=target)


def apply_to_index(full_path: str, event: FsEvent) -> None:
    if event.kind == EventKind.RENAMED:
        known_files_service.toggle(full_path)
    elif event.kind == EventKind.DELETED:
        known_files_service.mark_absent(full_path)
    else:
        # Some editors save via rename-then-write, so a change means it exists
        known_files_service.mark_present(full_path)


def collect_affected_origins(root: str, resolved_path: str) -> Set[str]:
    """
    Url paths of every page that loaded resolved_path, directly or through
    other non-HTML assets (a module importing a module, a stylesheet
    importing a stylesheet).
    """
    affected = reference_graph.get_referers(resolved_path)
    visited: Set[str] = {resolved_path}
    pending: List[str] = list(affected)

    while pending:
        origin = pending.pop()
        origin_path = url_path_to_resolved(root, origin)
        if origin_path is None or origin_path in visited:
            continue
        # Pages are where the walk stops; same rule delivery uses for injection
        if known_files_service.get_mime_type(origin_path) == "text/html":
            continue
        visited.add(origin_path)

        for referer in reference_graph.get_referers(origin_path):
            if referer not in affected:
                affected.add(referer)
                pending.append(referer)

    return affected


def handle_fs_event(root: str, event: FsEvent) -> Set[int]:
    """
    Bring the index up to date for one filesystem event and reload every
    session whose page depends on the changed file.
    Returns the ids of the sessions that were notified.
    """
    try:
        normalized = normalize_swap_file(event)
        if normalized is None:
            return set()

        full_path = os.path.normpath(os.path.join(root, normalized.path))
        if not is_inside_root(root, full_path):
            logger.warning("Ignoring event outside of %s: %s", root, normalized.path)
            return set()

        apply_to_index(full_path, normalized)

        affected = collect_affected_origins(root, full_path)
        if not affected:
            return set()

        session_ids = session_service.get_session_ids_for(affected)
        notified = {sid for sid in session_ids if session_service.notify_session(sid)}
        session_service.cleanup_sessions(session_ids)

        if notified:
            logger.info(
                "%s changed, reloading %d session(s) for %s",
                normalized.path, len(notified), ", ".join(sorted(affected)),
            )
        return notified
    except Exception:
        # One bad event must not stop the ones after it
        logger.exception("Failed to process filesystem event %s", event)
        return set()
