import logging
import mimetypes
import os
from typing import Dict, Set

logger = logging.getLogger(__name__)

# Paths believed to exist on disk; the watcher keeps this current
_KNOWN_FILES: Set[str] = set()

# Content type per path, computed once
_MIME_CACHE: Dict[str, str] = {}

_MIME_BY_EXTENSION: Dict[str, str] = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".wasm": "application/wasm",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".ico": "image/x-icon",
    ".bmp": "image/bmp",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".ogv": "video/ogg",
    ".mov": "video/quicktime",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def seed_known_files(root: str) -> int:
    """
    Walk root once and remember every regular file.
    MIME types are computed up front so the first request doesn't pay for it.
    """
    _KNOWN_FILES.clear()
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = os.path.join(dirpath, name)
            if os.path.isfile(path):
                _KNOWN_FILES.add(path)
                get_mime_type(path)
    return len(_KNOWN_FILES)


def is_known(path: str) -> bool:
    return path in _KNOWN_FILES


def mark_present(path: str) -> None:
    _KNOWN_FILES.add(path)


def mark_absent(path: str) -> None:
    _KNOWN_FILES.discard(path)


def toggle(path: str) -> bool:
    # A rename is either side of a move; flip what we believed
    if path in _KNOWN_FILES:
        _KNOWN_FILES.remove(path)
        return False
    _KNOWN_FILES.add(path)
    return True


def known_count() -> int:
    return len(_KNOWN_FILES)


def get_mime_type(path: str) -> str:
    cached = _MIME_CACHE.get(path)
    if cached is not None:
        return cached

    ext = os.path.splitext(path)[1].lower()
    mime = _MIME_BY_EXTENSION.get(ext)
    if mime is None:
        guessed, _encoding = mimetypes.guess_type(path, strict=False)
        mime = guessed or DEFAULT_MIME_TYPE
        logger.debug("Guessed %s for %s", mime, path)

    _MIME_CACHE[path] = mime
    return mime


def reset_known_files() -> None:
    _KNOWN_FILES.clear()
    _MIME_CACHE.clear()
