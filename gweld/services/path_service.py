import os
import posixpath
from typing import Optional
from urllib.parse import unquote, urlsplit


def normalize_url_path(raw_path: str, index_document: str) -> str:
    """
    Canonical UrlPath for a request: percent-decoded once, query dropped,
    directory paths completed with the index document.
    """
    # urlsplit would read a leading "//" as a host
    path = unquote(raw_path.partition("?")[0]) or "/"
    if not path.startswith("/"):
        path = "/" + path
    if path.endswith("/"):
        path += index_document
    return path


def origin_from_headers(referer: Optional[str], own_url_path: str, index_document: str) -> str:
    # The referer is a full URL, only its path identifies the page
    if referer:
        return normalize_url_path(urlsplit(referer).path, index_document)
    return own_url_path


def resolve_request_path(root: str, raw_path: str, index_document: str) -> Optional[str]:
    """
    Map a raw request path to an absolute path inside root.

    Returns None when the canonical path escapes root. Decoding happens
    before normalization so encoded and doubled-slash traversals collapse
    the same way plain ones do.
    """
    decoded = unquote(raw_path.partition("?")[0])
    if decoded.endswith("/") or not decoded:
        decoded += index_document

    # Leading slashes would make join() discard root
    relative = decoded.lstrip("/")
    resolved = os.path.normpath(os.path.join(root, relative))

    if not is_inside_root(root, resolved):
        return None
    return resolved


def is_inside_root(root: str, path: str) -> bool:
    try:
        return os.path.commonpath([root, path]) == root
    except ValueError:
        # different drives on windows
        return False


def url_path_to_resolved(root: str, url_path: str) -> Optional[str]:
    relative = posixpath.normpath(url_path).lstrip("/")
    resolved = os.path.normpath(os.path.join(root, relative))
    if not is_inside_root(root, resolved):
        return None
    return resolved
