from typing import Dict, Set

# resolved asset path -> url paths of the documents that requested it
_REFERERS: Dict[str, Set[str]] = {}

def record_reference(resolved_path: str, origin_url_path: str) -> None:
    _REFERERS.setdefault(resolved_path, set()).add(origin_url_path)

def get_referers(resolved_path: str) -> Set[str]:
    return set(_REFERERS.get(resolved_path, ()))

def reset_references() -> None:
    _REFERERS.clear()
