from typing import Any, Dict, Iterable, List, Optional, Tuple

Permission = Tuple[str, str]  # (object, action)


def _as_pair(entry: Any) -> Optional[Permission]:
    if isinstance(entry, (str, bytes)) or not isinstance(entry, (list, tuple)):
        return None
    if len(entry) != 2:
        return None
    return entry[0], entry[1]


def normalize_permissions(entries: Optional[Iterable[Any]]) -> List[Permission]:
    """Turn an API permission list into (object, action) tuples, dropping malformed entries and duplicates"""
    result: List[Permission] = []
    for entry in entries or []:
        pair = _as_pair(entry)
        if pair is None and isinstance(entry, dict):
            # tenant endpoints may answer with {"object": ..., "action": ...}
            if "object" in entry and "action" in entry:
                pair = (entry["object"], entry["action"])
        if pair is not None and pair not in result:
            result.append(pair)
    return result


def group_permissions(permissions: Optional[Iterable[Any]]) -> Dict[str, List[str]]:
    """Group (object, action) pairs by object; skip anything that is not exactly a pair"""
    grouped: Dict[str, List[str]] = {}
    for entry in permissions or []:
        pair = _as_pair(entry)
        if pair is None:
            continue
        obj, action = pair
        actions = grouped.setdefault(obj, [])
        if action not in actions:
            actions.append(action)
    return grouped


def has_permission(permissions: Optional[Iterable[Permission]], obj: str, action: str) -> bool:
    return any(p[0] == obj and p[1] == action for p in permissions or [])


def without_permission(permissions: Optional[Iterable[Permission]], obj: str, action: str) -> List[Permission]:
    return [p for p in permissions or [] if not (p[0] == obj and p[1] == action)]
