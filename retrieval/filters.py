from __future__ import annotations

from typing import Dict, Iterable, Optional


def build_where_filter(
    paths: Optional[Iterable[str]] = None,
    exclude_paths: Optional[Iterable[str]] = None,
) -> Dict:
    """
    Construct a Chroma 'where' filter dict on the metadata written during
    ingestion (metadata.path is the originating document).
    """
    conditions = []
    if paths:
        conditions.append({"path": {"$in": list(paths)}})
    if exclude_paths:
        conditions.append({"path": {"$nin": list(exclude_paths)}})
    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}
