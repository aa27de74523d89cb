"""Split a request projection into local and related-entity parts."""

from __future__ import annotations

from typing import List, NamedTuple

from chainview.query.descriptor import Projection


class SplitProjection(NamedTuple):
    local: Projection
    related: Projection


def split(projection: Projection, related_prefix: str) -> SplitProjection:
    """Separate ``related_prefix.*`` paths from the rest.

    Related paths are returned with the prefix stripped. Both halves keep the
    request's single mode, so neither can end up mixed. The bare prefix itself
    (the whole relation field) stays local.
    """
    if projection.is_empty:
        return SplitProjection(Projection(), Projection())

    marker = related_prefix + "."
    local: List[str] = []
    related: List[str] = []
    for path in projection.paths:
        if path.startswith(marker):
            related.append(path[len(marker):])
        else:
            local.append(path)

    return SplitProjection(
        local=Projection(projection.mode, tuple(local), exclude_id=projection.exclude_id),
        related=Projection(projection.mode, tuple(related)) if related else Projection(),
    )
