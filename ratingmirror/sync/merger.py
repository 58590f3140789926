# ==============================================================================
# merger.py  –  Fold newly normalised games into a stored rating graph
# ==============================================================================

from __future__ import annotations

from typing import Dict, Iterable, Tuple

from ratingmirror.models import GameSummary, Series


def merge_series(
    existing: Iterable[GameSummary], new_summaries: Iterable[GameSummary]
) -> Tuple[Series, int]:
    """
    Merge ``new_summaries`` into ``existing`` keyed by game link.

    Summaries are write-once: a link already present keeps its stored entry.

    The result is fully re-sorted by (date, time); ties keep link order so
    the output is deterministic. Returns the merged series and its length,
    which becomes the stored count for the category.
    """
    by_link: Dict[str, GameSummary] = {s.game_link: s for s in existing}
    for summary in new_summaries:
        by_link.setdefault(summary.game_link, summary)

    merged = tuple(sorted(by_link.values(), key=lambda s: (s.sort_key, s.game_link)))
    return merged, len(merged)
