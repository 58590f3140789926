# ==============================================================================
# models.py  –  Value types shared by the sync engine
# ------------------------------------------------------------------------------
#   • Category      closed set of tracked time classes
#   • GameSummary   one point of a rating graph (write-once)
#   • SyncMetadata  last-known per-category counts
#   • Player        roster row: identity + two series + metadata
#   • SyncVerdict   freshness decision for one player
# ==============================================================================

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class Category(str, Enum):
    RAPID = "rapid"
    BLITZ = "blitz"


CATEGORIES: Tuple[Category, ...] = tuple(Category)


class SyncVerdict(Enum):
    SKIP = "skip"
    FETCH_ALL = "fetch_all"
    FETCH_RECENT = "fetch_recent"


@dataclass(frozen=True)
class GameSummary:
    """Rating right after one finished game, keyed by the game's permanent link."""

    game_link: str
    rating: Optional[int]  # None only for legacy rows stored without a rating
    date: str  # YYYY-MM-DD
    time: str  # HH:MM:SS

    @property
    def sort_key(self) -> Tuple[str, str]:
        return (self.date, self.time)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"game_link": self.game_link}
        if self.rating is not None:
            data["rating"] = self.rating
        data["date"] = self.date
        data["time"] = self.time
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameSummary":
        """
        Rebuild a summary from its stored JSON form.

        Only a missing ``game_link`` is fatal (ValueError): without it the
        entry cannot be keyed. A missing or unreadable rating is kept as None.
        """
        link = data.get("game_link")
        if not link or not isinstance(link, str):
            raise ValueError(f"graph entry without game_link: {data!r}")
        raw_rating = data.get("rating")
        try:
            rating = None if isinstance(raw_rating, bool) else int(raw_rating)
        except (TypeError, ValueError):
            rating = None
        return cls(
            game_link=link,
            rating=rating,
            date=str(data.get("date") or ""),
            time=str(data.get("time") or ""),
        )


Series = Tuple[GameSummary, ...]


def _count_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SyncMetadata:
    rapid_count: Optional[int] = None
    blitz_count: Optional[int] = None
    last_updated: Optional[str] = None

    def count_for(self, category: Category) -> int:
        value = self.rapid_count if category is Category.RAPID else self.blitz_count
        return value or 0

    @property
    def is_first_sync(self) -> bool:
        """True when no count was ever recorded; a stored 0 is a real count."""
        return self.rapid_count is None and self.blitz_count is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rapid_count": self.rapid_count,
            "blitz_count": self.blitz_count,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SyncMetadata":
        if not data:
            return cls()
        return cls(
            rapid_count=_count_or_none(data.get("rapid_count")),
            blitz_count=_count_or_none(data.get("blitz_count")),
            last_updated=data.get("last_updated"),
        )


@dataclass(frozen=True)
class Player:
    """One tracked roster entry as read from the store."""

    row_id: int
    chess_com_id: str
    series: Mapping[Category, Series] = field(default_factory=dict)
    meta: SyncMetadata = field(default_factory=SyncMetadata)
    name: Optional[str] = None

    @property
    def handle(self) -> str:
        """Lower-cased identity used for API calls and participant matching."""
        return self.chess_com_id.strip().lower()

    def series_for(self, category: Category) -> Series:
        return tuple(self.series.get(category, ()))

    def with_sync(
        self, series: Mapping[Category, Series], meta: SyncMetadata
    ) -> "Player":
        return replace(self, series=dict(series), meta=meta)
