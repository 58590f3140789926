# ==============================================================================
# normalizer.py  –  Raw Chess.com game → GameSummary
# ------------------------------------------------------------------------------
# A raw game is kept only when it is rated, its time class is tracked, it has
# an end time, and the player is one of the two participants. Everything else
# (other players' games, unrated games, malformed records) yields None.
#
# Date and time are derived in UTC so every cycle sorts on the same clock.
# ==============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

from ratingmirror.models import Category, GameSummary

REFERENCE_TZ = timezone.utc


def _category(raw: Mapping[str, Any]) -> Optional[Category]:
    try:
        return Category(raw.get("time_class"))
    except (TypeError, ValueError):
        return None


def _player_rating(raw: Mapping[str, Any], handle: str) -> Optional[int]:
    """Rating of whichever side ``handle`` played, or None if neither matches."""
    for side in ("white", "black"):
        participant = raw.get(side)
        if not isinstance(participant, Mapping):
            continue
        username = participant.get("username")
        if isinstance(username, str) and username.lower() == handle:
            rating = participant.get("rating")
            if isinstance(rating, bool):
                return None
            try:
                return int(rating)
            except (TypeError, ValueError):
                return None
    return None


def derive_date_time(end_time: Any) -> Optional[Tuple[str, str]]:
    """Epoch seconds → ("YYYY-MM-DD", "HH:MM:SS") in the reference timezone."""
    if end_time is None or isinstance(end_time, bool):
        return None
    try:
        moment = datetime.fromtimestamp(float(end_time), tz=REFERENCE_TZ)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return moment.strftime("%Y-%m-%d"), moment.strftime("%H:%M:%S")


def normalize_game(
    raw: Mapping[str, Any], handle: str
) -> Optional[Tuple[Category, GameSummary]]:
    """
    Decide inclusion of one raw game for ``handle``.

    Returns
    -------
    (Category, GameSummary) | None
        The summary tagged with its category, or None when the game is not
        one of the player's rated rapid/blitz games.
    """
    if not isinstance(raw, Mapping) or raw.get("rated") is not True:
        return None

    category = _category(raw)
    if category is None or not raw.get("end_time"):
        return None

    link = raw.get("url")
    if not isinstance(link, str) or not link:
        return None

    rating = _player_rating(raw, handle.lower())
    if rating is None:
        return None

    stamp = derive_date_time(raw.get("end_time"))
    if stamp is None:
        return None

    return category, GameSummary(game_link=link, rating=rating, date=stamp[0], time=stamp[1])
