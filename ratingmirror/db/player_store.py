# ==============================================================================
# player_store.py  –  Roster + rating-graph persistence for the `players` table
# ------------------------------------------------------------------------------
# Responsibilities:
#   • Read every player with a non-empty Chess.com id (series + metadata)
#   • Replace one player's two graphs and metadata in a single transaction
#   • Connection check used as the fatal startup gate
#
# Column names match the table shared with the reporting backend; column keys
# are the python-side names used here.
# ==============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine

from ratingmirror.models import Category, GameSummary, Player, Series, SyncMetadata
from ratingmirror.utils.db_utils import get_database_url

LOGGER = logging.getLogger(__name__)

_JSON = JSON().with_variant(JSONB(), "postgresql")

METADATA = MetaData()
PLAYERS_TBL = Table(
    "players",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("Chess_com_ID", String, key="chess_com_id"),
    Column("Player_Name", String, key="player_name"),
    Column("rapid_graph", _JSON),
    Column("blitz_graph", _JSON),
    Column("No_of_games_fetched", _JSON, key="games_fetched"),
)

_GRAPH_COLUMNS = {
    Category.RAPID: PLAYERS_TBL.c.rapid_graph,
    Category.BLITZ: PLAYERS_TBL.c.blitz_graph,
}


def build_engine(url: Optional[str] = None, **kwargs: Any) -> Engine:
    """Create the SQLAlchemy engine (URL from env / secrets when omitted)."""
    return create_engine(url or get_database_url(), pool_pre_ping=True, **kwargs)


# ------------------------------------------------------------------------------
# Row <-> model helpers
# ------------------------------------------------------------------------------


def _parse_series(raw: Any, chess_com_id: str, category: Category) -> Series:
    """Decode a stored graph; entries that cannot be keyed by link are dropped."""
    if not raw:
        return ()
    if not isinstance(raw, list):
        LOGGER.warning(
            "%s graph of '%s' is not a list – treated as empty", category.value, chess_com_id
        )
        return ()

    series: List[GameSummary] = []
    for entry in raw:
        try:
            series.append(GameSummary.from_dict(entry))
        except (ValueError, AttributeError) as exc:
            LOGGER.warning(
                "Dropping malformed %s entry for '%s': %s", category.value, chess_com_id, exc
            )
    return tuple(series)


def _row_to_player(row: Any) -> Player:
    data = row._mapping
    chess_com_id = data[PLAYERS_TBL.c.chess_com_id]
    meta_raw = data[PLAYERS_TBL.c.games_fetched]
    return Player(
        row_id=data[PLAYERS_TBL.c.id],
        chess_com_id=chess_com_id,
        name=data[PLAYERS_TBL.c.player_name],
        series={
            category: _parse_series(data[column], chess_com_id, category)
            for category, column in _GRAPH_COLUMNS.items()
        },
        meta=SyncMetadata.from_dict(meta_raw if isinstance(meta_raw, dict) else None),
    )


def _series_payload(series: Series) -> List[Dict[str, Any]]:
    return [summary.to_dict() for summary in series]


# ------------------------------------------------------------------------------
# Store
# ------------------------------------------------------------------------------


class PlayerStore:
    """Thin SQLAlchemy Core wrapper around the `players` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def check_connection(self) -> None:
        """Run a trivial query; any exception means the store is unusable."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def create_schema(self) -> None:
        METADATA.create_all(self.engine, tables=[PLAYERS_TBL])

    def load_players(self, handles: Optional[Iterable[str]] = None) -> List[Player]:
        """Return tracked players (non-empty Chess.com id), ordered by row id."""
        query = (
            select(PLAYERS_TBL)
            .where(PLAYERS_TBL.c.chess_com_id.is_not(None))
            .where(PLAYERS_TBL.c.chess_com_id != "")
            .order_by(PLAYERS_TBL.c.id)
        )
        if handles is not None:
            wanted = sorted({h.strip().lower() for h in handles if h and h.strip()})
            query = query.where(func.lower(PLAYERS_TBL.c.chess_com_id).in_(wanted))

        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()

        players = [_row_to_player(row) for row in rows]
        LOGGER.info("Loaded %d tracked player(s)", len(players))
        return players

    def save_player(self, player: Player) -> None:
        """Replace both graphs and the metadata of one player atomically."""
        values = {
            column.key: _series_payload(player.series_for(category))
            for category, column in _GRAPH_COLUMNS.items()
        }
        values["games_fetched"] = player.meta.to_dict()

        with self.engine.begin() as conn:
            result = conn.execute(
                update(PLAYERS_TBL).where(PLAYERS_TBL.c.id == player.row_id).values(**values)
            )
            if result.rowcount == 0:
                raise LookupError(f"player row {player.row_id} ({player.chess_com_id}) vanished")

    def add_player(self, chess_com_id: str, name: Optional[str] = None) -> int:
        """Insert a roster row with empty graphs; returns the new row id."""
        with self.engine.begin() as conn:
            result = conn.execute(
                PLAYERS_TBL.insert().values(
                    chess_com_id=chess_com_id,
                    player_name=name,
                    rapid_graph=[],
                    blitz_graph=[],
                    games_fetched={},
                )
            )
            return int(result.inserted_primary_key[0])
