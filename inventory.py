"""Read-only inventory lookups used to pre-check an order."""

from typing import List, NamedTuple

from sqlalchemy import select
from sqlalchemy.engine import Engine

from database import fetch_all, fetch_one, games, games_keys
from errors import NotFound


class StockModel(NamedTuple):
    is_digital: bool
    physical_quantity: int


def get_stock_model(engine: Engine, game_id: int) -> StockModel:
    row = fetch_one(
        engine,
        select(games.c.is_digital, games.c.quantity).where(games.c.id == game_id),
    )
    if row is None:
        raise NotFound(f"Game {game_id} was not found")
    return StockModel(bool(row["is_digital"]), row["quantity"] or 0)


def get_unused_keys(engine: Engine, game_id: int) -> List[int]:
    """Ids of the game's unused keys, oldest first.

    No lock is taken: two readers may see the same key. The order line's
    unique key binding decides the winner at commit.
    """
    rows = fetch_all(
        engine,
        select(games_keys.c.id)
        .where(games_keys.c.game_id == game_id, games_keys.c.used.is_(False))
        .order_by(games_keys.c.id),
    )
    return [row["id"] for row in rows]
