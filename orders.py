"""
Checkout and order history.

create_order validates every requested game before anything is written, then
records the whole order (header, one line per unit, consumed keys) with a
single run_transaction call. There is no partial fulfillment: an order is
either committed in full or leaves no trace.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import structlog
from sqlalchemy import bindparam, insert, select, update
from sqlalchemy.engine import Engine

from database import (
    Ref,
    fetch_all,
    games,
    games_keys,
    games_transactions,
    run_transaction,
    users_transactions,
)
from errors import (
    InsufficientKeys,
    InsufficientStock,
    OrderFailed,
    StorageFailure,
    ValidationFailed,
)
from inventory import get_stock_model, get_unused_keys
from schemas import OrderItem

logger = structlog.get_logger(__name__)

_INSERT_HEADER = insert(users_transactions)
_INSERT_LINE = insert(games_transactions)
_MARK_KEY_USED = (
    update(games_keys)
    .where(games_keys.c.id == bindparam("key_id"), games_keys.c.used.is_(False))
    .values(used=True)
)


def create_order(engine: Engine, user_id: int, items: Sequence[OrderItem]) -> Dict:
    if not items:
        raise ValidationFailed("Order must contain at least one game")

    statements: list = [_INSERT_HEADER]
    params: List[Dict] = [{"user_id": user_id, "date": datetime.now(timezone.utc)}]

    # Quantities are summed per game so a game listed twice is checked
    # against its total and never gets the same key twice.
    requested: Dict[int, int] = defaultdict(int)
    unused_keys: Dict[int, List[int]] = {}

    for item in items:
        game_id, quantity = item.game_id, item.quantity
        stock = get_stock_model(engine, game_id)
        already = requested[game_id]
        requested[game_id] = total = already + quantity

        if stock.is_digital:
            if game_id not in unused_keys:
                unused_keys[game_id] = get_unused_keys(engine, game_id)
            available = unused_keys[game_id]
            if len(available) < total:
                logger.info(
                    "Order rejected",
                    reason="insufficient_keys",
                    user_id=user_id,
                    game_id=game_id,
                    requested=total,
                    available=len(available),
                )
                raise InsufficientKeys(f"Not enough keys for game {game_id}", game_id)
            key_ids: List[Optional[int]] = available[already:total]
        else:
            if stock.physical_quantity < total:
                logger.info(
                    "Order rejected",
                    reason="insufficient_stock",
                    user_id=user_id,
                    game_id=game_id,
                    requested=total,
                    available=stock.physical_quantity,
                )
                raise InsufficientStock(
                    f"Not enough box games for game {game_id}", game_id
                )
            key_ids = [None] * quantity

        for key_id in key_ids:
            statements.append(_INSERT_LINE)
            params.append(
                {"user_transaction_id": Ref(0), "game_id": game_id, "key_id": key_id}
            )
            if key_id is not None:
                statements.append(_MARK_KEY_USED)
                params.append({"key_id": key_id})

    try:
        results = run_transaction(engine, statements, params)
    except StorageFailure as exc:
        logger.warning("Order failed at commit", user_id=user_id, error=exc.message)
        raise OrderFailed("Order could not be created") from exc

    order_id = results[0].inserted_id
    logger.info(
        "Order created",
        order_id=order_id,
        user_id=user_id,
        lines=sum(requested.values()),
    )
    return {"message": "Order was created successfully", "order_id": order_id}


def _load_orders(engine: Engine, user_id: Optional[int] = None) -> List[Dict]:
    headers_query = select(
        users_transactions.c.id, users_transactions.c.user_id, users_transactions.c.date
    ).order_by(users_transactions.c.id.desc())
    if user_id is not None:
        headers_query = headers_query.where(users_transactions.c.user_id == user_id)
    headers = fetch_all(engine, headers_query)
    if not headers:
        return []

    lines_query = (
        select(
            games_transactions.c.user_transaction_id,
            games.c.id,
            games.c.name,
            games.c.price,
            games.c.is_digital,
            games_keys.c.gkey.label("key"),
        )
        .select_from(
            games_transactions.join(games, games.c.id == games_transactions.c.game_id)
            .outerjoin(games_keys, games_keys.c.id == games_transactions.c.key_id)
        )
        .where(
            games_transactions.c.user_transaction_id.in_([h["id"] for h in headers])
        )
        .order_by(games_transactions.c.id)
    )
    lines: Dict[int, List[Dict]] = defaultdict(list)
    for row in fetch_all(engine, lines_query):
        order_id = row.pop("user_transaction_id")
        row["is_digital"] = bool(row["is_digital"])
        lines[order_id].append(row)

    return [{**header, "games": lines[header["id"]]} for header in headers]


def list_all(engine: Engine) -> List[Dict]:
    """Every order, most recent first, with resolved games and keys."""
    return _load_orders(engine)


def list_for_user(engine: Engine, user_id: int) -> List[Dict]:
    return _load_orders(engine, user_id)
