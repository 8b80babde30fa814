"""
Catalogue services: games, categories, platforms and license keys.

Reads go through fetch_all; every write is a run_transaction batch so that a
game and its category links are created, replaced or removed together.
"""

from collections import defaultdict
from typing import Dict, List, Optional

import structlog
from sqlalchemy import Table, and_, case, delete, func, insert, select, true, update
from sqlalchemy.engine import Engine

from database import (
    Ref,
    categories,
    fetch_all,
    fetch_one,
    games,
    games_categories,
    games_keys,
    platforms,
    run_transaction,
)
from errors import (
    Conflict,
    ConstraintViolation,
    Forbidden,
    NotFound,
    ValidationFailed,
)
from schemas import GameCreate, GameSearch, GameUpdate, KeyCreate

logger = structlog.get_logger(__name__)


# ----------------------- Games -----------------------

def _games_query():
    unused_keys = (
        select(func.count(games_keys.c.id))
        .where(games_keys.c.game_id == games.c.id, games_keys.c.used.is_(False))
        .scalar_subquery()
    )
    quantity = case((games.c.is_digital.is_(True), unused_keys), else_=games.c.quantity)
    return select(
        games.c.id,
        games.c.name,
        games.c.price,
        quantity.label("quantity"),
        games.c.description,
        games.c.release_date,
        games.c.is_digital,
        games.c.age_category,
        games.c.platform_id,
    ).order_by(games.c.id)


def _with_categories(engine: Engine, rows: List[Dict]) -> List[Dict]:
    if not rows:
        return rows
    links = fetch_all(
        engine,
        select(games_categories.c.game_id, games_categories.c.category_id)
        .where(games_categories.c.game_id.in_([r["id"] for r in rows]))
        .order_by(games_categories.c.category_id),
    )
    by_game: Dict[int, List[int]] = defaultdict(list)
    for link in links:
        by_game[link["game_id"]].append(link["category_id"])
    for row in rows:
        row["is_digital"] = bool(row["is_digital"])
        row["categories_id"] = by_game[row["id"]]
    return rows


def list_games(
    engine: Engine, offset: int = 0, limit: Optional[int] = None, q: str = ""
) -> List[Dict]:
    query = _games_query().offset(offset).limit(limit)
    if q:
        query = query.where(games.c.name.icontains(q, autoescape=True))
    return _with_categories(engine, fetch_all(engine, query))


def search_games(
    engine: Engine, search: GameSearch, offset: int = 0, limit: Optional[int] = None
) -> List[Dict]:
    """Games matching every non-empty filter; list filters match any value."""
    conditions = [true()]
    if search.name:
        conditions.append(games.c.name.icontains(search.name, autoescape=True))
    if search.is_digital:
        conditions.append(games.c.is_digital.in_(search.is_digital))
    if search.age_categories:
        conditions.append(games.c.age_category.in_(search.age_categories))
    if search.platforms_id:
        conditions.append(games.c.platform_id.in_(search.platforms_id))
    if search.categories_id:
        conditions.append(
            games.c.id.in_(
                select(games_categories.c.game_id).where(
                    games_categories.c.category_id.in_(search.categories_id)
                )
            )
        )
    query = _games_query().where(and_(*conditions)).offset(offset).limit(limit)
    return _with_categories(engine, fetch_all(engine, query))


def create_game(engine: Engine, game: GameCreate) -> Dict:
    fields = game.model_dump(exclude={"categories_id"})
    statements = [insert(games)]
    params = [fields]
    for category_id in game.categories_id:
        statements.append(insert(games_categories))
        params.append({"game_id": Ref(0), "category_id": category_id})

    try:
        results = run_transaction(engine, statements, params)
    except ConstraintViolation as exc:
        raise ValidationFailed("Platform or category does not exist") from exc

    game_id = results[0].inserted_id
    logger.info("Game created", game_id=game_id, name=game.name)
    return {"message": "Game was successfully created", "id": game_id}


def update_game(engine: Engine, game_id: int, changes: GameUpdate) -> Dict:
    fields = changes.model_dump(exclude_none=True)
    category_ids = fields.pop("categories_id", None)
    if not fields and category_ids is None:
        raise ValidationFailed("No fields to update")
    if fetch_one(engine, select(games.c.id).where(games.c.id == game_id)) is None:
        raise NotFound("Game was not found")

    statements: list = []
    params: List[Dict] = []
    if fields:
        statements.append(update(games).where(games.c.id == game_id))
        params.append(fields)
    if category_ids is not None:
        statements.append(
            delete(games_categories).where(games_categories.c.game_id == game_id)
        )
        params.append({})
        for category_id in category_ids:
            statements.append(insert(games_categories))
            params.append({"game_id": game_id, "category_id": category_id})

    try:
        results = run_transaction(engine, statements, params)
    except ConstraintViolation as exc:
        raise ValidationFailed("Platform or category does not exist") from exc

    if fields and results[0].rowcount == 0:
        raise NotFound("Game was not found")
    return {"message": "Game was successfully updated"}


def delete_game(engine: Engine, game_id: int) -> Dict:
    statements = [
        delete(games_categories).where(games_categories.c.game_id == game_id),
        delete(games_keys).where(games_keys.c.game_id == game_id),
        delete(games).where(games.c.id == game_id),
    ]
    try:
        results = run_transaction(engine, statements, [{}, {}, {}])
    except ConstraintViolation as exc:
        raise Conflict("Game which was bought can not be deleted") from exc

    if results[2].rowcount == 0:
        raise NotFound("Game was not found")
    logger.info("Game deleted", game_id=game_id)
    return {"message": "Game deleted successfully"}


# ----------------------- Categories & platforms -----------------------

def list_named(engine: Engine, table: Table) -> List[Dict]:
    return fetch_all(engine, select(table.c.id, table.c.name).order_by(table.c.id))


def create_named(engine: Engine, table: Table, label: str, name: str) -> Dict:
    try:
        results = run_transaction(engine, [insert(table)], [{"name": name}])
    except ConstraintViolation as exc:
        raise Conflict(f"{label} already exists") from exc
    return {"message": f"{label} was successfully created", "id": results[0].inserted_id}


def rename_named(engine: Engine, table: Table, label: str, item_id: int, name: str) -> Dict:
    try:
        results = run_transaction(
            engine, [update(table).where(table.c.id == item_id)], [{"name": name}]
        )
    except ConstraintViolation as exc:
        raise Conflict(f"{label} already exists") from exc
    if results[0].rowcount == 0:
        raise NotFound(f"{label} was not found")
    return {"message": f"{label} was successfully updated"}


def delete_category(engine: Engine, category_id: int) -> Dict:
    statements = [
        delete(games_categories).where(games_categories.c.category_id == category_id),
        delete(categories).where(categories.c.id == category_id),
    ]
    results = run_transaction(engine, statements, [{}, {}])
    if results[1].rowcount == 0:
        raise NotFound("Category was not found")
    return {"message": "Category was deleted successfully"}


def delete_platform(engine: Engine, platform_id: int) -> Dict:
    try:
        results = run_transaction(
            engine, [delete(platforms).where(platforms.c.id == platform_id)], [{}]
        )
    except ConstraintViolation as exc:
        raise Conflict("Platform is assigned to games") from exc
    if results[0].rowcount == 0:
        raise NotFound("Platform was not found")
    return {"message": "Platform was deleted successfully"}


# ----------------------- Keys -----------------------

def list_keys(engine: Engine) -> List[Dict]:
    rows = fetch_all(
        engine,
        select(
            games_keys.c.id,
            games_keys.c.used,
            games_keys.c.gkey,
            games.c.id.label("game_id"),
            games.c.name,
            games.c.price,
        )
        .select_from(games_keys.join(games, games.c.id == games_keys.c.game_id))
        .order_by(games_keys.c.game_id, games_keys.c.id),
    )
    return [
        {
            "id": row["id"],
            "game": {"id": row["game_id"], "name": row["name"], "price": row["price"]},
            "used": bool(row["used"]),
            "gkey": row["gkey"],
        }
        for row in rows
    ]


def create_key(engine: Engine, key: KeyCreate) -> Dict:
    try:
        results = run_transaction(
            engine,
            [insert(games_keys)],
            [{"game_id": key.game_id, "gkey": key.gkey, "used": False}],
        )
    except ConstraintViolation as exc:
        raise Conflict("Key already exists or game does not exist") from exc
    logger.info("Key created", key_id=results[0].inserted_id, game_id=key.game_id)
    return {"message": "Key created successfully", "id": results[0].inserted_id}


def delete_key(engine: Engine, key_id: int) -> Dict:
    current = fetch_one(engine, select(games_keys.c.used).where(games_keys.c.id == key_id))
    if current is None:
        raise NotFound("Key was not found")
    if current["used"]:
        raise Forbidden("You can not delete key which was sold")

    try:
        results = run_transaction(
            engine,
            [delete(games_keys).where(games_keys.c.id == key_id, games_keys.c.used.is_(False))],
            [{}],
        )
    except ConstraintViolation as exc:
        raise Forbidden("You can not delete key which was sold") from exc
    if results[0].rowcount == 0:
        # Sold or removed between the check and the delete.
        raise Conflict("Key changed while being deleted")
    return {"message": "Key was deleted successfully"}
