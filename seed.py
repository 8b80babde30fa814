"""Create the schema, an admin account and a small demo catalogue.

Usage:
    python seed.py --admin-password secretpassword
    python seed.py --admin-username root --admin-password secret123 --no-demo
"""

import argparse

import structlog

import catalog
import users
from database import categories, get_engine, init_db, platforms
from errors import Conflict
from schemas import GameCreate, KeyCreate

logger = structlog.get_logger(__name__)

DEMO_CATEGORIES = ["RPG", "Racing", "Strategy"]
DEMO_PLATFORMS = ["PC", "PlayStation 5"]
DEMO_GAMES = [
    {"name": "Elder Realms VI", "price": 59.99, "quantity": 0, "is_digital": True,
     "age_category": "18", "platform": "PC", "category": "RPG"},
    {"name": "Turbo Drift", "price": 39.99, "quantity": 8, "is_digital": False,
     "age_category": "3", "platform": "PlayStation 5", "category": "Racing"},
    {"name": "Sky Colony", "price": 29.99, "quantity": 15, "is_digital": False,
     "age_category": "7", "platform": "PC", "category": "Strategy"},
]


def _ids_by_name(engine, table, names, label):
    for name in names:
        try:
            catalog.create_named(engine, table, label, name)
        except Conflict:
            logger.info(f"{label} already exists", name=name)
    return {row["name"]: row["id"] for row in catalog.list_named(engine, table)}


def seed_demo(engine, keys_per_game: int) -> None:
    category_ids = _ids_by_name(engine, categories, DEMO_CATEGORIES, "Category")
    platform_ids = _ids_by_name(engine, platforms, DEMO_PLATFORMS, "Platform")
    existing = {game["name"] for game in catalog.list_games(engine)}

    for demo in DEMO_GAMES:
        if demo["name"] in existing:
            logger.info("Game already exists", name=demo["name"])
            continue
        created = catalog.create_game(
            engine,
            GameCreate(
                name=demo["name"],
                price=demo["price"],
                quantity=demo["quantity"],
                description=f"{demo['name']} demo entry",
                release_date="2021-03-11",
                is_digital=demo["is_digital"],
                age_category=demo["age_category"],
                platform_id=platform_ids[demo["platform"]],
                categories_id=[category_ids[demo["category"]]],
            ),
        )
        if demo["is_digital"]:
            for n in range(keys_per_game):
                catalog.create_key(
                    engine,
                    KeyCreate(game_id=created["id"], gkey=f"DEMO-{created['id']:04d}-{n:04d}"),
                )


def main():
    parser = argparse.ArgumentParser(description="Game Store database seeding")
    parser.add_argument("--admin-username", default="admin")
    parser.add_argument("--admin-email", default="admin@example.com")
    parser.add_argument("--admin-password", required=True)
    parser.add_argument("--keys-per-game", type=int, default=5)
    parser.add_argument("--no-demo", action="store_true", help="Skip the demo catalogue")
    args = parser.parse_args()

    engine = get_engine()
    init_db(engine)
    try:
        users.create_user(engine, args.admin_username, args.admin_email, args.admin_password, role="admin")
    except Conflict:
        logger.info("Admin already exists", username=args.admin_username)
    if not args.no_demo:
        seed_demo(engine, args.keys_per_game)


if __name__ == "__main__":
    main()
