import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

import catalog
import users
from auth import create_token
from database import (
    categories,
    games_transactions,
    get_engine,
    init_db,
    make_engine,
    platforms,
    users_transactions,
)
from main import app
from schemas import GameCreate, KeyCreate


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'store.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(engine):
    def _make(name="player", role="user", password="secret123"):
        return users.create_user(engine, name, f"{name}@example.com", password, role)["id"]

    return _make


@pytest.fixture()
def make_game(engine):
    platform_id = catalog.create_named(engine, platforms, "Platform", "PC")["id"]
    category_id = catalog.create_named(engine, categories, "Category", "RPG")["id"]
    counter = {"n": 0}

    def _make(name=None, is_digital=False, quantity=0, keys=0, price=50.0):
        counter["n"] += 1
        game_id = catalog.create_game(
            engine,
            GameCreate(
                name=name or f"Game {counter['n']}",
                price=price,
                quantity=quantity,
                description="Test game",
                release_date="2021-03-11",
                is_digital=is_digital,
                age_category="16",
                platform_id=platform_id,
                categories_id=[category_id],
            ),
        )["id"]
        for n in range(keys):
            catalog.create_key(engine, KeyCreate(game_id=game_id, gkey=f"KEY-{game_id}-{n}"))
        return game_id

    return _make


@pytest.fixture()
def auth_header():
    def _header(user_id, role="user"):
        return {"Authorization": f"Bearer {create_token(user_id, role)}"}

    return _header


@pytest.fixture()
def count_rows(engine):
    def _count(table):
        with engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar_one()

    return _count


@pytest.fixture()
def order_counts(count_rows):
    def _counts():
        return count_rows(users_transactions), count_rows(games_transactions)

    return _counts
