"""
Relational storage for the Game Store application

Tables mirror the store's entities:
- games, games_categories, categories, platforms -> catalogue
- games_keys -> license keys of digital games
- users
- users_transactions -> order headers
- games_transactions -> order lines (one row per purchased unit)

All writes go through run_transaction, which executes a batch of statements
on one pooled connection inside a single transaction.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from errors import ConstraintViolation, MalformedBatch, StorageFailure

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./gamestore.db")

metadata = MetaData()

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(45), nullable=False, unique=True),
)

platforms = Table(
    "platforms",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(45), nullable=False, unique=True),
)

games = Table(
    "games",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(45), nullable=False),
    Column("price", Float, nullable=False),
    # Box stock. Display only: purchases never decrement it.
    Column("quantity", Integer, nullable=False, default=0),
    Column("description", String(500)),
    Column("release_date", String(20)),
    Column("is_digital", Boolean, nullable=False, default=False),
    Column("age_category", String(10)),
    Column("platform_id", Integer, ForeignKey("platforms.id")),
)

games_categories = Table(
    "games_categories",
    metadata,
    Column("game_id", Integer, ForeignKey("games.id"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id"), primary_key=True),
)

games_keys = Table(
    "games_keys",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("game_id", Integer, ForeignKey("games.id"), nullable=False),
    Column("used", Boolean, nullable=False, default=False),
    Column("gkey", String(100), nullable=False, unique=True),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(15), nullable=False, unique=True),
    Column("email", String(255), nullable=False),
    Column("role", String(10), nullable=False, default="user"),
    Column("password_hash", String(128), nullable=False),
    Column("salt", String(64), nullable=False),
)

users_transactions = Table(
    "users_transactions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("date", DateTime(timezone=True), nullable=False),
)

games_transactions = Table(
    "games_transactions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "user_transaction_id",
        Integer,
        ForeignKey("users_transactions.id"),
        nullable=False,
    ),
    Column("game_id", Integer, ForeignKey("games.id"), nullable=False),
    Column("key_id", Integer, ForeignKey("games_keys.id")),
    # A license key is bound to at most one order line, ever. Concurrent
    # checkouts racing for the same key are resolved here at commit time.
    UniqueConstraint("key_id", name="uq_games_transactions_key_id"),
)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str = DATABASE_URL) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, pool_pre_ping=True)


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Process-wide engine; its pool hands out one connection per operation."""
    global _engine
    if _engine is None:
        _engine = make_engine()
    return _engine


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)


@dataclass(frozen=True)
class Ref:
    """Primary key inserted by an earlier statement of the same batch."""

    index: int


class StatementResult(NamedTuple):
    rowcount: int
    inserted_id: Optional[int]


def _resolve(values: Dict[str, Any], results: List[StatementResult]) -> Dict[str, Any]:
    resolved = {}
    for name, value in values.items():
        if isinstance(value, Ref):
            if not 0 <= value.index < len(results):
                raise MalformedBatch(
                    f"parameter '{name}' refers to statement {value.index}, "
                    f"which has not run yet"
                )
            value = results[value.index].inserted_id
        resolved[name] = value
    return resolved


def _inserted_id(statement, result) -> Optional[int]:
    if not getattr(statement, "is_insert", False):
        return None
    key = result.inserted_primary_key
    return key[0] if key else None


def run_transaction(
    engine: Engine,
    statements: Sequence[Any],
    params: Sequence[Dict[str, Any]],
) -> List[StatementResult]:
    """Execute ``statements`` in order as one all-or-nothing unit.

    ``params[i]`` holds the bound values of ``statements[i]``; a value may be
    a :class:`Ref` to the row inserted by an earlier statement. The batch is
    committed only if every statement succeeds, otherwise it is rolled back
    and the first error is raised, translated to a StorageFailure kind.
    """
    if len(statements) != len(params):
        raise MalformedBatch(
            f"{len(statements)} statements but {len(params)} parameter groups"
        )

    results: List[StatementResult] = []
    try:
        with engine.begin() as conn:
            for statement, values in zip(statements, params):
                bound = _resolve(values, results)
                result = conn.execute(statement, bound or None)
                results.append(
                    StatementResult(result.rowcount, _inserted_id(statement, result))
                )
    except IntegrityError as exc:
        logger.warning(
            "Transaction rolled back on constraint violation",
            statements=len(statements),
            executed=len(results),
            error=str(exc.orig),
        )
        raise ConstraintViolation(str(exc.orig)) from exc
    except DBAPIError as exc:
        logger.error(
            "Transaction rolled back on storage error",
            statements=len(statements),
            executed=len(results),
            error=str(exc.orig),
        )
        raise StorageFailure(str(exc.orig)) from exc
    return results


def fetch_all(engine: Engine, statement) -> List[Dict[str, Any]]:
    """Run a read-only query and return its rows as dicts."""
    try:
        with engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(statement)]
    except DBAPIError as exc:
        raise StorageFailure(str(exc.orig)) from exc


def fetch_one(engine: Engine, statement) -> Optional[Dict[str, Any]]:
    rows = fetch_all(engine, statement)
    return rows[0] if rows else None
