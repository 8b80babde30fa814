import hashlib
import secrets
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine

from database import fetch_all, fetch_one, run_transaction, users
from errors import Conflict, ConstraintViolation, NotFound, ValidationFailed

logger = structlog.get_logger(__name__)

HASH_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    """Return ``(salt, hash)``; a fresh salt is drawn when none is given."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), HASH_ITERATIONS
    ).hex()
    return salt, digest


def verify_password(password: str, salt: str, hashed: str) -> bool:
    return secrets.compare_digest(hash_password(password, salt)[1], hashed)


def list_users(engine: Engine) -> List[Dict]:
    return fetch_all(
        engine,
        select(
            users.c.id, users.c.name.label("username"), users.c.email, users.c.role
        ).order_by(users.c.id),
    )


def get_by_name(engine: Engine, name: str) -> Optional[Dict]:
    return fetch_one(
        engine,
        select(users.c.id, users.c.role, users.c.password_hash, users.c.salt).where(
            users.c.name == name
        ),
    )


def create_user(engine: Engine, name: str, email: str, password: str, role: str = "user") -> Dict:
    salt, digest = hash_password(password)
    try:
        results = run_transaction(
            engine,
            [insert(users)],
            [
                {
                    "name": name,
                    "email": email,
                    "role": role,
                    "password_hash": digest,
                    "salt": salt,
                }
            ],
        )
    except ConstraintViolation as exc:
        raise Conflict("User already exists") from exc
    logger.info("User created", user_id=results[0].inserted_id, role=role)
    return {"message": "User was successfully created", "id": results[0].inserted_id}


def update_user(engine: Engine, user_id: int, changes: Dict) -> Dict:
    """Apply the given optional fields; ``password`` is re-hashed with a new salt."""
    fields = {k: v for k, v in changes.items() if v is not None}
    password = fields.pop("password", None)
    if password is not None:
        fields["salt"], fields["password_hash"] = hash_password(password)
    if not fields:
        raise ValidationFailed("No fields to update")

    try:
        results = run_transaction(
            engine, [update(users).where(users.c.id == user_id)], [fields]
        )
    except ConstraintViolation as exc:
        raise Conflict("User already exists") from exc
    if results[0].rowcount == 0:
        raise NotFound("User was not found")
    return {"message": "User was successfully updated"}


def delete_user(engine: Engine, user_id: int, requested_by: int) -> Dict:
    if user_id == requested_by:
        raise ValidationFailed("You cannot delete your own account")
    try:
        results = run_transaction(
            engine, [delete(users).where(users.c.id == user_id)], [{}]
        )
    except ConstraintViolation as exc:
        raise Conflict("User with orders can not be deleted") from exc
    if results[0].rowcount == 0:
        raise NotFound("User was not found")
    logger.info("User deleted", user_id=user_id, requested_by=requested_by)
    return {"message": "User deleted successfully"}
