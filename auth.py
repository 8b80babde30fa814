import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException

JWT_SECRET = os.getenv("JWT_SECRET", "development-secret-change-me-before-deploying")
JWT_ALGORITHM = "HS256"
TOKEN_TTL_SECONDS = int(os.getenv("TOKEN_TTL_SECONDS", 24 * 60 * 60))

ROLES = ("user", "admin")


def create_token(user_id: int, role: str) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "id": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=TOKEN_TTL_SECONDS),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


async def get_current_user(authorization: Optional[str] = Header(None)) -> Dict:
    if not authorization:
        raise HTTPException(status_code=401, detail="No token provided.")
    token = None
    if authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="No token provided.")
    try:
        return decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Failed to authenticate token.")


async def user_required(claims: Dict = Depends(get_current_user)) -> Dict:
    if claims.get("role") not in ROLES:
        raise HTTPException(status_code=403, detail="Insufficient permissions.")
    return claims


async def admin_required(claims: Dict = Depends(get_current_user)) -> Dict:
    if claims.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Insufficient permissions.")
    return claims
