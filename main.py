import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.engine import Engine

import catalog
import orders
import users
from auth import admin_required, create_token, user_required
from database import categories, get_engine, init_db, platforms
from errors import StoreError
from schemas import (
    Game,
    GameCreate,
    GameSearch,
    GameUpdate,
    Key,
    KeyCreate,
    LoggedUserUpdate,
    NamedInput,
    Order,
    OrderItem,
    User,
    UserCreate,
    UserUpdate,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(get_engine())
    yield


app = FastAPI(
    title="Game Store API",
    description="Store API with 2 levels of authorization - user and admin.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------- Errors -----------------------

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = ",".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": message})

# ----------------------- Models -----------------------
class RegisterInput(BaseModel):
    username: str = Field(..., min_length=1, max_length=15)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=20)

class LoginInput(BaseModel):
    username: str = Field(..., min_length=1, max_length=15)
    password: str = Field(..., min_length=6, max_length=20)

class LoginResponse(BaseModel):
    token: str
    role: str

# ----------------------- Routes -----------------------
@app.get("/")
def root():
    return {"message": "Game Store API running"}

# Auth
@app.post("/auth/register", status_code=201)
def register(payload: RegisterInput, engine: Engine = Depends(get_engine)):
    return users.create_user(engine, payload.username, payload.email, payload.password)

@app.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginInput, engine: Engine = Depends(get_engine)):
    user = users.get_by_name(engine, payload.username)
    if not user or not users.verify_password(payload.password, user["salt"], user["password_hash"]):
        raise HTTPException(status_code=404, detail="Incorrect username or password")
    return LoginResponse(token=create_token(user["id"], user["role"]), role=user["role"])

# Games
@app.get("/games", response_model=List[Game])
def list_games(
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    q: str = "",
    engine: Engine = Depends(get_engine),
):
    return catalog.list_games(engine, offset, limit, q)

@app.post("/games/search", response_model=List[Game])
def search_games(
    payload: GameSearch,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    engine: Engine = Depends(get_engine),
):
    return catalog.search_games(engine, payload, offset, limit)

@app.post("/games", status_code=201)
def create_game(payload: GameCreate, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.create_game(engine, payload)

@app.patch("/games/{game_id}")
def update_game(game_id: int, payload: GameUpdate, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.update_game(engine, game_id, payload)

@app.delete("/games/{game_id}")
def delete_game(game_id: int, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.delete_game(engine, game_id)

# Categories
@app.get("/categories")
def list_categories(engine: Engine = Depends(get_engine)):
    return catalog.list_named(engine, categories)

@app.post("/categories", status_code=201)
def create_category(payload: NamedInput, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.create_named(engine, categories, "Category", payload.name)

@app.put("/categories/{category_id}")
def update_category(category_id: int, payload: NamedInput, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.rename_named(engine, categories, "Category", category_id, payload.name)

@app.delete("/categories/{category_id}")
def delete_category(category_id: int, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.delete_category(engine, category_id)

# Platforms
@app.get("/platforms")
def list_platforms(engine: Engine = Depends(get_engine)):
    return catalog.list_named(engine, platforms)

@app.post("/platforms", status_code=201)
def create_platform(payload: NamedInput, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.create_named(engine, platforms, "Platform", payload.name)

@app.put("/platforms/{platform_id}")
def update_platform(platform_id: int, payload: NamedInput, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.rename_named(engine, platforms, "Platform", platform_id, payload.name)

@app.delete("/platforms/{platform_id}")
def delete_platform(platform_id: int, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.delete_platform(engine, platform_id)

# Keys
@app.get("/keys", response_model=List[Key])
def list_keys(user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.list_keys(engine)

@app.post("/keys", status_code=201)
def create_key(payload: KeyCreate, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.create_key(engine, payload)

@app.delete("/keys/{key_id}")
def delete_key(key_id: int, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return catalog.delete_key(engine, key_id)

# Users
@app.get("/users", response_model=List[User])
def list_users(user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return users.list_users(engine)

@app.post("/users", status_code=201)
def create_user(payload: UserCreate, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return users.create_user(engine, payload.name, payload.email, payload.password, payload.role)

@app.patch("/users/loggeduser")
def update_logged_user(payload: LoggedUserUpdate, user: Dict = Depends(user_required), engine: Engine = Depends(get_engine)):
    return users.update_user(engine, user["id"], payload.model_dump())

@app.patch("/users/{user_id}")
def update_user(user_id: int, payload: UserUpdate, user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return users.update_user(engine, user_id, payload.model_dump())

@app.delete("/users/{user_id}")
def delete_user(user_id: int, user: Dict = Depends(admin_required), engine: Engine = Depends(get_engine)):
    return users.delete_user(engine, user_id, requested_by=user["id"])

# Orders
@app.get("/orders", response_model=List[Order])
def list_orders(user=Depends(admin_required), engine: Engine = Depends(get_engine)):
    return orders.list_all(engine)

@app.get("/orders/loggeduser", response_model=List[Order])
def list_my_orders(user: Dict = Depends(user_required), engine: Engine = Depends(get_engine)):
    return orders.list_for_user(engine, user["id"])

@app.post("/orders/loggeduser", status_code=201)
def create_order(payload: List[OrderItem], user: Dict = Depends(user_required), engine: Engine = Depends(get_engine)):
    return orders.create_order(engine, user["id"], payload)

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
