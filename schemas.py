"""
API schemas for the Game Store application

Each entity model corresponds to a relational table (see database.py):
- Game -> games (+ games_categories)
- Key -> games_keys
- User -> users
- Order -> users_transactions, OrderLine -> games_transactions

The *Create / *Update models are the accepted request bodies. Update models
only carry optional fields; fields left out of a request are not touched.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["user", "admin"]


class Game(BaseModel):
    id: int
    name: str = Field(..., description="Game title")
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., description="Box stock, or unused keys for digital games")
    description: Optional[str] = None
    release_date: Optional[str] = None
    is_digital: bool = Field(..., description="Sold as license keys")
    age_category: Optional[str] = None
    platform_id: Optional[int] = None
    categories_id: List[int] = Field(default_factory=list)


class GameCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=45)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    description: str = Field(..., max_length=500)
    release_date: str
    is_digital: bool
    age_category: str
    platform_id: int
    categories_id: List[int]


class GameUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=45)
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)
    release_date: Optional[str] = None
    is_digital: Optional[bool] = None
    age_category: Optional[str] = None
    platform_id: Optional[int] = None
    categories_id: Optional[List[int]] = None


class GameSearch(BaseModel):
    name: str = Field("", max_length=45)
    is_digital: List[bool] = Field(default_factory=list)
    age_categories: List[str] = Field(default_factory=list)
    platforms_id: List[int] = Field(default_factory=list)
    categories_id: List[int] = Field(default_factory=list)


class NamedInput(BaseModel):
    """Body of category and platform writes."""

    name: str = Field(..., min_length=1, max_length=45)


class KeyCreate(BaseModel):
    game_id: int
    gkey: str = Field(..., min_length=1, max_length=100)


class KeyGame(BaseModel):
    id: int
    name: str
    price: float


class Key(BaseModel):
    id: int
    game: KeyGame
    used: bool
    gkey: str


class User(BaseModel):
    id: int
    username: str
    email: EmailStr
    role: Role


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=15)
    email: EmailStr
    role: Role
    password: str = Field(..., min_length=6, max_length=20)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=15)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    password: Optional[str] = Field(None, min_length=6, max_length=20)


class LoggedUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=15)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6, max_length=20)


class OrderItem(BaseModel):
    game_id: int = Field(..., description="Purchased game id")
    quantity: int = Field(..., ge=1, description="Units to buy")


class OrderLine(BaseModel):
    id: int = Field(..., description="Game id")
    name: str
    price: float
    is_digital: bool
    key: Optional[str] = Field(None, description="License key for digital games")


class Order(BaseModel):
    id: int
    user_id: int
    date: datetime
    games: List[OrderLine]


class Message(BaseModel):
    message: str
