"""
Error kinds raised by the store services.

Every kind carries the HTTP status the API answers with; main.py maps any
StoreError to a JSON response, so services never import FastAPI.
"""

from typing import Optional


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(StoreError):
    status_code = 404


class ValidationFailed(StoreError):
    status_code = 400


class InsufficientStock(ValidationFailed):
    def __init__(self, message: str, game_id: Optional[int] = None):
        super().__init__(message)
        self.game_id = game_id


class InsufficientKeys(ValidationFailed):
    def __init__(self, message: str, game_id: Optional[int] = None):
        super().__init__(message)
        self.game_id = game_id


class Forbidden(StoreError):
    status_code = 403


class Conflict(StoreError):
    status_code = 409


class MalformedBatch(StoreError):
    """Statements and parameter groups do not line up. Never user-triggered."""


class StorageFailure(StoreError):
    pass


class ConstraintViolation(StorageFailure):
    status_code = 409


class OrderFailed(StoreError):
    pass
