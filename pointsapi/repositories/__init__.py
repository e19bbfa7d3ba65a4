# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .account_repository import AccountRepository
from .ledger_repository import LedgerRepository
from .inventory_repository import InventoryRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "AccountRepository",
    "LedgerRepository",
    "InventoryRepository",
    "UserRepository",
]
