"""Persistence backends."""

from nimmit.storage.base import CONFLICT, NOT_FOUND, NimmitStorage
from nimmit.storage.memory import InMemoryStorage

__all__ = [
    "CONFLICT",
    "NOT_FOUND",
    "InMemoryStorage",
    "NimmitStorage",
]
