"""Stores package for Cardy game persistence."""

from .game_store import (
    AmbiguousGameCodeError,
    ConcurrencyError,
    GameNotFoundError,
    GameStore,
    MemoryGameStore,
    RedisGameStore,
    close_game_store,
    get_game_store,
)

__all__ = [
    "AmbiguousGameCodeError",
    "ConcurrencyError",
    "GameNotFoundError",
    "GameStore",
    "MemoryGameStore",
    "RedisGameStore",
    "close_game_store",
    "get_game_store",
]
