"""
Game storage with optimistic versioning.

Each game is stored whole, as the JSON form of the Game aggregate, next to
a version number that goes up by one on every save. A save names the
version it was loaded at; if someone else saved in between, the save is
refused with ConcurrencyError and the caller reloads and retries.

Games are looked up by their 6-character code. Codes are time based, so
two games created in the same second share one; looking up such a code
is reported as ambiguous rather than picking one.

Backends:
- MemoryGameStore: a dict, for a single process and for tests
- RedisGameStore: Redis hashes, watched with WATCH/MULTI on save

Redis key patterns:
- cardy:game:{game_id}     -> Hash (content, version, game_code, created_at)
- cardy:code:{game_code}   -> Set (ids of games with that code)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from game import Game, GameError

logger = logging.getLogger(__name__)


class ConcurrencyError(Exception):
    """Raised when optimistic concurrency check fails."""
    pass


class GameNotFoundError(GameError):
    def __init__(self, game_code: str):
        super().__init__(f"Game with code {game_code} was not found.")
        self.game_code = game_code


class AmbiguousGameCodeError(GameError):
    def __init__(self, game_code: str):
        super().__init__(f"More than one game with code {game_code} was found.")
        self.game_code = game_code


def _decode(value) -> str:
    return value.decode() if isinstance(value, bytes) else value


class GameStore(ABC):
    """Load/save contract shared by every backend."""

    @abstractmethod
    async def load(self, game_code: str) -> tuple[Game, int]:
        """
        Load the single game with this code (case-insensitive).

        Returns:
            The game and the version it was stored at.

        Raises:
            GameNotFoundError: No game has this code.
            AmbiguousGameCodeError: More than one game has this code.
        """

    @abstractmethod
    async def save(self, game: Game, expected_version: Optional[int]) -> int:
        """
        Store the whole game.

        Args:
            game: Game to store.
            expected_version: Version the game was loaded at, or None for a
                game that has never been saved.

        Returns:
            The new version.

        Raises:
            ConcurrencyError: The stored version is not expected_version.
        """

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class MemoryGameStore(GameStore):
    """In-process store. Games are kept serialized so loads never share objects."""

    def __init__(self):
        # game_id -> (game_code, version, content)
        self._records: dict[str, tuple[str, int, str]] = {}
        self._lock = asyncio.Lock()

    async def load(self, game_code: str) -> tuple[Game, int]:
        code = game_code.upper()
        matches = [(v, c) for (gc, v, c) in self._records.values() if gc == code]
        if not matches:
            raise GameNotFoundError(game_code)
        if len(matches) > 1:
            raise AmbiguousGameCodeError(game_code)
        version, content = matches[0]
        return Game.from_dict(json.loads(content)), version

    async def save(self, game: Game, expected_version: Optional[int]) -> int:
        async with self._lock:
            record = self._records.get(game.id)
            current = record[1] if record else None
            if current != expected_version:
                raise ConcurrencyError(
                    f"Game {game.id} is at version {current}, expected {expected_version}"
                )
            new_version = (expected_version or 0) + 1
            self._records[game.id] = (game.code.upper(), new_version, json.dumps(game.to_dict()))
        logger.debug(f"Saved game {game.code} at version {new_version}")
        return new_version


class RedisGameStore(GameStore):
    """Redis-backed game store."""

    # Key patterns
    GAME_KEY = "cardy:game:{game_id}"
    CODE_KEY = "cardy:code:{game_code}"

    def __init__(self, redis_client: redis.Redis, game_ttl: timedelta = timedelta(hours=72)):
        """
        Initialize the store with a Redis client.

        Args:
            redis_client: Async Redis client.
            game_ttl: How long an untouched game is kept.
        """
        self.redis = redis_client
        self.game_ttl = game_ttl

    @classmethod
    async def create(cls, redis_url: str, game_ttl: timedelta = timedelta(hours=72)) -> "RedisGameStore":
        """
        Create a RedisGameStore with a new Redis connection.

        Args:
            redis_url: Redis connection URL.
            game_ttl: How long an untouched game is kept.

        Returns:
            Configured RedisGameStore instance.
        """
        client = redis.from_url(redis_url, decode_responses=False)
        # Test connection
        await client.ping()
        logger.info("RedisGameStore connected to Redis")
        return cls(client, game_ttl)

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.aclose()

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def load(self, game_code: str) -> tuple[Game, int]:
        code = game_code.upper()
        game_ids = await self.redis.smembers(self.CODE_KEY.format(game_code=code))

        records = []
        for game_id in game_ids:
            data = await self.redis.hgetall(self.GAME_KEY.format(game_id=_decode(game_id)))
            if data:
                records.append({_decode(k): _decode(v) for k, v in data.items()})

        if not records:
            raise GameNotFoundError(game_code)
        if len(records) > 1:
            raise AmbiguousGameCodeError(game_code)

        record = records[0]
        return Game.from_dict(json.loads(record["content"])), int(record["version"])

    async def save(self, game: Game, expected_version: Optional[int]) -> int:
        game_key = self.GAME_KEY.format(game_id=game.id)
        code_key = self.CODE_KEY.format(game_code=game.code.upper())
        ttl = int(self.game_ttl.total_seconds())

        async with self.redis.pipeline(transaction=True) as pipe:
            await pipe.watch(game_key)

            stored = await pipe.hget(game_key, "version")
            current = int(_decode(stored)) if stored is not None else None
            if current != expected_version:
                await pipe.unwatch()
                raise ConcurrencyError(
                    f"Game {game.id} is at version {current}, expected {expected_version}"
                )

            new_version = (expected_version or 0) + 1
            pipe.multi()
            pipe.hset(
                game_key,
                mapping={
                    "content": json.dumps(game.to_dict()),
                    "version": str(new_version),
                    "game_code": game.code.upper(),
                    "created_at": game.created_at.isoformat(),
                },
            )
            pipe.expire(game_key, ttl)
            pipe.sadd(code_key, game.id)
            pipe.expire(code_key, ttl)

            try:
                await pipe.execute()
            except WatchError:
                raise ConcurrencyError(f"Game {game.id} was changed while saving") from None

        logger.debug(f"Saved game {game.code} at version {new_version}")
        return new_version


# Global game store instance (initialized on first use)
_game_store: Optional[GameStore] = None


async def get_game_store(backend: str = "memory", redis_url: str = "", game_ttl_hours: int = 72) -> GameStore:
    """
    Get or create the global game store.

    Args:
        backend: "memory" or "redis".
        redis_url: Redis connection URL (redis backend only).
        game_ttl_hours: Expiry for untouched games (redis backend only).

    Returns:
        GameStore instance.
    """
    global _game_store
    if _game_store is None:
        if backend == "redis":
            _game_store = await RedisGameStore.create(redis_url, timedelta(hours=game_ttl_hours))
        elif backend == "memory":
            _game_store = MemoryGameStore()
        else:
            raise ValueError(f"Unknown store backend: {backend}")
        logger.info(f"Game store initialized (backend={backend})")
    return _game_store


async def close_game_store() -> None:
    """Close the global game store."""
    global _game_store
    if _game_store is not None:
        await _game_store.close()
        _game_store = None
