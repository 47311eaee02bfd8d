from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator
from redis.asyncio import BlockingConnectionPool, Redis


def owner_key(chunk_id: int) -> str:
    return f"chunk_owner:{chunk_id}"


@dataclass
class RedisOwnerMap:
    redis: Redis
    default: str = ""

    @classmethod
    @asynccontextmanager
    async def connect(cls, dsn: str, default: str = "") -> AsyncIterator[RedisOwnerMap]:
        pool = BlockingConnectionPool.from_url(dsn)  # type: ignore
        try:
            yield cls(Redis(connection_pool=pool), default)
        finally:
            await pool.aclose()

    async def get_chunk_owner(self, chunk_id: int) -> str:
        owner: bytes | None = await self.redis.get(owner_key(chunk_id))  # type: ignore
        if owner is None:
            return self.default
        return owner.decode()

    async def set_chunk_owner(self, chunk_id: int, owner: str) -> None:
        await self.redis.set(owner_key(chunk_id), owner.encode())  # type: ignore
