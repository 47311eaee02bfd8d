from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import pytest
from httpx import AsyncClient

from chunkstore.storage.s3 import S3Storage


@dataclass
class FakeFile:
    key: str
    size: int = 4
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class FakeBucket:
    keys: list[str]

    async def list(self, prefix: str | None = None) -> AsyncIterator[FakeFile]:
        for key in self.keys:
            if key.startswith(prefix or ""):
                yield FakeFile(key)


@pytest.fixture
async def s3(monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[S3Storage]:
    bucket = FakeBucket(["a/1", "a/2", "a/3", "b/1"])
    async with AsyncClient() as client:
        storage = S3Storage(client, "chunks", "id", "secret", "us-east-1", None)
        monkeypatch.setattr(storage, "_get_client", lambda: bucket)
        yield storage


@pytest.mark.anyio
async def test_list(s3: S3Storage) -> None:
    assert [o.key for o in await s3.list("a/", "a/1", 10)] == ["a/2", "a/3"]
    assert [o.key for o in await s3.list("a/", "", 2)] == ["a/1", "a/2"]


@pytest.mark.anyio
@pytest.mark.parametrize("limit", [0, -1])
async def test_list_without_room(s3: S3Storage, limit: int) -> None:
    assert await s3.list("", "", limit) == []


@pytest.mark.anyio
async def test_list_all(s3: S3Storage) -> None:
    async with s3.list_all("a/", "a/1") as receive:
        keys: list[Any] = [o.key async for o in receive if o is not None]
    assert keys == ["a/2", "a/3"]
