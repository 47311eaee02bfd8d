from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

# capacity of the streams handed out by list_all
LIST_BUFFER_SIZE = 10240


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Object:
    key: str
    size: int
    mtime: datetime = field(default_factory=_now)
    is_dir: bool = False


@dataclass(frozen=True)
class File(Object):
    owner: str = ""
    group: str = ""
    mode: int = 0o644


@dataclass
class MultipartUpload:
    min_part_size: int
    max_count: int
    upload_id: str


@dataclass
class Part:
    num: int
    size: int
    etag: str


@dataclass(frozen=True)
class PendingPart:
    key: str
    upload_id: str
    created: datetime


class StorageError(Exception):
    pass


class ObjectNotFound(StorageError):
    def __init__(self, key: str) -> None:
        super().__init__(f"object not found: {key}")
        self.key = key


class InvalidPart(StorageError):
    pass


class NotSupported(StorageError):
    pass


class ObjectStorage(Protocol):
    async def create(self) -> None: ...

    async def head(self, key: str) -> Object: ...

    async def get(self, key: str, off: int = 0, limit: int = -1) -> bytes: ...

    async def put(self, key: str, body: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(self, prefix: str, marker: str, limit: int) -> list[Object]: ...

    def list_all(
        self, prefix: str, marker: str
    ) -> AbstractAsyncContextManager[MemoryObjectReceiveStream[Object | None]]: ...

    async def create_multipart_upload(self, key: str) -> MultipartUpload: ...

    async def upload_part(self, key: str, upload_id: str, num: int, body: bytes) -> Part: ...

    async def abort_upload(self, key: str, upload_id: str) -> None: ...

    async def complete_upload(self, key: str, upload_id: str, parts: list[Part]) -> None: ...

    async def list_uploads(self, marker: str) -> tuple[list[PendingPart], str]: ...


class FileSystem(Protocol):
    """Permission management, offered by backends that store files."""

    async def chmod(self, path: str, mode: int) -> None: ...

    async def chown(self, path: str, owner: str, group: str) -> None: ...


@asynccontextmanager
async def listing_stream(
    produce: Callable[[MemoryObjectSendStream[Object | None]], Awaitable[None]],
) -> AsyncIterator[MemoryObjectReceiveStream[Object | None]]:
    """Run ``produce`` in the background and yield the stream it fills.

    ``produce`` owns the send side and closes it when the listing is complete.
    Leaving the context cancels a producer still running. An exception raised
    by the caller inside the context comes out as it is, not inside an
    exception group.
    """
    send, receive = anyio.create_memory_object_stream[Object | None](LIST_BUFFER_SIZE)
    error: BaseException | None = None
    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(produce, send)
            try:
                yield receive
            except BaseException as exc:
                error = exc
            finally:
                tg.cancel_scope.cancel()
    finally:
        send.close()
        receive.close()
    if error is not None:
        raise error
