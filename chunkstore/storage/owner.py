from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from functools import partial
from typing import TypeVar

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from chunkstore.meta import Meta
from chunkstore.storage import (
    FileSystem,
    MultipartUpload,
    Object,
    ObjectStorage,
    Part,
    PendingPart,
    listing_stream,
)
from chunkstore.storage.prefix import OwnerKeyTranslator, translate

D = TypeVar("D", Object, PendingPart)


def strip_key(descriptor: D, length: int) -> D:
    return replace(descriptor, key=descriptor.key[length:])


async def relay(
    source: MemoryObjectReceiveStream[Object | None],
    sink: MemoryObjectSendStream[Object | None],
    length: int,
    logger: logging.Logger,
) -> None:
    """Forward ``source`` into ``sink`` with ``length`` characters cut off every key.

    ``None`` items are progress markers of the backend and pass through as they
    are. ``sink`` is closed once ``source`` is exhausted.
    """
    async with sink:
        try:
            async for obj in source:
                if obj is not None:
                    obj = strip_key(obj, length)
                await sink.send(obj)
        except anyio.BrokenResourceError:
            logger.debug("listing consumer went away before the end of the stream")


class WithOwnerPrefix(ObjectStorage):
    """Object storage that keeps every chunk under a directory named after its owner.

    Callers keep using logical keys; the wrapped storage sees
    ``<owner>/<logical key>``. Keys that are not chunk keys are stored as they are.
    Permission changes are forwarded only when a ``permissions`` capability is
    given, otherwise they are accepted and ignored.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        meta: Meta,
        *,
        permissions: FileSystem | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.storage = storage
        self.permissions = permissions
        self.logger = logger or logging.getLogger(__name__)
        self.translator = OwnerKeyTranslator(meta, self.logger)

    def __str__(self) -> str:
        return f"{self.storage}[owner]"

    async def _partition(self, marker: str) -> str:
        # an empty marker starts from the global partition
        if not marker:
            return ""
        return await self.translator.resolve_prefix(marker)

    async def create(self) -> None:
        await self.storage.create()

    async def head(self, key: str) -> Object:
        prefix = await self.translator.resolve_prefix(key)
        obj = await self.storage.head(translate(key, prefix))
        return strip_key(obj, len(prefix))

    async def get(self, key: str, off: int = 0, limit: int = -1) -> bytes:
        return await self.storage.get(await self.translator.translate(key), off, limit)

    async def put(self, key: str, body: bytes) -> None:
        await self.storage.put(await self.translator.translate(key), body)

    async def delete(self, key: str) -> None:
        await self.storage.delete(await self.translator.translate(key))

    async def list(self, prefix: str, marker: str, limit: int) -> list[Object]:
        partition = await self._partition(marker)
        if marker:
            marker = translate(marker, partition)
        objects = await self.storage.list(translate(prefix, partition), marker, limit)
        return [strip_key(obj, len(partition)) for obj in objects]

    @asynccontextmanager
    async def list_all(self, prefix: str, marker: str) -> AsyncIterator[MemoryObjectReceiveStream[Object | None]]:
        partition = await self._partition(marker)
        if marker:
            marker = translate(marker, partition)
        async with self.storage.list_all(translate(prefix, partition), marker) as source:
            produce = partial(relay, source, length=len(partition), logger=self.logger)
            async with listing_stream(produce) as receive:
                yield receive

    async def chmod(self, path: str, mode: int) -> None:
        if self.permissions is None:
            return
        await self.permissions.chmod(await self.translator.translate(path), mode)

    async def chown(self, path: str, owner: str, group: str) -> None:
        if self.permissions is None:
            return
        await self.permissions.chown(await self.translator.translate(path), owner, group)

    async def create_multipart_upload(self, key: str) -> MultipartUpload:
        return await self.storage.create_multipart_upload(await self.translator.translate(key))

    async def upload_part(self, key: str, upload_id: str, num: int, body: bytes) -> Part:
        return await self.storage.upload_part(await self.translator.translate(key), upload_id, num, body)

    async def abort_upload(self, key: str, upload_id: str) -> None:
        await self.storage.abort_upload(await self.translator.translate(key), upload_id)

    async def complete_upload(self, key: str, upload_id: str, parts: list[Part]) -> None:
        await self.storage.complete_upload(await self.translator.translate(key), upload_id, parts)

    async def list_uploads(self, marker: str) -> tuple[list[PendingPart], str]:
        # the marker goes out as given, yet returned keys are assumed to carry its prefix
        parts, next_marker = await self.storage.list_uploads(marker)
        length = len(await self._partition(marker))
        return [strip_key(part, length) for part in parts], next_marker
