from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import partial
from datetime import datetime, timezone
from hashlib import md5
from uuid import uuid4

from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from chunkstore.storage import (
    File,
    FileSystem,
    InvalidPart,
    MultipartUpload,
    Object,
    ObjectNotFound,
    ObjectStorage,
    Part,
    PendingPart,
    listing_stream,
)

UPLOADS_PAGE_SIZE = 1000


@dataclass
class Entry:
    body: bytes
    mtime: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    owner: str = ""
    group: str = ""
    mode: int = 0o644

    def describe(self, key: str) -> File:
        return File(
            key=key,
            size=len(self.body),
            mtime=self.mtime,
            owner=self.owner,
            group=self.group,
            mode=self.mode,
        )


@dataclass
class Upload:
    key: str
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    parts: dict[int, bytes] = field(default_factory=dict)


@dataclass
class InMemoryBackend(ObjectStorage, FileSystem):
    storage: dict[str, Entry] = field(default_factory=dict)
    uploads: dict[str, Upload] = field(default_factory=dict)

    def __str__(self) -> str:
        return "memory://"

    def _entry(self, key: str) -> Entry:
        try:
            return self.storage[key]
        except KeyError:
            raise ObjectNotFound(key) from None

    def _upload(self, upload_id: str) -> Upload:
        try:
            return self.uploads[upload_id]
        except KeyError:
            raise ObjectNotFound(upload_id) from None

    def _matching(self, prefix: str, marker: str) -> list[str]:
        return sorted(key for key in self.storage if key.startswith(prefix) and key > marker)

    async def create(self) -> None:
        pass

    async def head(self, key: str) -> File:
        return self._entry(key).describe(key)

    async def get(self, key: str, off: int = 0, limit: int = -1) -> bytes:
        data = self._entry(key).body
        if limit < 0:
            return data[off:]
        return data[off : off + limit]

    async def put(self, key: str, body: bytes) -> None:
        self.storage[key] = Entry(body=body)

    async def delete(self, key: str) -> None:
        self.storage.pop(key, None)

    async def list(self, prefix: str, marker: str, limit: int) -> list[Object]:
        keys = self._matching(prefix, marker)[:limit]
        return [self.storage[key].describe(key) for key in keys]

    @asynccontextmanager
    async def list_all(self, prefix: str, marker: str) -> AsyncIterator[MemoryObjectReceiveStream[Object | None]]:
        keys = self._matching(prefix, marker)
        async with listing_stream(partial(self._produce, keys)) as receive:
            yield receive

    async def _produce(self, keys: list[str], send: MemoryObjectSendStream[Object | None]) -> None:
        async with send:
            for key in keys:
                # skip keys deleted while the listing is in flight
                entry = self.storage.get(key)
                if entry is not None:
                    await send.send(entry.describe(key))

    async def chmod(self, path: str, mode: int) -> None:
        self._entry(path).mode = mode

    async def chown(self, path: str, owner: str, group: str) -> None:
        entry = self._entry(path)
        entry.owner = owner
        entry.group = group

    async def create_multipart_upload(self, key: str) -> MultipartUpload:
        upload_id = uuid4().hex
        self.uploads[upload_id] = Upload(key=key)
        return MultipartUpload(min_part_size=5 << 20, max_count=10000, upload_id=upload_id)

    async def upload_part(self, key: str, upload_id: str, num: int, body: bytes) -> Part:
        upload = self._upload(upload_id)
        if upload.key != key:
            raise InvalidPart(f"upload {upload_id} belongs to {upload.key}, not {key}")
        upload.parts[num] = body
        return Part(num=num, size=len(body), etag=md5(body).hexdigest())

    async def abort_upload(self, key: str, upload_id: str) -> None:
        self.uploads.pop(upload_id, None)

    async def complete_upload(self, key: str, upload_id: str, parts: list[Part]) -> None:
        upload = self._upload(upload_id)
        if upload.key != key:
            raise InvalidPart(f"upload {upload_id} belongs to {upload.key}, not {key}")
        chunks = []
        for part in parts:
            body = upload.parts.get(part.num)
            if body is None or md5(body).hexdigest() != part.etag:
                raise InvalidPart(f"part {part.num} of upload {upload_id} is missing or changed")
            chunks.append(body)
        self.storage[key] = Entry(body=b"".join(chunks))
        del self.uploads[upload_id]

    async def list_uploads(self, marker: str) -> tuple[list[PendingPart], str]:
        pending = sorted(
            (PendingPart(key=upload.key, upload_id=upload_id, created=upload.created)
             for upload_id, upload in self.uploads.items()
             if upload.key > marker),
            key=lambda p: (p.key, p.upload_id),
        )
        # the marker is a key, so a page never ends between uploads of the same key
        end = UPLOADS_PAGE_SIZE
        while 0 < end < len(pending) and pending[end].key == pending[end - 1].key:
            end += 1
        page = pending[:end]
        next_marker = page[-1].key if end < len(pending) else ""
        return page, next_marker
