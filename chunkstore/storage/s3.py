from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from functools import partial

from aioaws.s3 import S3Client, S3Config, S3File
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from httpx import AsyncClient

from chunkstore.storage import (
    MultipartUpload,
    NotSupported,
    Object,
    ObjectNotFound,
    ObjectStorage,
    Part,
    PendingPart,
    listing_stream,
)

logger = logging.getLogger(__name__)


def _describe(file: S3File) -> Object:
    return Object(key=file.key, size=file.size, mtime=file.last_modified)


@dataclass
class S3Storage(ObjectStorage):
    client: AsyncClient
    bucket: str
    access_key_id: str
    access_key_secret: str
    region: str
    endpoint: str | None

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        bucket: str,
        access_key_id: str,
        access_key_secret: str,
        region: str,
        endpoint: str | None = None,
    ) -> AsyncIterator[S3Storage]:
        async with AsyncClient() as client:
            yield cls(client, bucket, access_key_id, access_key_secret, region, endpoint)

    def __str__(self) -> str:
        return f"s3://{self.bucket}/"

    def _get_client(self) -> S3Client:
        return S3Client(
            self.client,
            S3Config(
                aws_access_key=self.access_key_id,
                aws_secret_key=self.access_key_secret,
                aws_region=self.region,
                aws_s3_bucket=self.bucket,
                aws_host=self.endpoint,
            ),
        )

    async def create(self) -> None:
        logger.debug("bucket %s is expected to exist already", self.bucket)

    async def head(self, key: str) -> Object:
        url = self._get_client().signed_download_url(key, method="HEAD")
        response = await self.client.head(url)
        if response.status_code == 404:
            raise ObjectNotFound(key)
        response.raise_for_status()
        return Object(
            key=key,
            size=int(response.headers["Content-Length"]),
            mtime=parsedate_to_datetime(response.headers["Last-Modified"]),
        )

    async def get(self, key: str, off: int = 0, limit: int = -1) -> bytes:
        url = self._get_client().signed_download_url(key, method="GET")
        headers: dict[str, str] = {}
        if off > 0 or limit >= 0:
            end = str(off + limit - 1) if limit >= 0 else ""
            headers["Range"] = f"bytes={off}-{end}"
        response = await self.client.get(url, headers=headers)
        if response.status_code == 404:
            raise ObjectNotFound(key)
        response.raise_for_status()
        return response.content

    async def put(self, key: str, body: bytes) -> None:
        await self._get_client().upload(key, body)

    async def delete(self, key: str) -> None:
        await self._get_client().delete(key)

    async def list(self, prefix: str, marker: str, limit: int) -> list[Object]:
        objects: list[Object] = []
        async for file in self._get_client().list(prefix=prefix):
            if len(objects) >= limit:
                break
            if file.key > marker:
                objects.append(_describe(file))
        return objects

    @asynccontextmanager
    async def list_all(self, prefix: str, marker: str) -> AsyncIterator[MemoryObjectReceiveStream[Object | None]]:
        async with listing_stream(partial(self._produce, prefix, marker)) as receive:
            yield receive

    async def _produce(self, prefix: str, marker: str, send: MemoryObjectSendStream[Object | None]) -> None:
        async with send:
            async for file in self._get_client().list(prefix=prefix):
                if file.key > marker:
                    await send.send(_describe(file))

    async def create_multipart_upload(self, key: str) -> MultipartUpload:
        raise NotSupported("multipart uploads are not supported by the s3 backend")

    async def upload_part(self, key: str, upload_id: str, num: int, body: bytes) -> Part:
        raise NotSupported("multipart uploads are not supported by the s3 backend")

    async def abort_upload(self, key: str, upload_id: str) -> None:
        pass

    async def complete_upload(self, key: str, upload_id: str, parts: list[Part]) -> None:
        raise NotSupported("multipart uploads are not supported by the s3 backend")

    async def list_uploads(self, marker: str) -> tuple[list[PendingPart], str]:
        return [], ""
