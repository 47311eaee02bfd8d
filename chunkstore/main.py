import logging
from contextlib import AsyncExitStack

import anyio

from chunkstore.api import make_app
from chunkstore.config import Settings
from chunkstore.meta import Meta
from chunkstore.meta.memory import MemoryOwnerMap
from chunkstore.storage import FileSystem, ObjectStorage
from chunkstore.storage.owner import WithOwnerPrefix


def configure_logging(level: str) -> logging.Logger:
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s [%(name)s]: %(message)s")
    # keep chatty libraries quiet
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return logging.getLogger("chunkstore")


async def open_storage(
    settings: Settings, stack: AsyncExitStack
) -> tuple[ObjectStorage, FileSystem | None]:
    """Return the backend and, when it manages file permissions, the same backend as FileSystem."""
    if settings.storage == "s3":
        if not (settings.s3_bucket and settings.s3_access_key_id and settings.s3_access_key_secret):
            raise ValueError("s3 storage needs a bucket, an access key id and an access key secret")
        from chunkstore.storage.s3 import S3Storage

        s3 = await stack.enter_async_context(
            S3Storage.connect(
                bucket=settings.s3_bucket,
                access_key_id=settings.s3_access_key_id,
                access_key_secret=settings.s3_access_key_secret,
                region=settings.s3_region,
                endpoint=settings.s3_endpoint,
            )
        )
        return s3, None
    from chunkstore.storage.memory import InMemoryBackend

    memory = InMemoryBackend()
    return memory, memory


async def open_meta(settings: Settings, stack: AsyncExitStack) -> Meta:
    if settings.redis_dsn:
        from chunkstore.meta.redis import RedisOwnerMap

        return await stack.enter_async_context(RedisOwnerMap.connect(settings.redis_dsn, settings.default_owner))
    return MemoryOwnerMap(default=settings.default_owner)


async def main() -> None:
    import uvicorn

    settings = Settings()  # type: ignore
    logger = configure_logging(settings.log_level)

    async with AsyncExitStack() as stack:
        backend, permissions = await open_storage(settings, stack)
        meta = await open_meta(settings, stack)
        storage = WithOwnerPrefix(
            backend, meta, permissions=permissions, logger=logging.getLogger("chunkstore.storage")
        )
        await storage.create()
        logger.info("serving %s on %s:%d", storage, settings.host, settings.port)

        app = make_app(storage)
        config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
        server = uvicorn.Server(config)
        await server.serve()


def run() -> None:
    anyio.run(main)


if __name__ == "__main__":
    run()
