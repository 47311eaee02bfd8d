import anyio
import pytest

from chunkstore.storage import InvalidPart, ObjectNotFound, Part
from chunkstore.storage.memory import UPLOADS_PAGE_SIZE, InMemoryBackend


@pytest.mark.anyio
async def test_missing_object(fs: InMemoryBackend) -> None:
    with pytest.raises(ObjectNotFound):
        await fs.head("nope")
    with pytest.raises(ObjectNotFound):
        await fs.chmod("nope", 0o600)
    # deleting a missing key is not an error
    await fs.delete("nope")


@pytest.mark.anyio
async def test_list_orders_and_pages(fs: InMemoryBackend) -> None:
    for key in ["b/2", "a/1", "b/1", "b/3"]:
        await fs.put(key, b"x")
    assert [o.key for o in await fs.list("b/", "", 2)] == ["b/1", "b/2"]
    assert [o.key for o in await fs.list("b/", "b/2", 10)] == ["b/3"]
    assert [o.key for o in await fs.list("", "", 10)] == ["a/1", "b/1", "b/2", "b/3"]


@pytest.mark.anyio
async def test_list_all_streams_everything(fs: InMemoryBackend) -> None:
    for n in range(100):
        await fs.put(f"k/{n:03d}", b"x")
    async with fs.list_all("k/", "k/049") as receive:
        keys = [o.key async for o in receive if o is not None]
        with pytest.raises(anyio.EndOfStream):
            await receive.receive()
    assert keys == [f"k/{n:03d}" for n in range(50, 100)]


@pytest.mark.anyio
async def test_complete_upload_rejects_bad_parts(fs: InMemoryBackend) -> None:
    upload = await fs.create_multipart_upload("k")
    part = await fs.upload_part("k", upload.upload_id, 1, b"data")

    with pytest.raises(InvalidPart):
        await fs.complete_upload("k", upload.upload_id, [Part(num=2, size=4, etag=part.etag)])
    with pytest.raises(InvalidPart):
        await fs.complete_upload("k", upload.upload_id, [Part(num=1, size=4, etag="0" * 32)])
    with pytest.raises(InvalidPart):
        await fs.upload_part("other", upload.upload_id, 2, b"data")
    with pytest.raises(ObjectNotFound):
        await fs.complete_upload("k", "unknown", [part])

    await fs.complete_upload("k", upload.upload_id, [part])
    assert await fs.get("k") == b"data"


@pytest.mark.anyio
async def test_list_uploads_pages(fs: InMemoryBackend) -> None:
    for n in range(UPLOADS_PAGE_SIZE + 1):
        await fs.create_multipart_upload(f"k/{n:05d}")

    page, next_marker = await fs.list_uploads("")
    assert len(page) == UPLOADS_PAGE_SIZE
    assert next_marker == page[-1].key

    page, next_marker = await fs.list_uploads(next_marker)
    assert [p.key for p in page] == [f"k/{UPLOADS_PAGE_SIZE:05d}"]
    assert next_marker == ""


@pytest.mark.anyio
async def test_list_all_lets_errors_of_the_caller_through(fs: InMemoryBackend) -> None:
    await fs.put("k/1", b"x")
    with pytest.raises(ObjectNotFound):
        async with fs.list_all("k/", "") as receive:
            await receive.receive()
            await fs.head("k/2")


@pytest.mark.anyio
async def test_list_uploads_keeps_uploads_of_one_key_together(fs: InMemoryBackend) -> None:
    for n in range(UPLOADS_PAGE_SIZE - 1):
        await fs.create_multipart_upload(f"k/{n:05d}")
    for _ in range(3):
        await fs.create_multipart_upload("z")
    await fs.create_multipart_upload("zz")

    page, next_marker = await fs.list_uploads("")
    assert len(page) == UPLOADS_PAGE_SIZE + 2
    assert [p.key for p in page[-3:]] == ["z", "z", "z"]
    assert next_marker == "z"

    page, next_marker = await fs.list_uploads(next_marker)
    assert [p.key for p in page] == ["zz"]
    assert next_marker == ""
    assert len(fs.uploads) == UPLOADS_PAGE_SIZE + 3
