import base64
from dataclasses import asdict, dataclass
from email.utils import format_datetime
from hashlib import md5
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Header, Query, Request, Response
from fastapi.responses import JSONResponse

from chunkstore.depends import Injected, bind
from chunkstore.storage import NotSupported, ObjectNotFound, ObjectStorage

router = APIRouter()


def make_app(storage: ObjectStorage) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.add_exception_handler(ObjectNotFound, object_not_found)
    app.add_exception_handler(NotSupported, not_supported)
    bind(app, ObjectStorage, storage)
    return app


async def object_not_found(request: Request, exc: Any) -> Response:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def not_supported(request: Request, exc: Any) -> Response:
    return JSONResponse(status_code=501, content={"detail": str(exc)})


@router.get("/health")
async def health() -> Response:
    return Response(status_code=200)


@dataclass
class Md5Digest:
    etag: str
    content_md5: str


def get_md5_digests(data: bytes) -> Md5Digest:
    hash = md5(data)
    etag = hash.hexdigest()
    content_md5 = base64.b64encode(hash.digest()).decode()
    return Md5Digest(etag=etag, content_md5=content_md5)


@dataclass
class Range:
    start: int
    end: int | None

    def __bool__(self) -> bool:
        return self.start > 0 or self.end is not None

    @property
    def limit(self) -> int:
        # -1 reads up to the end of the object
        return -1 if self.end is None else self.end - self.start + 1


def range_from_header(range: Annotated[str | None, Header()] = None) -> Range:
    if range is None:
        return Range(start=0, end=None)
    if not range.startswith("bytes="):
        raise HTTPException(status_code=400, detail="Invalid range header")
    start, _, end = range[6:].partition("-")
    try:
        parsed = Range(start=int(start or "0"), end=int(end) if end else None)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid range header") from None
    if parsed.end is not None and parsed.end < parsed.start:
        raise HTTPException(status_code=416, detail="Unsatisfiable range")
    return parsed


@router.put("/api/objects/{key:path}")
async def upload_object(
    key: str,
    request: Request,
    storage: Injected[ObjectStorage],
) -> Response:
    body = await request.body()
    digests = get_md5_digests(body)
    content_md5 = request.headers.get("Content-MD5")
    if content_md5 and digests.content_md5 != content_md5:
        return Response(status_code=400, content="MD5 mismatch")
    await storage.put(key, body)
    return Response(status_code=200, headers={"ETag": digests.etag})


@router.get("/api/objects/{key:path}")
async def download_object(
    key: str,
    storage: Injected[ObjectStorage],
    range: Annotated[Range, Depends(range_from_header)],
) -> Response:
    if range:
        obj = await storage.head(key)
        if range.start >= obj.size:
            return Response(status_code=416, headers={"Content-Range": f"bytes */{obj.size}"})
        data = await storage.get(key, range.start, range.limit)
        end = range.start + len(data) - 1
        return Response(
            status_code=206,
            content=data,
            headers={"Content-Range": f"bytes {range.start}-{end}/{obj.size}", "Content-Length": str(len(data))},
        )
    data = await storage.get(key)
    return Response(content=data, headers={"ETag": get_md5_digests(data).etag, "Content-Length": str(len(data))})


@router.head("/api/objects/{key:path}")
async def head_object(key: str, storage: Injected[ObjectStorage]) -> Response:
    obj = await storage.head(key)
    return Response(
        headers={
            "Content-Length": str(obj.size),
            "Last-Modified": format_datetime(obj.mtime, usegmt=True),
            "Accept-Ranges": "bytes",
        }
    )


@router.delete("/api/objects/{key:path}")
async def delete_object(key: str, storage: Injected[ObjectStorage]) -> Response:
    await storage.delete(key)
    return Response(status_code=204)


@router.get("/api/list")
async def list_objects(
    storage: Injected[ObjectStorage],
    prefix: Annotated[str, Query()] = "",
    marker: Annotated[str, Query()] = "",
    limit: Annotated[int, Query(gt=0, le=10000)] = 1000,
) -> list[dict[str, Any]]:
    objects = await storage.list(prefix, marker, limit)
    return [{**asdict(obj), "mtime": obj.mtime.isoformat()} for obj in objects]
