import pytest

from chunkstore.meta.memory import MemoryOwnerMap
from chunkstore.storage.memory import InMemoryBackend


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fs() -> InMemoryBackend:
    """Fixture to provide the unwrapped in-memory storage."""
    return InMemoryBackend()


@pytest.fixture
def meta() -> MemoryOwnerMap:
    """Chunk 1 belongs to alice and chunk 2 to bob; everything else is unowned."""
    return MemoryOwnerMap(owners={1: "alice", 2: "bob"})
