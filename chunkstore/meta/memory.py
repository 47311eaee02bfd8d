from dataclasses import dataclass, field

from chunkstore.meta import Meta


@dataclass
class MemoryOwnerMap(Meta):
    owners: dict[int, str] = field(default_factory=dict)
    default: str = ""

    async def get_chunk_owner(self, chunk_id: int) -> str:
        return self.owners.get(chunk_id, self.default)

    async def set_chunk_owner(self, chunk_id: int, owner: str) -> None:
        self.owners[chunk_id] = owner
