from typing import Protocol


class Meta(Protocol):
    async def get_chunk_owner(self, chunk_id: int) -> str: ...
