from __future__ import annotations

import logging
from dataclasses import dataclass, field

from chunkstore.meta import Meta

MAX_CHUNK_ID = 2**64 - 1


def parse_chunk_id(text: str) -> int:
    """Parse an unsigned 64-bit chunk id.

    Malformed text gives 0 and values beyond the 64-bit range saturate at
    MAX_CHUNK_ID.
    """
    if not (text.isascii() and text.isdigit()):
        return 0
    value = int(text)
    return min(value, MAX_CHUNK_ID)


def translate(key: str, prefix: str) -> str:
    return prefix + key


def untranslate(key: str, prefix: str) -> str:
    return key[len(prefix) :]


@dataclass
class OwnerKeyTranslator:
    """Maps logical chunk keys onto per-owner physical keys.

    A chunk key looks like ``chunks/0/0/1_0_4194304``: the last path segment is
    ``<chunk id>_<part index>_<size>``. The owner of the chunk id becomes the
    first path segment of the physical key. Keys of any other shape live in the
    global partition and are left untouched.
    """

    meta: Meta
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    async def resolve_prefix(self, key: str) -> str:
        parts = key.split("/")
        if len(parts) < 2:
            self.logger.error("Unknown chunk key path format: %s", key)
            return ""
        fields = parts[-1].split("_")
        if len(fields) != 3:
            self.logger.error("Unknown chunk key id format: %s", key)
            return ""
        owner = await self.meta.get_chunk_owner(parse_chunk_id(fields[0]))
        return owner + "/"

    async def translate(self, key: str) -> str:
        return translate(key, await self.resolve_prefix(key))
