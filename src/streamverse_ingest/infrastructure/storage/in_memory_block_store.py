"""In-memory block store for local development and tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from streamverse_ingest.domain.errors import CommitError, ObjectNotFoundError
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.domain.ports import BlockStore


class InMemoryBlockStore(BlockStore):
    """Keep staged blocks and committed objects in process memory."""

    def __init__(self, *, min_block_bytes: int = 1) -> None:
        self._staged: dict[tuple[str, str, str], bytes] = {}
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = asyncio.Lock()
        self._min_block_bytes = max(1, min_block_bytes)
        self.container_ready = False

    @property
    def min_block_bytes(self) -> int:
        return self._min_block_bytes

    async def ensure_container(self) -> None:
        self.container_ready = True

    async def stage_block(
        self,
        object_name: str,
        block_id: str,
        data: bytes,
        *,
        staging_id: str,
    ) -> None:
        async with self._lock:
            self._staged[(object_name, staging_id, block_id)] = bytes(data)

    async def commit(
        self,
        object_name: str,
        block_ids: Sequence[str],
        content_type: str,
        *,
        staging_id: str,
    ) -> None:
        async with self._lock:
            keys = [(object_name, staging_id, block_id) for block_id in block_ids]
            missing = [key[2] for key in keys if key not in self._staged]
            if missing:
                raise CommitError(
                    f"Cannot commit '{object_name}': blocks never staged: {missing[:5]}."
                )
            payload = b"".join(self._staged.pop(key) for key in keys)
            self._objects[object_name] = (payload, content_type)

    async def discard_blocks(
        self,
        object_name: str,
        block_ids: Sequence[str],
        *,
        staging_id: str,
    ) -> None:
        async with self._lock:
            for block_id in block_ids:
                self._staged.pop((object_name, staging_id, block_id), None)

    async def exists(self, object_name: str) -> ObjectInfo | None:
        stored = self._objects.get(object_name)
        if stored is None:
            return None
        payload, content_type = stored
        return ObjectInfo(name=object_name, size=len(payload), content_type=content_type)

    async def read_range(self, object_name: str, start: int, end: int) -> bytes:
        stored = self._objects.get(object_name)
        if stored is None:
            raise ObjectNotFoundError(f"Object '{object_name}' not found.")
        payload, _ = stored
        return payload[start : end + 1]

    def staged_block_ids(self, object_name: str) -> list[str]:
        """Return ids of blocks staged for `object_name` but not yet committed."""

        return sorted(block_id for name, _, block_id in self._staged if name == object_name)


__all__ = ["InMemoryBlockStore"]
