"""Block identifiers and block-list ordering."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from streamverse_ingest.domain.errors import BlockOrderError, TransferValidationError

BLOCK_ID_PREFIX = "blk-"
BLOCK_ID_DIGITS = 8
MAX_BLOCK_ORDINAL = 10**BLOCK_ID_DIGITS - 1


def encode_block_id(ordinal: int) -> str:
    """Return the fixed-width, lexicographically sortable id for an ordinal."""

    if ordinal < 0 or ordinal > MAX_BLOCK_ORDINAL:
        raise TransferValidationError(
            f"Block ordinal {ordinal} is outside 0..{MAX_BLOCK_ORDINAL}."
        )
    return f"{BLOCK_ID_PREFIX}{ordinal:0{BLOCK_ID_DIGITS}d}"


def decode_block_id(block_id: str) -> int:
    """Recover the ordinal embedded in a block id."""

    digits = block_id[len(BLOCK_ID_PREFIX) :]
    if (
        not block_id.startswith(BLOCK_ID_PREFIX)
        or len(digits) != BLOCK_ID_DIGITS
        or not digits.isdigit()
        or not digits.isascii()
    ):
        raise TransferValidationError(f"Malformed block id '{block_id}'.")
    return int(digits)


def ordered_block_ids(staged: Mapping[int, str]) -> list[str]:
    """Return block ids in ordinal order, rejecting gaps and mismatched ids.

    Commit order always comes from the ordinal, never from the order in which
    stage calls completed.
    """

    ordinals = sorted(staged)
    if ordinals != list(range(len(ordinals))):
        missing = sorted(set(range(ordinals[-1] + 1)) - set(ordinals)) if ordinals else []
        raise BlockOrderError(
            f"Staged blocks are not contiguous; missing ordinals {missing[:10]}."
        )

    block_ids: list[str] = []
    for ordinal in ordinals:
        block_id = staged[ordinal]
        if decode_block_id(block_id) != ordinal:
            raise BlockOrderError(
                f"Block id '{block_id}' does not encode ordinal {ordinal}."
            )
        block_ids.append(block_id)
    return block_ids


@dataclass(slots=True, frozen=True)
class Block:
    """One cut block waiting to be staged."""

    ordinal: int
    data: bytes

    @property
    def block_id(self) -> str:
        return encode_block_id(self.ordinal)

    @property
    def size(self) -> int:
        return len(self.data)


__all__ = [
    "BLOCK_ID_DIGITS",
    "BLOCK_ID_PREFIX",
    "Block",
    "MAX_BLOCK_ORDINAL",
    "decode_block_id",
    "encode_block_id",
    "ordered_block_ids",
]
