from __future__ import annotations

import pytest

from streamverse_ingest.domain.blocks import (
    MAX_BLOCK_ORDINAL,
    Block,
    decode_block_id,
    encode_block_id,
    ordered_block_ids,
)
from streamverse_ingest.domain.errors import (
    BlockOrderError,
    CommitError,
    TransferValidationError,
)


def test_block_ids_are_fixed_width_and_sort_like_their_ordinals() -> None:
    ordinals = [100, 0, 9, 10, 2, 99_999]
    block_ids = [encode_block_id(ordinal) for ordinal in ordinals]

    assert encode_block_id(0) == "blk-00000000"
    assert encode_block_id(12) == "blk-00000012"
    assert len({len(block_id) for block_id in block_ids}) == 1
    assert sorted(block_ids) == [encode_block_id(ordinal) for ordinal in sorted(ordinals)]


def test_decode_recovers_ordinal() -> None:
    assert decode_block_id(encode_block_id(0)) == 0
    assert decode_block_id(encode_block_id(4_096)) == 4_096
    assert decode_block_id(encode_block_id(MAX_BLOCK_ORDINAL)) == MAX_BLOCK_ORDINAL


@pytest.mark.parametrize("ordinal", [-1, MAX_BLOCK_ORDINAL + 1])
def test_encode_rejects_out_of_range_ordinals(ordinal: int) -> None:
    with pytest.raises(TransferValidationError):
        encode_block_id(ordinal)


@pytest.mark.parametrize("block_id", ["blk-1", "abc-00000001", "blk-0000000a", "blk-000000001", ""])
def test_decode_rejects_malformed_ids(block_id: str) -> None:
    with pytest.raises(TransferValidationError):
        decode_block_id(block_id)


def test_ordered_block_ids_follow_ordinals_not_insertion_order() -> None:
    staged = {2: encode_block_id(2), 0: encode_block_id(0), 1: encode_block_id(1)}

    assert ordered_block_ids(staged) == [
        "blk-00000000",
        "blk-00000001",
        "blk-00000002",
    ]


def test_ordered_block_ids_of_nothing_is_empty() -> None:
    assert ordered_block_ids({}) == []


def test_ordered_block_ids_reject_gaps() -> None:
    with pytest.raises(BlockOrderError, match=r"missing ordinals \[1\]"):
        ordered_block_ids({0: encode_block_id(0), 2: encode_block_id(2)})


def test_ordered_block_ids_reject_mismatched_ids() -> None:
    with pytest.raises(BlockOrderError):
        ordered_block_ids({0: encode_block_id(1)})


def test_block_order_error_is_a_commit_error() -> None:
    assert issubclass(BlockOrderError, CommitError)


def test_block_exposes_id_and_size() -> None:
    block = Block(ordinal=3, data=b"abcd")

    assert block.block_id == "blk-00000003"
    assert block.size == 4
