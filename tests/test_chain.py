import pytest

from powchain.block import Block
from powchain.chain import Blockchain, ChainError


def _seal(block):
    block.hash = block.compute_hash()
    return block


def _next(prev, timestamp, difficulty=0, next_difficulty=0, data="data"):
    return _seal(
        Block(
            index=prev.index + 1,
            timestamp=timestamp,
            difficulty=difficulty,
            next_block_difficulty=next_difficulty,
            data=data,
            previous_hash=prev.hash,
        )
    )


def _chain(timestamps, dcb=3, target=20, difficulty=0):
    bc = Blockchain(dcb, target)
    genesis = _seal(
        Block(index=0, timestamp=timestamps[0], difficulty=difficulty,
              next_block_difficulty=difficulty, data="g")
    )
    bc.add_block_without_verification(genesis)
    prev = genesis
    for ts in timestamps[1:]:
        prev = _next(prev, ts, difficulty, difficulty)
        bc.add_block_without_verification(prev)
    return bc


def test_empty_chain_errors():
    bc = Blockchain(3, 20)
    assert len(bc) == 0
    with pytest.raises(ChainError, match="empty"):
        bc.latest_block()
    with pytest.raises(ChainError, match="empty"):
        bc.can_add_block(Block())
    with pytest.raises(ChainError, match="empty"):
        bc.validate()
    assert bc.should_recalculate_difficulty() is False
    with pytest.raises(ChainError):
        bc.calculate_new_difficulty()


def test_add_valid_block():
    bc = _chain([0])
    block = _next(bc.latest_block(), 5)
    bc.add_block(block)
    assert len(bc) == 2
    assert bc.latest_block() is block
    bc.validate()


def test_add_block_rejects_wrong_difficulty():
    bc = _chain([0])
    block = _next(bc.latest_block(), 5, difficulty=1)
    with pytest.raises(ChainError, match="difficulty 1 does not match expected 0"):
        bc.add_block(block)
    assert len(bc) == 1


def test_add_block_rejects_wrong_index():
    bc = _chain([0])
    block = _next(bc.latest_block(), 5)
    block.index = 5
    _seal(block)
    with pytest.raises(ChainError, match="not sequential"):
        bc.add_block(block)


def test_add_block_rejects_wrong_previous_hash():
    bc = _chain([0])
    block = _next(bc.latest_block(), 5)
    block.previous_hash = "other"
    _seal(block)
    with pytest.raises(ChainError, match="previous hash"):
        bc.add_block(block)


def test_add_block_rejects_bad_hash():
    bc = _chain([0])
    block = _next(bc.latest_block(), 5)
    block.hash = "tampered"
    with pytest.raises(ChainError, match="validation failed"):
        bc.add_block(block)


def test_has_and_get_block():
    bc = _chain([0, 10, 20])
    assert bc.has_block(0) and bc.has_block(2)
    assert not bc.has_block(3) and not bc.has_block(-1)
    assert bc.get_block(1).index == 1
    with pytest.raises(ChainError, match="out of range"):
        bc.get_block(3)
    with pytest.raises(ChainError):
        bc.get_block(-1)


def test_validate_detects_broken_link():
    bc = _chain([0, 10])
    orphan = _seal(Block(index=2, timestamp=20, previous_hash="nope"))
    bc.add_block_without_verification(orphan)
    with pytest.raises(ChainError, match="integrity broken at block #2"):
        bc.validate()


def test_validate_detects_tampered_block():
    bc = _chain([0, 10, 20])
    bc.get_block(1).data = "changed"
    with pytest.raises(ChainError, match="block #1 is invalid"):
        bc.validate()


def test_average_mining_time():
    bc = _chain([0, 10, 20, 30])
    assert bc.average_mining_time(0, 3) == 10
    assert bc.average_mining_time(1, 2) == 10


def test_average_mining_time_invalid_ranges():
    bc = _chain([0, 10, 20])
    for start, stop in [(-1, 2), (0, 3), (2, 2), (2, 1)]:
        with pytest.raises(ChainError, match="invalid block range"):
            bc.average_mining_time(start, stop)


def test_should_recalculate_difficulty():
    assert not _chain([0]).should_recalculate_difficulty()
    assert not _chain([0, 1, 2]).should_recalculate_difficulty()
    assert _chain([0, 1, 2, 3]).should_recalculate_difficulty()


def test_difficulty_increases_when_fast():
    bc = _chain([0, 10, 20, 30], difficulty=2)
    assert bc.calculate_new_difficulty() == 3


def test_difficulty_decreases_when_slow():
    bc = _chain([0, 30, 60, 90], difficulty=2)
    assert bc.calculate_new_difficulty() == 1


def test_difficulty_never_below_zero():
    bc = _chain([0, 30, 60, 90], difficulty=0)
    assert bc.calculate_new_difficulty() == 0


def test_difficulty_unchanged_near_target():
    bc = _chain([0, 20, 40, 60], difficulty=2)
    assert bc.calculate_new_difficulty() == 2


def test_calculate_new_difficulty_needs_two_blocks():
    bc = _chain([0])
    with pytest.raises(ChainError, match="average mining time"):
        bc.calculate_new_difficulty()


def test_get_blocks_returns_copy():
    bc = _chain([0, 10, 20, 30])
    blocks = bc.get_blocks(1, 2)
    assert [b.index for b in blocks] == [1, 2]
    blocks.clear()
    assert len(bc) == 4
    with pytest.raises(ChainError, match="invalid block range"):
        bc.get_blocks(2, 1)
    with pytest.raises(ChainError):
        bc.get_blocks(0, 4)


def test_replace_chain():
    source = _chain([0, 10, 20])
    target = Blockchain(3, 20)
    new_blocks = source.get_blocks(0, 2)
    target.replace_chain(new_blocks)
    new_blocks.pop()
    assert len(target) == 3
    assert target.latest_block().index == 2


def test_str():
    assert str(_chain([0, 10])) == "Blockchain with 2 blocks"


def test_create_genesis_block():
    bc = Blockchain(50, 20)
    genesis = bc.create_genesis_block()
    assert len(bc) == 1
    assert bc.latest_block() is genesis
    assert genesis.hash.startswith("00")
    assert genesis.data == "Genesis Block"
    assert genesis.previous_hash == ""
    genesis.validate()