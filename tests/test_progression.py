"""Chunk progression schedule."""

import pytest

from progression import ChunkProgression, ChunkStage


def run_schedule(state):
    """Collect (chunk_size, stage, percent) until done."""
    steps = []
    while not state.done:
        steps.append((state.chunk_size, state.stage, state.percent))
        state.advance()
    return steps


def test_default_schedule():
    state = ChunkProgression()
    steps = run_schedule(state)
    assert len(steps) == 24
    sizes = [size for size, _, _ in steps]
    assert sizes[:4] == [8192] * 4
    assert sizes[4:] == [65536] * 20

    stages = [stage for _, stage, _ in steps]
    assert stages[0] == ChunkStage.FIRST_SMALL
    assert stages[1:4] == [ChunkStage.OTHER_SMALL] * 3
    assert stages[4] == ChunkStage.FIRST_VOLUME
    assert stages[5:7] == [ChunkStage.OTHER_VOLUME] * 2
    assert stages[7] == ChunkStage.LAST_VOLUME
    assert stages[8:] == [ChunkStage.LARGE_NOCLIP] * 16


def test_percent_increases_to_100():
    state = ChunkProgression()
    percents = [percent for _, _, percent in run_schedule(state)]
    assert percents[0] == 0
    assert percents == sorted(percents)
    assert state.percent == 100


def test_reset_returns_to_first_small_chunk():
    state = ChunkProgression()
    for _ in range(10):
        state.advance()
    state.reset()
    assert state.chunk_number == 0
    assert state.stage == ChunkStage.FIRST_SMALL
    assert state.chunk_size == 8192
    assert state.percent == 0
    assert not state.done


def test_sleep_targets():
    state = ChunkProgression()
    sample_rate = 44100
    chunk_ms = 1000 * 65536 // sample_rate
    assert state.sleep_target_ms(sample_rate) == 0
    for _ in range(4):
        state.advance()
    assert state.sleep_target_ms(sample_rate) == chunk_ms * 3 // 4
    state.advance()
    assert state.sleep_target_ms(sample_rate) == chunk_ms * 3 // 4
    state.advance()
    assert state.sleep_target_ms(sample_rate) == chunk_ms


def test_single_volume_chunk():
    state = ChunkProgression(small_chunks=1, large_chunks=2, volume_chunks=1)
    stages = [stage for _, stage, _ in run_schedule(state)]
    assert stages == [ChunkStage.FIRST_SMALL, ChunkStage.LAST_VOLUME, ChunkStage.LARGE_NOCLIP]


def test_invalid_volume_chunks():
    with pytest.raises(ValueError):
        ChunkProgression(large_chunks=2, volume_chunks=3)
