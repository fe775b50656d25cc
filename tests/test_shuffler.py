"""Playback pool: volume calibration, clip rejection, crossfaded reads."""

import numpy as np
import pytest

from progression import ChunkStage
from shuffler import SampleShuffler

FADE = 100
LENGTH = 1000


def constant(value, length=LENGTH):
    return np.full(length, value, dtype=np.float32)


def peaked(peak, length=LENGTH, seed=0):
    noise = np.random.default_rng(seed).uniform(-1.0, 1.0, length)
    return (noise / np.max(np.abs(noise)) * peak).astype(np.float32)


@pytest.fixture
def shuffler():
    return SampleShuffler(crossfade_samples=FADE, headroom=0.9, max_chunks=3,
                          rng=np.random.default_rng(5))


def test_empty_pool_reads_silence(shuffler):
    out = shuffler.read(512)
    assert out.shape == (512,)
    assert out.dtype == np.float32
    assert np.all(out == 0.0)


def test_first_small_sets_gain_from_peak(shuffler):
    assert shuffler.handle_chunk(peaked(0.5), ChunkStage.FIRST_SMALL)
    assert shuffler.gain == pytest.approx(1.8)
    assert shuffler.pool_size == 1


def test_other_small_lowers_gain_to_avoid_clipping(shuffler):
    shuffler.handle_chunk(peaked(0.5), ChunkStage.FIRST_SMALL)
    shuffler.handle_chunk(peaked(0.25, seed=1), ChunkStage.OTHER_SMALL)
    assert shuffler.gain == pytest.approx(1.8)
    shuffler.handle_chunk(peaked(1.0, seed=2), ChunkStage.OTHER_SMALL)
    assert shuffler.gain == pytest.approx(0.9)
    assert shuffler.pool_size == 3


def test_volume_chunks_replace_pool_on_last(shuffler):
    shuffler.handle_chunk(peaked(0.5), ChunkStage.FIRST_SMALL)
    shuffler.handle_chunk(peaked(0.5, seed=1), ChunkStage.OTHER_SMALL)

    assert shuffler.handle_chunk(peaked(0.2, seed=2), ChunkStage.FIRST_VOLUME)
    # Small chunks keep playing until calibration is complete
    assert shuffler.pool_size == 2
    assert shuffler.gain == pytest.approx(1.8)

    assert shuffler.handle_chunk(peaked(0.3, seed=3), ChunkStage.LAST_VOLUME)
    assert shuffler.pool_size == 2
    assert shuffler.gain == pytest.approx(3.0)


def calibrated(shuffler, peak=0.3):
    shuffler.handle_chunk(peaked(0.5), ChunkStage.FIRST_SMALL)
    shuffler.handle_chunk(peaked(peak, seed=1), ChunkStage.LAST_VOLUME)
    return shuffler


def test_large_chunk_that_would_clip_is_rejected(shuffler):
    calibrated(shuffler)
    assert not shuffler.handle_chunk(peaked(0.4, seed=4), ChunkStage.LARGE_NOCLIP)
    assert shuffler.pool_size == 1
    assert shuffler.handle_chunk(peaked(0.3, seed=5), ChunkStage.LARGE_NOCLIP)
    assert shuffler.pool_size == 2
    assert shuffler.gain == pytest.approx(3.0)


def test_pool_is_bounded(shuffler):
    calibrated(shuffler)
    chunks = [peaked(0.2, seed=10 + i) for i in range(4)]
    for chunk in chunks:
        assert shuffler.handle_chunk(chunk, ChunkStage.LARGE_NOCLIP)
    assert shuffler.pool_size == 3
    # Oldest entries were overwritten by the newest chunks
    pool = shuffler._pool
    assert any(np.array_equal(c, chunks[-1]) for c in pool)
    assert any(np.array_equal(c, chunks[-2]) for c in pool)


def test_chunk_shorter_than_crossfade_still_plays():
    shuffler = SampleShuffler(crossfade_samples=10000, rng=np.random.default_rng(5))
    first = peaked(0.5, length=8192)
    assert shuffler.handle_chunk(first, ChunkStage.FIRST_SMALL)
    assert shuffler.handle_chunk(peaked(0.5, length=8192, seed=1), ChunkStage.OTHER_SMALL)
    assert shuffler.pool_size == 2

    out = shuffler.read(20000)
    assert len(out) == 20000
    assert np.max(np.abs(out)) <= 1.0
    # Fade is clamped to half the chunk, so the opening half plays as-is
    np.testing.assert_allclose(out[:4096], first[:4096] * shuffler.gain, rtol=1e-5)
    assert np.count_nonzero(out == 0.0) < 10


def test_empty_chunk_is_ignored(shuffler):
    assert shuffler.handle_chunk(np.zeros(0, dtype=np.float32), ChunkStage.FIRST_SMALL)
    assert shuffler.pool_size == 0
    assert np.all(shuffler.read(64) == 0.0)


def test_crossfade_must_be_positive():
    with pytest.raises(ValueError):
        SampleShuffler(crossfade_samples=0)


def test_silent_chunks_play_silence(shuffler):
    shuffler.handle_chunk(constant(0.0), ChunkStage.FIRST_SMALL)
    assert shuffler.gain == 0.0
    assert np.all(shuffler.read(3000) == 0.0)


def test_constant_chunk_plays_at_headroom(shuffler):
    shuffler.handle_chunk(constant(1.0), ChunkStage.FIRST_SMALL)
    out = shuffler.read(LENGTH - FADE)
    np.testing.assert_allclose(out, 0.9, rtol=1e-6)


def test_volume_scales_output(shuffler):
    shuffler.set_volume(0.5)
    shuffler.handle_chunk(constant(1.0), ChunkStage.FIRST_SMALL)
    np.testing.assert_allclose(shuffler.read(500), 0.45, rtol=1e-6)


def test_output_never_exceeds_full_scale(shuffler):
    shuffler.set_volume(2.0)
    shuffler.handle_chunk(peaked(0.8), ChunkStage.FIRST_SMALL)
    shuffler.handle_chunk(peaked(0.8, seed=1), ChunkStage.OTHER_SMALL)
    shuffler.handle_chunk(peaked(0.8, seed=2), ChunkStage.OTHER_SMALL)
    out = shuffler.read(20000)
    assert np.max(np.abs(out)) <= 1.0
    assert np.any(out != 0.0)


def test_reads_run_past_chunk_boundaries(shuffler):
    shuffler.handle_chunk(peaked(0.5), ChunkStage.FIRST_SMALL)
    shuffler.handle_chunk(peaked(0.5, seed=1), ChunkStage.OTHER_SMALL)
    out = np.concatenate([shuffler.read(700) for _ in range(10)])
    assert len(out) == 7000
    # No gaps of silence at chunk joins
    assert np.count_nonzero(out == 0.0) < 10


def test_new_spectrum_fades_in_immediately(shuffler):
    shuffler.handle_chunk(constant(1.0), ChunkStage.FIRST_SMALL)
    before = shuffler.read(500)
    np.testing.assert_allclose(before, 0.9, rtol=1e-6)

    shuffler.handle_chunk(constant(-1.0), ChunkStage.FIRST_SMALL)
    after = shuffler.read(500)
    # Crossfade from the old chunk, then the new chunk only
    assert after[0] > 0.0
    np.testing.assert_allclose(after[150:], -0.9, rtol=1e-6)


def test_clear_empties_pool(shuffler):
    shuffler.handle_chunk(constant(1.0), ChunkStage.FIRST_SMALL)
    shuffler.read(100)
    shuffler.clear()
    assert shuffler.pool_size == 0
    assert shuffler.gain == 0.0
    assert np.all(shuffler.read(256) == 0.0)
