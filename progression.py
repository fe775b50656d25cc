# progression.py
from enum import IntEnum
import logging

logger = logging.getLogger(__name__)

class ChunkStage(IntEnum):
    """Position of a chunk in the ramp-up sequence, passed to the consumer"""
    FIRST_SMALL = 0    # First chunk for a new spectrum
    OTHER_SMALL = 1    # Remaining low-latency preview chunks
    FIRST_VOLUME = 2   # Large chunks used to calibrate playback volume
    OTHER_VOLUME = 3
    LAST_VOLUME = 4
    LARGE_NOCLIP = 5   # Remaining large chunks, must not clip

class ChunkProgression:
    """Chunk size and pacing schedule after a spectrum change.

    A few small chunks come first so the new sound starts quickly, followed
    by large chunks that give better frequency resolution. The first large
    chunks are used by the consumer to calibrate volume.
    """

    def __init__(self, small_chunks: int = 4, large_chunks: int = 20,
                 volume_chunks: int = 4, small_chunk_size: int = 8192,
                 large_chunk_size: int = 65536):
        if volume_chunks < 1 or volume_chunks > large_chunks:
            raise ValueError("volume_chunks must be between 1 and large_chunks")
        self.small_chunks = small_chunks
        self.large_chunks = large_chunks
        self.volume_chunks = volume_chunks
        self.small_chunk_size = small_chunk_size
        self.large_chunk_size = large_chunk_size
        self.total_chunks = small_chunks + large_chunks
        self._chunk_number = 0

    def reset(self):
        self._chunk_number = 0

    def advance(self):
        self._chunk_number += 1

    @property
    def chunk_number(self) -> int:
        return self._chunk_number

    @property
    def done(self) -> bool:
        return self._chunk_number >= self.total_chunks

    @property
    def percent(self) -> int:
        return min(100, self._chunk_number * 100 // self.total_chunks)

    @property
    def chunk_size(self) -> int:
        if self._chunk_number < self.small_chunks:
            return self.small_chunk_size
        return self.large_chunk_size

    @property
    def stage(self) -> ChunkStage:
        n = self._chunk_number
        if n < self.small_chunks:
            return ChunkStage.FIRST_SMALL if n == 0 else ChunkStage.OTHER_SMALL
        n -= self.small_chunks
        if n < self.volume_chunks:
            if n == self.volume_chunks - 1:
                return ChunkStage.LAST_VOLUME
            return ChunkStage.FIRST_VOLUME if n == 0 else ChunkStage.OTHER_VOLUME
        return ChunkStage.LARGE_NOCLIP

    def sleep_target_ms(self, sample_rate: int) -> int:
        """How long the generator may idle before producing the next chunk"""
        # Small chunks are made as fast as possible
        if self._chunk_number < self.small_chunks:
            return 0
        chunk_ms = 1000 * self.large_chunk_size // sample_rate
        # The first couple of large chunks should be ready when the previous
        # one is ~75% through playback
        if self._chunk_number < self.small_chunks + 2:
            return chunk_ms * 3 // 4
        return chunk_ms
