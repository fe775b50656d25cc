# shuffler.py
import numpy as np
from typing import Optional, List
import threading
import logging

from generator import ChunkConsumer
from progression import ChunkStage

logger = logging.getLogger(__name__)

class SampleShuffler(ChunkConsumer):
    """Playback buffer fed by SampleGenerator and drained by the audio callback.

    Accepted chunks go into a pool. read() plays pool chunks in random order,
    crossfading from one to the next, so a finite set of chunks turns into
    endless noise. Volume is calibrated from the peaks of the volume-stage
    chunks; later chunks that would clip at that volume are dropped and the
    generator makes another one.
    """

    def __init__(self, crossfade_samples: int = 2048, headroom: float = 0.9,
                 max_chunks: int = 16, volume: float = 1.0,
                 rng: Optional[np.random.Generator] = None):
        if crossfade_samples < 1:
            raise ValueError("crossfade_samples must be at least 1")
        self.crossfade_samples = crossfade_samples
        self.headroom = headroom
        self.max_chunks = max_chunks
        self._volume = volume
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.Lock()

        self._pool: List[np.ndarray] = []
        self._staging: List[np.ndarray] = []
        self._staging_peak = 0.0
        self._gain = 0.0
        self._oldest = 0

        # Playback position
        self._current: Optional[np.ndarray] = None
        self._current_fade = 0
        self._pos = 0
        self._switch_pending = False

        self._fade_in, self._fade_out = self._fade_curves(crossfade_samples)

    @property
    def gain(self) -> float:
        return self._gain

    @property
    def pool_size(self) -> int:
        with self._lock:
            return len(self._pool)

    def set_volume(self, volume: float):
        self._volume = float(volume)

    def clear(self):
        with self._lock:
            self._pool = []
            self._staging = []
            self._staging_peak = 0.0
            self._gain = 0.0
            self._current = None
            self._current_fade = 0
            self._pos = 0
            self._switch_pending = False

    def _gain_for_peak(self, peak: float) -> float:
        return self.headroom / peak if peak > 0 else 0.0

    def handle_chunk(self, samples: np.ndarray, stage: ChunkStage) -> bool:
        samples = np.asarray(samples, dtype=np.float32)
        if not len(samples):
            logger.warning(f"Ignoring empty chunk at stage {stage.name}")
            return True
        peak = float(np.max(np.abs(samples)))

        with self._lock:
            if stage == ChunkStage.FIRST_SMALL:
                # New spectrum: forget everything and fade to it immediately
                self._pool = [samples]
                self._staging = []
                self._staging_peak = 0.0
                self._oldest = 0
                self._gain = self._gain_for_peak(peak)
                self._switch_pending = True
                logger.debug(f"New pool, gain {self._gain:.3f}")
                return True

            if stage == ChunkStage.OTHER_SMALL:
                # Keep preview chunks from clipping
                if peak * self._gain > 1.0:
                    self._gain = self._gain_for_peak(peak)
                self._pool.append(samples)
                return True

            if stage in (ChunkStage.FIRST_VOLUME, ChunkStage.OTHER_VOLUME, ChunkStage.LAST_VOLUME):
                if stage == ChunkStage.FIRST_VOLUME:
                    self._staging = []
                    self._staging_peak = 0.0
                self._staging.append(samples)
                self._staging_peak = max(self._staging_peak, peak)
                if stage == ChunkStage.LAST_VOLUME:
                    self._pool = self._staging
                    self._staging = []
                    self._oldest = 0
                    self._gain = self._gain_for_peak(self._staging_peak)
                    logger.debug(f"Promoted {len(self._pool)} large chunks, gain {self._gain:.3f}")
                return True

            # LARGE_NOCLIP
            if peak * self._gain > 1.0:
                return False
            if len(self._pool) < self.max_chunks:
                self._pool.append(samples)
            else:
                self._pool[self._oldest] = samples
                self._oldest = (self._oldest + 1) % self.max_chunks
            return True

    @staticmethod
    def _fade_curves(length: int):
        """Equal-power fade-in and fade-out curves of `length` samples"""
        t = (np.arange(length) + 0.5) / max(length, 1)
        return (np.sin(0.5 * np.pi * t).astype(np.float32),
                np.cos(0.5 * np.pi * t).astype(np.float32))

    def _fade_length(self, chunk: np.ndarray) -> int:
        # Short chunks fade over at most half their length
        return min(self.crossfade_samples, len(chunk) // 2)

    def _next_chunk(self) -> Optional[np.ndarray]:
        if not self._pool:
            return None
        return self._pool[self._rng.integers(len(self._pool))]

    def _start_chunk(self, chunk: np.ndarray):
        """Make chunk current, crossfading from whatever is playing now"""
        fade = self._fade_length(chunk)
        chunk = chunk.copy()
        if self._current is not None and fade:
            if fade == self.crossfade_samples:
                fade_in, fade_out = self._fade_in, self._fade_out
            else:
                fade_in, fade_out = self._fade_curves(fade)
            tail = self._current[self._pos:self._pos + fade]
            tail = np.pad(tail, (0, fade - len(tail)))
            chunk[:fade] = chunk[:fade] * fade_in + tail * fade_out
        self._current = chunk
        self._current_fade = fade
        self._pos = 0

    def read(self, frames: int) -> np.ndarray:
        """Next `frames` samples of playback, silence if nothing is pooled"""
        out = np.zeros(frames, dtype=np.float32)
        with self._lock:
            if self._switch_pending:
                self._switch_pending = False
                self._start_chunk(self._pool[0])

            filled = 0
            while filled < frames:
                if self._current is None:
                    chunk = self._next_chunk()
                    if chunk is None:
                        break
                    self._start_chunk(chunk)

                # Stop short of the end; the tail is used for the crossfade
                playable = len(self._current) - self._current_fade
                n = min(frames - filled, playable - self._pos)
                out[filled:filled + n] = self._current[self._pos:self._pos + n]
                filled += n
                self._pos += n
                if self._pos >= playable:
                    self._start_chunk(self._next_chunk())

            out *= self._gain * self._volume
        # Crossfades between uncorrelated chunks can overshoot slightly
        np.clip(out, -1.0, 1.0, out=out)
        return out
