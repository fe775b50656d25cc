# generator.py
import numpy as np
from abc import ABC, abstractmethod
from typing import Optional, Callable
import threading
import time
import logging

from progression import ChunkProgression, ChunkStage
from spectrum import SpectrumData
from synthesis import NoiseSynthesizer, SynthesisMode

logger = logging.getLogger(__name__)

# Returned by the mailbox once stop_thread() has been called
_STOP = object()

class ChunkConsumer(ABC):
    @abstractmethod
    def handle_chunk(self, samples: np.ndarray, stage: ChunkStage) -> bool:
        """Take ownership of a finished chunk. Return False to drop it."""
        pass

class SampleGenerator:
    """Background thread that keeps producing noise for the latest spectrum.

    update_spectrum() never blocks: it replaces whatever spectrum is waiting
    and wakes the thread. Only the newest pending spectrum is synthesized.
    Each spectrum change restarts the chunk progression from the smallest
    chunk; once the progression is done the thread idles until the next
    change.
    """

    def __init__(self, consumer: ChunkConsumer, sample_rate: int,
                 progress_callback: Optional[Callable[[int], None]] = None,
                 mode: SynthesisMode = SynthesisMode.FFT,
                 progression: Optional[ChunkProgression] = None,
                 rng: Optional[np.random.Generator] = None,
                 spectrum: Optional[SpectrumData] = None):
        self._consumer = consumer
        self._sample_rate = sample_rate
        self._progress_callback = progress_callback

        # Communication variables; guarded by _cond
        self._cond = threading.Condition()
        self._stopping = False
        self._pending_spectrum = spectrum

        # Accessed from the worker thread only
        self._progression = progression if progression is not None else ChunkProgression()
        self._synth = NoiseSynthesizer(sample_rate, mode=mode, rng=rng)

        self._thread = threading.Thread(target=self._thread_loop,
                                        name="SampleGeneratorThread", daemon=True)
        self._thread.start()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def stop_thread(self, timeout: Optional[float] = None):
        with self._cond:
            self._stopping = True
            self._cond.notify()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Sample generator thread did not stop in time")

    def update_spectrum(self, spectrum: SpectrumData):
        with self._cond:
            self._pending_spectrum = spectrum
            self._cond.notify()

    def _pop_pending_spectrum(self, wait_ms: int):
        """Take the pending spectrum, waiting up to wait_ms (-1: forever).

        Returns _STOP if stop_thread() was called, else the spectrum or None.
        """
        with self._cond:
            if wait_ms != 0 and not self._stopping and self._pending_spectrum is None:
                # Wait once; the retry loop is in the caller
                self._cond.wait(None if wait_ms < 0 else wait_ms / 1000.0)
            if self._stopping:
                return _STOP
            spectrum, self._pending_spectrum = self._pending_spectrum, None
            return spectrum

    def _report_percent(self, percent: int):
        if self._progress_callback is not None:
            self._progress_callback(percent)

    def _thread_loop(self):
        logger.debug("Sample generator thread started")
        try:
            self._run()
        except Exception as e:
            logger.error(f"Sample generator thread failed: {e}", exc_info=True)
        logger.debug("Sample generator thread stopped")

    def _run(self):
        state = self._progression
        spectrum = None
        wait_ms = -1

        while True:
            new_spectrum = self._pop_pending_spectrum(wait_ms)
            if new_spectrum is _STOP:
                break
            if new_spectrum is not None and not new_spectrum.same_spectrum(spectrum):
                spectrum = new_spectrum
                state.reset()
                logger.debug("New spectrum, restarting chunk progression")
                self._report_percent(state.percent)
            elif wait_ms == -1:
                # Nothing changed; keep waiting
                continue

            start = time.monotonic()

            # Generate the next chunk of sound
            noise_data = self._synth.synthesize(state.chunk_size, spectrum)
            if self._stopping:
                break
            stage = state.stage
            if self._consumer.handle_chunk(noise_data, stage):
                state.advance()
                self._report_percent(state.percent)
            else:
                logger.debug(f"Chunk dropped at stage {stage.name}")

            # Avoid burning the CPU while the user is scrubbing
            sleep_target_ms = state.sleep_target_ms(self._sample_rate)
            elapsed_ms = int((time.monotonic() - start) * 1000)
            wait_ms = min(max(sleep_target_ms - elapsed_ms, 0), sleep_target_ms)

            if state.done:
                # No chunks left; save RAM
                self._synth.release()
                wait_ms = -1

