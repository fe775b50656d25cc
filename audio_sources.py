# audio_sources.py
import numpy as np
import sounddevice as sd
from typing import Optional, Callable
import threading
import logging

from config import AudioConfig
from generator import SampleGenerator
from shuffler import SampleShuffler
from spectrum import SpectrumData
from synthesis import SynthesisMode

logger = logging.getLogger(__name__)

class NoiseSource:
    """Plays shaped noise: SampleGenerator -> SampleShuffler -> output stream"""

    def __init__(self, config: AudioConfig, spectrum: Optional[SpectrumData] = None,
                 progress_callback: Optional[Callable[[int], None]] = None):
        self.config = config
        self._lock = threading.RLock()
        self._running = False
        self.stream = None

        self.shuffler = SampleShuffler(
            crossfade_samples=config.crossfade_samples,
            headroom=config.headroom,
            max_chunks=config.max_pool_chunks,
            volume=config.volume,
        )
        self.generator = SampleGenerator(
            self.shuffler,
            config.sample_rate,
            progress_callback=progress_callback,
            mode=SynthesisMode.from_name(config.synthesis_mode),
            spectrum=spectrum,
        )
        logger.debug(f"NoiseSource init - mode: {config.synthesis_mode}, rate: {config.sample_rate}")

    def start(self):
        """Open the output stream if an output device is enabled"""
        with self._lock:
            self._running = True
            if self.config.output_device_enabled:
                self._setup_stream()

    def update_spectrum(self, spectrum: SpectrumData):
        self.generator.update_spectrum(spectrum)

    def set_volume(self, volume: float):
        self.config.volume = volume
        self.shuffler.set_volume(volume)

    def _audio_callback(self, outdata: np.ndarray, frames: int,
                        time_info: dict, status: sd.CallbackFlags) -> None:
        """Audio output callback"""
        if status.output_underflow:
            if self.config.on_underflow:
                self.config.on_underflow()
        if status:
            logger.debug(f'Output callback status: {status}')

        if not self._running:
            outdata.fill(0)
            return

        try:
            audio_data = self.shuffler.read(frames)
            # Mono source, same signal on every channel
            outdata[:] = np.clip(audio_data, -1.0, 1.0)[:, np.newaxis]
        except Exception as e:
            logger.error(f"Audio callback error: {e}")
            outdata.fill(0)

    def _setup_stream(self):
        with self._lock:
            if self.stream is not None:
                return
            try:
                self.stream = sd.OutputStream(
                    device=self.config.device_output_index,
                    channels=self.config.channels,
                    samplerate=self.config.sample_rate,
                    blocksize=self.config.output_buffer_size,
                    dtype=np.float32,
                    callback=self._audio_callback,
                    latency='high'  # Use high latency for stability
                )
                self.stream.start()
            except Exception as e:
                logger.error(f"Error opening audio output: {e}")
                self.stream = None
                # Re-raise the error to propagate it to the UI
                raise

    def update_output_device(self):
        """Reopen the stream on the currently configured device"""
        with self._lock:
            if self.stream is not None:
                self.stream.stop()
                self.stream.close()
                self.stream = None
            if self._running and self.config.output_device_enabled:
                self._setup_stream()

    def stop(self):
        """Stop playback but keep the generator running"""
        with self._lock:
            self._running = False
            if self.stream is not None:
                self.stream.stop()
                self.stream.close()
                self.stream = None

    def close(self):
        """Clean up resources"""
        self.stop()
        self.generator.stop_thread(timeout=2.0)
        self.shuffler.clear()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running and (self.stream is None or self.stream.active)
