# exporter.py
import numpy as np
import soundfile as sf
from typing import Optional
import logging

from progression import ChunkProgression
from spectrum import SpectrumData
from synthesis import NoiseSynthesizer, SynthesisMode

logger = logging.getLogger(__name__)

class AudioNormalizer:
    @staticmethod
    def normalize_signal(signal: np.ndarray, target_amplitude: float = 1.0) -> np.ndarray:
        """
        Normalize signal to [-1,1] range then scale by target amplitude
        """
        max_abs = np.max(np.abs(signal)) if len(signal) else 0.0

        # Avoid division by zero
        if max_abs > 0:
            result = signal / max_abs * target_amplitude
        else:
            result = signal

        logger.debug(f"normalize_signal: peak {max_abs:.6f} -> {target_amplitude}")
        return result

class AudioExporter:
    """Renders shaped noise to a buffer and writes it to disk"""

    @staticmethod
    def _fade_ramp(length: int, power: float) -> np.ndarray:
        """Raised-cosine ramp from 0 up to 1 over `length` samples, shaped by power"""
        t = np.linspace(0.0, 1.0, length)
        return (0.5 - 0.5 * np.cos(np.pi * t)) ** power

    @staticmethod
    def apply_envelope(signal: np.ndarray, fade_in_samples: int, fade_out_samples: int,
                       fade_in_power: float = 2.0, fade_out_power: float = 2.0) -> np.ndarray:
        """Fade the start and end of signal; returns a new array unless both fades are empty"""
        fade_in_samples = max(int(fade_in_samples), 0)
        fade_out_samples = max(int(fade_out_samples), 0)
        if fade_in_samples + fade_out_samples > len(signal):
            raise ValueError("Fade lengths exceed signal length")
        if not fade_in_samples and not fade_out_samples:
            return signal

        shaped = np.array(signal, dtype=np.float64)
        if fade_in_samples:
            shaped[:fade_in_samples] *= AudioExporter._fade_ramp(fade_in_samples, fade_in_power)
        if fade_out_samples:
            shaped[-fade_out_samples:] *= AudioExporter._fade_ramp(fade_out_samples, fade_out_power)[::-1]
        logger.debug(f"Envelope: {fade_in_samples} in, {fade_out_samples} out")
        return shaped

    @staticmethod
    def render(spectrum: SpectrumData, duration: float, sample_rate: int,
               mode: SynthesisMode = SynthesisMode.FFT,
               chunk_size: Optional[int] = None,
               crossfade_samples: int = 2048,
               rng: Optional[np.random.Generator] = None,
               **kwargs) -> np.ndarray:
        """Synthesize `duration` seconds of noise for spectrum"""
        total_samples = int(sample_rate * duration)
        if total_samples <= 0:
            raise ValueError("Export duration must be positive")
        if chunk_size is None:
            chunk_size = ChunkProgression().large_chunk_size

        enable_fade = kwargs.get('enable_fade', True)
        fade_in_samples = int(sample_rate * kwargs.get('fade_in_duration', 0.5)) if enable_fade else 0
        fade_out_samples = int(sample_rate * kwargs.get('fade_out_duration', 0.5)) if enable_fade else 0
        if fade_in_samples + fade_out_samples >= total_samples:
            raise ValueError("Total fade duration exceeds signal length")

        synth = NoiseSynthesizer(sample_rate, mode=mode, rng=rng)
        fade = min(crossfade_samples, chunk_size // 2)
        t = (np.arange(fade) + 0.5) / fade
        fade_in = np.sin(0.5 * np.pi * t)
        fade_out = np.cos(0.5 * np.pi * t)

        # Overlap consecutive chunks by `fade` samples with equal-power fades
        step = chunk_size - fade
        signal = np.zeros(total_samples + chunk_size, dtype=np.float64)
        pos = 0
        while pos < total_samples:
            chunk = synth.synthesize(chunk_size, spectrum).astype(np.float64)
            if pos > 0:
                signal[pos:pos + fade] *= fade_out
                chunk[:fade] *= fade_in
            signal[pos:pos + chunk_size] += chunk
            pos += step
        signal = signal[:total_samples]
        logger.debug(f"Rendered {total_samples} samples, peak {np.max(np.abs(signal)):.6f}")

        if kwargs.get('enable_normalization', True):
            signal = AudioNormalizer.normalize_signal(signal, kwargs.get('normalize_value', 0.5))

        if enable_fade:
            signal = AudioExporter.apply_envelope(
                signal,
                fade_in_samples,
                fade_out_samples,
                kwargs.get('fade_in_power', 2.0),
                kwargs.get('fade_out_power', 2.0)
            )

        return signal * kwargs.get('amplitude', 1.0)

    @staticmethod
    def export_wav(path: str, signal: np.ndarray, sample_rate: int):
        logger.debug(f"Writing {len(signal)} samples to {path}")
        sf.write(path, np.clip(signal, -1.0, 1.0).astype(np.float32), sample_rate, subtype='PCM_16')
