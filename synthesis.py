# synthesis.py
import numpy as np
from enum import Enum
from typing import Optional
from scipy import fft
import logging

from spectrum import SpectrumData

logger = logging.getLogger(__name__)

# Random words are split into 16-bit fields, each mapped onto [0, 1)
_FIELD_BITS = 16
_FIELD_SCALE = 1.0 / (1 << _FIELD_BITS)
_FIELD_SHIFTS = np.arange(0, 64, _FIELD_BITS, dtype=np.uint64)

class SynthesisMode(Enum):
    FFT = 'fft'  # Random magnitude and phase, inverse real FFT
    DCT = 'dct'  # Legacy: random magnitude only, inverse DCT

    @classmethod
    def from_name(cls, name: str) -> 'SynthesisMode':
        try:
            return cls(name.lower())
        except ValueError:
            raise ValueError(f"Unknown synthesis mode: {name}") from None

class TransformPlan:
    """Buffers tied to one transform size, reused while the size is stable"""

    def __init__(self, xform_size: int, mode: SynthesisMode):
        self.xform_size = xform_size
        if mode is SynthesisMode.FFT:
            # Non-negative frequencies only, plus the Nyquist bin
            self.bins = xform_size // 2
            self.buffer = np.zeros(self.bins + 1, dtype=np.complex128)
        else:
            self.bins = xform_size
            self.buffer = np.zeros(xform_size, dtype=np.float64)

class NoiseSynthesizer:
    """Turns a SpectrumData into chunks of shaped random noise.

    Not thread safe: the random generator and the cached plan belong to
    whichever thread calls synthesize().
    """

    def __init__(self, sample_rate: int, mode: SynthesisMode = SynthesisMode.FFT,
                 rng: Optional[np.random.Generator] = None):
        self.sample_rate = sample_rate
        self.mode = mode
        self._rng = rng if rng is not None else np.random.default_rng()
        self._plan: Optional[TransformPlan] = None
        self._last_window_size = -1

    @property
    def last_window_size(self) -> int:
        return self._last_window_size

    def release(self):
        """Drop the cached plan to free memory while idle"""
        self._plan = None
        self._last_window_size = -1

    def _get_plan(self, xform_size: int) -> TransformPlan:
        if xform_size != self._last_window_size:
            logger.debug(f"Building {self.mode.value} plan for size {xform_size}")
            self._plan = TransformPlan(xform_size, self.mode)
            self._last_window_size = xform_size
        return self._plan

    def _random_fields(self, count: int) -> np.ndarray:
        """`count` uniform values in [0, 1), four per 64-bit random word"""
        words = self._rng.bit_generator.random_raw((count + 3) // 4)
        fields = (words[:, None] >> _FIELD_SHIFTS) & np.uint64(0xFFFF)
        return fields.reshape(-1)[:count] * _FIELD_SCALE

    def synthesize(self, xform_size: int, spectrum: SpectrumData) -> np.ndarray:
        """Produce xform_size samples of noise shaped by spectrum"""
        if xform_size <= 0 or xform_size % 2:
            raise ValueError(f"Transform size must be a positive even number, got {xform_size}")
        plan = self._get_plan(xform_size)
        if self.mode is SynthesisMode.FFT:
            return self._do_ifft(plan, spectrum)
        return self._do_idct(plan, spectrum)

    def _do_idct(self, plan: TransformPlan, spectrum: SpectrumData) -> np.ndarray:
        data = plan.buffer
        spectrum.fill(data, self.sample_rate)

        # Multiply by a block of white noise; magnitude is in [0.0, 1.0)
        data *= self._random_fields(plan.bins)

        return fft.idct(data, type=2, norm='ortho').astype(np.float32)

    def _do_ifft(self, plan: TransformPlan, spectrum: SpectrumData) -> np.ndarray:
        # For a real signal the negative frequencies mirror the positive
        # ones, so only bins [0, N/2] are supplied
        data = plan.buffer
        spectrum.fill_complex(data[:plan.bins], self.sample_rate)
        data[plan.bins] = 0.0

        # Scale each requested magnitude by a random value and rotate it by a
        # random angle. DC and the lowest bin are left alone.
        count = max(plan.bins - 2, 0)
        if count:
            # Two bins per 64-bit word: a 16-bit scale and a 16-bit angle each
            fields = self._random_fields(2 * count).reshape(count, 2)
            magnitude = data.real[2:plan.bins] * fields[:, 0]
            angle = 2 * np.pi * fields[:, 1]
            data[2:plan.bins] = magnitude * np.exp(1j * angle)

        return fft.irfft(data, n=plan.xform_size).astype(np.float32)
