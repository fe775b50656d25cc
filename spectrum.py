# spectrum.py
import numpy as np
from typing import Optional, Sequence, List
import logging

logger = logging.getLogger(__name__)

MIN_FREQ = 100.0
MAX_FREQ = 20000.0
BAND_COUNT = 32

# Bars below this are treated as fully silent
SILENCE_THRESHOLD = 1e-6

_edge_freqs: Optional[np.ndarray] = None

def band_edges() -> np.ndarray:
    """Frequencies (Hz) of the BAND_COUNT + 1 edges between bands, log-spaced"""
    global _edge_freqs
    if _edge_freqs is None:
        ratio = MAX_FREQ / MIN_FREQ
        edges = MIN_FREQ * ratio ** (np.arange(BAND_COUNT + 1) / BAND_COUNT)
        edges.flags.writeable = False
        _edge_freqs = edges
    return _edge_freqs

class SpectrumData:
    """Band magnitudes in machine form, ready for noise synthesis.

    Input bars are a linear scale in [0.0, 1.0]. Audio output has roughly
    48 dB of dynamic range, so bars are mapped onto [-50 dB, 0 dB], i.e.
    [10^-5, 1.0] on a log scale. A bar at 0.0 silences its band entirely.

    Instances are immutable; a new edit produces a new SpectrumData.
    """

    def __init__(self, bands: Sequence[float]):
        bars = np.asarray(bands, dtype=np.float64).reshape(-1)
        if bars.size != BAND_COUNT:
            raise ValueError(f"Incorrect number of bands: expected {BAND_COUNT}, got {bars.size}")
        if np.any(bars < 0.0) or np.any(bars > 1.0):
            raise ValueError("Band values must be between 0.0 and 1.0")

        # Exponent is in units of dB/10
        data = np.power(10.0, 5.0 * (bars - 1.0))
        data[bars < SILENCE_THRESHOLD] = 0.0
        self._data = self._freeze(data)

    @staticmethod
    def _freeze(data: np.ndarray) -> np.ndarray:
        data.flags.writeable = False
        return data

    @classmethod
    def from_list(cls, values: Sequence[float]) -> 'SpectrumData':
        """Rebuild a spectrum from stored (already log-scaled) magnitudes"""
        data = np.array(values, dtype=np.float64).reshape(-1)
        if data.size != BAND_COUNT:
            raise ValueError(f"Incorrect number of bands: expected {BAND_COUNT}, got {data.size}")
        spectrum = cls.__new__(cls)
        spectrum._data = cls._freeze(data)
        return spectrum

    def to_list(self) -> List[float]:
        return self._data.tolist()

    @property
    def values(self) -> np.ndarray:
        return self._data

    def __len__(self) -> int:
        return BAND_COUNT

    def __repr__(self) -> str:
        return f"SpectrumData({np.array2string(self._data, precision=4)})"

    def same_spectrum(self, other: Optional['SpectrumData']) -> bool:
        if other is None:
            return False
        return bool(np.array_equal(self._data, other._data))

    def _bin_magnitudes(self, bins: int, sample_rate: int) -> np.ndarray:
        """Magnitude of the band covering each of `bins` linearly spaced bins.

        Bin i sits at i * max_freq / bins. Bins outside [edge[0], edge[-1])
        are silent; so is anything above Nyquist, which happens to the top
        bands when the sample rate is below 40 kHz.
        """
        max_freq = sample_rate / 2
        edges = band_edges()
        # First bin index at or above each edge, clamped to the buffer
        edge_index = np.minimum(np.ceil(edges * bins / max_freq), bins).astype(np.int64)

        magnitudes = np.zeros(bins, dtype=np.float64)
        for band in range(BAND_COUNT):
            start, limit = edge_index[band], edge_index[band + 1]
            if start < limit:
                magnitudes[start:limit] = self._data[band]
        return magnitudes

    def fill(self, out: np.ndarray, sample_rate: int):
        """Copy band values into the linearly spaced real bins of out"""
        out[:] = self._bin_magnitudes(len(out), sample_rate)

    def fill_complex(self, out: np.ndarray, sample_rate: int):
        """Same as fill() over complex bins; only the real part is set"""
        out[:] = self._bin_magnitudes(len(out), sample_rate)
