"""Offline rendering and WAV export."""

import numpy as np
import pytest
import soundfile as sf

from exporter import AudioExporter, AudioNormalizer
from spectrum import BAND_COUNT, SpectrumData

SR = 8000
RENDER_ARGS = dict(chunk_size=1024, crossfade_samples=128,
                   fade_in_duration=0.05, fade_out_duration=0.05,
                   normalize_value=0.5)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


def test_normalize_signal():
    out = AudioNormalizer.normalize_signal(np.array([0.5, -2.0, 1.0]), 0.5)
    np.testing.assert_allclose(out, [0.125, -0.5, 0.25])


def test_normalize_silence_is_unchanged():
    out = AudioNormalizer.normalize_signal(np.zeros(10), 0.5)
    assert np.all(out == 0.0)


def test_envelope_starts_and_ends_at_zero():
    out = AudioExporter.apply_envelope(np.ones(100), 10, 10)
    assert out[0] == 0.0
    assert out[-1] == pytest.approx(0.0)
    np.testing.assert_array_equal(out[10:90], 1.0)
    assert np.all(np.diff(out[:10]) >= 0)


def test_envelope_without_fades_is_identity():
    signal = np.arange(5.0)
    assert AudioExporter.apply_envelope(signal, 0, 0) is signal


def test_envelope_leaves_input_untouched():
    signal = np.ones(50)
    out = AudioExporter.apply_envelope(signal, 5, 5, 1.0, 1.0)
    assert np.all(signal == 1.0)
    assert out is not signal
    np.testing.assert_allclose(out[:5], [0.0, 0.1464466, 0.5, 0.8535534, 1.0], atol=1e-6)
    np.testing.assert_allclose(out[-5:], [1.0, 0.8535534, 0.5, 0.1464466, 0.0], atol=1e-6)


def test_envelope_longer_than_signal():
    with pytest.raises(ValueError):
        AudioExporter.apply_envelope(np.ones(10), 8, 8)


def test_render_length_and_level(rng):
    spectrum = SpectrumData([1.0] * BAND_COUNT)
    signal = AudioExporter.render(spectrum, 0.5, SR, rng=rng, **RENDER_ARGS)
    assert len(signal) == 4000
    assert np.max(np.abs(signal)) <= 0.5 + 1e-9
    assert np.max(np.abs(signal)) > 0.25
    assert signal[0] == 0.0


def test_render_spans_multiple_chunks_without_gaps(rng):
    spectrum = SpectrumData([1.0] * BAND_COUNT)
    signal = AudioExporter.render(spectrum, 1.0, SR, rng=rng, chunk_size=1024,
                                  crossfade_samples=128, enable_fade=False)
    # Chunk joins keep a steady level
    rms = [np.sqrt(np.mean(block ** 2)) for block in np.array_split(signal, 16)]
    assert min(rms) > 0.3 * max(rms)


def test_render_silent_spectrum(rng):
    spectrum = SpectrumData([0.0] * BAND_COUNT)
    signal = AudioExporter.render(spectrum, 0.25, SR, rng=rng, **RENDER_ARGS)
    assert np.all(signal == 0.0)


def test_render_amplitude(rng):
    spectrum = SpectrumData([1.0] * BAND_COUNT)
    signal = AudioExporter.render(spectrum, 0.5, SR, rng=rng, amplitude=0.5, **RENDER_ARGS)
    assert np.max(np.abs(signal)) <= 0.25 + 1e-9


@pytest.mark.parametrize("duration", [0.0, -1.0])
def test_render_rejects_empty_duration(duration):
    with pytest.raises(ValueError):
        AudioExporter.render(SpectrumData([1.0] * BAND_COUNT), duration, SR)


def test_render_rejects_fades_longer_than_signal():
    with pytest.raises(ValueError):
        AudioExporter.render(SpectrumData([1.0] * BAND_COUNT), 0.5, SR,
                             fade_in_duration=0.3, fade_out_duration=0.3)


def test_export_wav(tmp_path, rng):
    spectrum = SpectrumData([0.8] * BAND_COUNT)
    signal = AudioExporter.render(spectrum, 0.25, SR, rng=rng, **RENDER_ARGS)
    path = tmp_path / "noise.wav"
    AudioExporter.export_wav(str(path), signal, SR)

    data, sample_rate = sf.read(str(path))
    info = sf.info(str(path))
    assert sample_rate == SR
    assert info.subtype == 'PCM_16'
    assert len(data) == len(signal)
    np.testing.assert_allclose(data, signal, atol=1e-4)
