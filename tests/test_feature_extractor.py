# tests/test_feature_extractor.py
import math

import numpy as np
import pytest

from cefr_speech.models.audio_sample import AudioSample
from cefr_speech.schemas import AcousticFeatures
from cefr_speech.services import audio_service as audio_mod
from cefr_speech.services.feature_extractor import FeatureExtractor, frame_rms, is_silent
from synth import SR, speech_like, tone, wav_bytes


@pytest.fixture()
def extractor():
    return FeatureExtractor()


def test_sine_pitch_and_energy(extractor):
    x = tone([200.0], duration=1.0, level=0.5)
    f = extractor.extract(AudioSample(x, SR))
    assert f.has_speech
    assert f.fundamental.mean == pytest.approx(200.0, abs=5.0)
    assert f.energy.rms == pytest.approx(0.5 / math.sqrt(2), rel=0.02)
    assert f.energy.peak == pytest.approx(0.5, abs=1e-3)
    assert f.temporal.duration == pytest.approx(1.0)
    assert f.temporal.voiced_ratio > 0.9


@pytest.mark.parametrize("f0", [80.0, 150.0, 320.0])
def test_pitch_values_stay_in_range(extractor, f0):
    f = extractor.extract(AudioSample(speech_like(duration=1.0, f0=f0), SR))
    assert f.energy.rms >= 0 and f.energy.peak >= 0
    for value in f.fundamental.series:
        assert value == 0.0 or 50.0 <= value <= 500.0


def test_zero_buffer_has_no_speech(extractor):
    f = extractor.extract(AudioSample(np.zeros(SR, dtype=np.float32), SR))
    assert not f.has_speech
    assert f.energy.rms == 0.0
    assert f.fundamental.mean == 0.0
    assert extractor.is_silent(f)


def test_degenerate_buffers_give_empty_features(extractor):
    empty = AcousticFeatures.empty()
    assert extractor.extract(AudioSample(np.zeros(0, dtype=np.float32), SR)) == empty
    assert extractor.extract(AudioSample(np.ones(100, dtype=np.float32), SR)) == empty
    assert extractor.extract(AudioSample(np.ones(SR, dtype=np.float32), 0)) == empty


def test_non_finite_samples_are_zeroed(extractor):
    x = tone([200.0], duration=0.5)
    x[::50] = np.nan
    x[1::97] = np.inf
    f = extractor.extract(AudioSample(x, SR))
    dumped = f.model_dump()
    for section in ("energy", "spectral", "formants"):
        for value in dumped[section].values():
            if isinstance(value, list):
                assert all(math.isfinite(v) for v in value)
            else:
                assert math.isfinite(value)


def test_formants_follow_spectral_peaks(extractor):
    x = tone([300.0, 1200.0, 2500.0], amps=[1.0, 0.6, 0.4], duration=0.5)
    f = extractor.extract(AudioSample(x, SR))
    assert f.formants.F1 == pytest.approx(300.0, abs=30.0)
    assert f.formants.F2 == pytest.approx(1200.0, abs=30.0)
    assert f.formants.F3 == pytest.approx(2500.0, abs=30.0)


def test_high_band_ratio_separates_noise_from_tone(extractor):
    rng = np.random.default_rng(0)
    noise = (0.2 * rng.standard_normal(SR)).astype(np.float32)
    low = tone([200.0], duration=1.0)
    assert extractor.extract(AudioSample(noise, SR)).spectral.high_band_ratio > 0.6
    assert extractor.extract(AudioSample(low, SR)).spectral.high_band_ratio < 0.05


def test_clarity_is_bounded(extractor):
    f = extractor.extract(AudioSample(tone([440.0]), SR))
    assert 0.0 <= f.spectral.clarity < 1.0


def test_silence_runs_are_counted(extractor):
    speech = tone([200.0], duration=0.5)
    gap = np.zeros(int(0.3 * SR), dtype=np.float32)
    x = np.concatenate([speech, gap, speech, gap, speech])
    f = extractor.extract(AudioSample(x, SR))
    assert f.temporal.silence_count == 2
    assert len(f.energy.envelope) == int(len(x) / (0.01 * SR))


def test_is_silent_thresholds():
    assert is_silent(0.0)
    assert is_silent(0.0005)
    assert is_silent(0.004)  # about -48 dB
    assert not is_silent(0.05)


def test_frame_rms_drops_partial_frame():
    x = np.ones(250)
    np.testing.assert_allclose(frame_rms(x, 100), [1.0, 1.0])
    assert frame_rms(x, 0).size == 0


def test_extract_bytes_decodes_first(extractor):
    f = extractor.extract_bytes(wav_bytes(tone([200.0], duration=0.5)))
    assert f.has_speech
    assert f.fundamental.mean == pytest.approx(200.0, abs=5.0)


@pytest.mark.parametrize("f0", [60.0, 70.0])
def test_low_voices_count_as_voiced(extractor, f0):
    x = tone([f0, 2 * f0, 3 * f0], duration=1.0)
    f = extractor.extract(AudioSample(x, SR))
    assert f.fundamental.mean == pytest.approx(f0, abs=1.0)
    assert f.temporal.voiced_ratio > 0.9


def test_white_noise_pitch_stays_in_range(extractor):
    rng = np.random.default_rng(1)
    noise = (0.2 * rng.standard_normal(SR)).astype(np.float32)
    for value in extractor.extract(AudioSample(noise, SR)).fundamental.series:
        assert value == 0.0 or 50.0 <= value <= 500.0


def test_extract_bytes_on_undecodable_audio(extractor, monkeypatch):
    monkeypatch.setattr(audio_mod.shutil, "which", lambda name: None)
    f = extractor.extract_bytes(b"garbage bytes!")
    assert f == AcousticFeatures.empty()
    assert f.has_speech is False
