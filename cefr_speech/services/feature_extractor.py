"""Acoustic feature extraction: energy, pitch, formants, spectrum and timing."""

import logging
import math
from typing import List, Optional

import numpy as np
from scipy import fft as sp_fft
from scipy import signal

from cefr_speech.config import (
    SPEECH_RMS_THRESHOLD,
    SILENCE_DB_THRESHOLD,
    SILENCE_RMS_THRESHOLD,
    SILENCE_WINDOW_S,
    SILENCE_FRAME_RMS_THRESHOLD,
    PITCH_WINDOW_S,
    PITCH_MIN_HZ,
    PITCH_MAX_HZ,
    PITCH_CORRELATION_FLOOR,
    PITCH_PEAK_TOLERANCE,
    PITCH_MIN_OVERLAP_FRACTION,
    VOICING_WINDOW_S,
    VOICED_MIN_HZ,
    VOICED_MAX_HZ,
    FORMANT_WINDOW_S,
    FORMANT_MIN_HZ,
    FORMANT_MAX_HZ,
    FORMANT_PEAK_FLOOR,
    FORMANT_COUNT,
    ROLLOFF_FRACTION,
    FRICATIVE_BAND_HZ,
)
from cefr_speech.models.audio_sample import AudioSample
from cefr_speech.schemas import (
    AcousticFeatures,
    EnergyFeatures,
    FormantFeatures,
    FundamentalFeatures,
    SpectralFeatures,
    TemporalFeatures,
)
from cefr_speech.services.audio_service import AudioService, DecodeError

logger = logging.getLogger(__name__)


def rms_to_db(rms: float) -> float:
    if rms <= 0.0:
        return float("-inf")
    return 20.0 * math.log10(rms)


def is_silent(rms: float) -> bool:
    """True when the recording holds no usable speech energy."""
    return rms_to_db(rms) < SILENCE_DB_THRESHOLD or rms < SILENCE_RMS_THRESHOLD


def frame_rms(x: np.ndarray, frame_len: int) -> np.ndarray:
    """RMS of consecutive non-overlapping frames (trailing partial frame dropped)."""
    if frame_len <= 0:
        return np.zeros(0, dtype=np.float64)
    n_frames = len(x) // frame_len
    if n_frames == 0:
        return np.zeros(0, dtype=np.float64)
    frames = x[: n_frames * frame_len].reshape(n_frames, frame_len).astype(np.float64)
    return np.sqrt(np.mean(frames ** 2, axis=1))


def frame_pitch(frame: np.ndarray, sr: int, min_lag: int, max_lag: int) -> float:
    """
    F0 of one window via FFT autocorrelation; 0.0 when unvoiced.

    Each lag is normalized by the energy of the two overlapping parts of the
    window, so a periodic window scores close to 1 at its period even when
    the window holds only one or two periods. Lags whose overlap is shorter
    than ``PITCH_MIN_OVERLAP_FRACTION`` of the window are not considered.
    The first peak within ``PITCH_PEAK_TOLERANCE`` of the best one wins,
    which keeps multiples of the period from being picked.
    """
    n = len(frame)
    max_lag = min(max_lag, n - max(min_lag, int(n * PITCH_MIN_OVERLAP_FRACTION)))
    if max_lag < min_lag:
        return 0.0
    nfft = sp_fft.next_fast_len(2 * n)
    spectrum = sp_fft.rfft(frame, nfft)
    ac = sp_fft.irfft(np.abs(spectrum) ** 2, nfft)[:n]
    if ac[0] <= 0.0:
        return 0.0

    energy = np.cumsum(frame ** 2)
    lags = np.arange(min_lag, max_lag + 1)
    head = energy[n - lags - 1]
    tail = energy[-1] - energy[lags - 1]
    denom = np.sqrt(head * tail)
    region = np.divide(ac[lags], denom, out=np.zeros(lags.size), where=denom > 0.0)

    best = float(region.max())
    if best < PITCH_CORRELATION_FLOOR:
        return 0.0
    idx = int(np.argmax(region >= PITCH_PEAK_TOLERANCE * best))
    while idx + 1 < region.size and region[idx + 1] > region[idx]:
        idx += 1
    return float(sr) / float(lags[idx])


def pitch_track(x: np.ndarray, sr: int, window_s: float, hop_fraction: float = 0.5) -> np.ndarray:
    n = int(round(window_s * sr))
    if n <= 1 or len(x) < n:
        return np.zeros(0, dtype=np.float64)
    hop = max(1, int(n * hop_fraction))
    min_lag = int(math.ceil(sr / PITCH_MAX_HZ))
    max_lag = int(math.floor(sr / PITCH_MIN_HZ))
    starts = range(0, len(x) - n + 1, hop)
    return np.array(
        [frame_pitch(x[s: s + n].astype(np.float64), sr, min_lag, max_lag) for s in starts],
        dtype=np.float64,
    )


def window_formants(frame: np.ndarray, sr: int, window: np.ndarray) -> List[float]:
    """Up to FORMANT_COUNT spectral peaks (Hz, ascending) of one Hann window."""
    n = len(frame)
    mag = np.abs(sp_fft.rfft(frame * window, 2 * n))
    peak_max = float(mag.max()) if mag.size else 0.0
    if peak_max <= 0.0:
        return []
    freqs = np.arange(mag.size) * sr / (2.0 * n)
    peaks, props = signal.find_peaks(mag, height=FORMANT_PEAK_FLOOR * peak_max)
    in_band = (freqs[peaks] >= FORMANT_MIN_HZ) & (freqs[peaks] <= FORMANT_MAX_HZ)
    peaks = peaks[in_band]
    heights = props["peak_heights"][in_band]
    if peaks.size == 0:
        return []
    top = peaks[np.argsort(heights)[::-1][:FORMANT_COUNT]]
    return sorted(float(freqs[p]) for p in top)


class FeatureExtractor:
    """
    Turns an AudioSample into AcousticFeatures.

    Every threshold comes from ``cefr_speech.config``. Degenerate buffers
    (empty, shorter than one pitch window, non-positive sample rate) yield
    ``AcousticFeatures.empty()``; non-finite samples are zeroed first.
    """

    def __init__(self, audio_service: Optional[AudioService] = None):
        self.audio_service = audio_service or AudioService()

    def extract_bytes(self, data: bytes) -> AcousticFeatures:
        """Decode then extract; undecodable audio yields the all-zero features."""
        try:
            sample = self.audio_service.decode(data)
        except DecodeError as e:
            logger.warning("Falha ao decodificar áudio, features vazias: %s", e)
            return AcousticFeatures.empty()
        return self.extract(sample)

    def extract(self, sample: AudioSample) -> AcousticFeatures:
        sr = int(sample.sample_rate)
        if sr <= 0:
            return AcousticFeatures.empty()
        x = np.nan_to_num(np.asarray(sample.samples, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0)
        if x.size == 0 or x.size < int(round(PITCH_WINDOW_S * sr)):
            logger.debug("Buffer degenerado (%d amostras @ %d Hz)", x.size, sr)
            return AcousticFeatures.empty()

        energy = self._energy(x, sr)
        features = AcousticFeatures(
            fundamental=self._fundamental(x, sr),
            formants=self._formants(x, sr),
            spectral=self._spectral(x, sr),
            temporal=self._temporal(x, sr, energy.envelope),
            energy=energy,
            has_speech=energy.rms > SPEECH_RMS_THRESHOLD,
        )
        logger.debug(
            "Features: rms=%.5f f0=%.1f F1=%.0f F2=%.0f dur=%.2fs",
            features.energy.rms,
            features.fundamental.mean,
            features.formants.F1,
            features.formants.F2,
            features.temporal.duration,
        )
        return features

    @staticmethod
    def is_silent(features: AcousticFeatures) -> bool:
        return is_silent(features.energy.rms)

    # ------------------------
    # Individual descriptors
    # ------------------------
    @staticmethod
    def _energy(x: np.ndarray, sr: int) -> EnergyFeatures:
        envelope = frame_rms(x, int(round(SILENCE_WINDOW_S * sr)))
        return EnergyFeatures(
            rms=float(np.sqrt(np.mean(x ** 2))),
            peak=float(np.max(np.abs(x))),
            envelope=[float(v) for v in envelope],
        )

    @staticmethod
    def _fundamental(x: np.ndarray, sr: int) -> FundamentalFeatures:
        series = pitch_track(x, sr, PITCH_WINDOW_S)
        voiced = series[series > 0]
        if voiced.size == 0:
            return FundamentalFeatures(mean=0.0, range=0.0, series=[float(v) for v in series])
        return FundamentalFeatures(
            mean=float(voiced.mean()),
            range=float(voiced.max() - voiced.min()),
            series=[float(v) for v in series],
        )

    @staticmethod
    def _formants(x: np.ndarray, sr: int) -> FormantFeatures:
        n = int(round(FORMANT_WINDOW_S * sr))
        if n <= 1 or len(x) < n:
            return FormantFeatures()
        window = signal.get_window("hann", n)
        f1: List[float] = []
        f2: List[float] = []
        f3: List[float] = []
        for start in range(0, len(x) - n + 1, max(1, n // 2)):
            peaks = window_formants(x[start: start + n], sr, window)
            if len(peaks) >= 2:
                f1.append(peaks[0])
                f2.append(peaks[1])
            if len(peaks) >= 3:
                f3.append(peaks[2])
        return FormantFeatures(
            F1=float(np.mean(f1)) if f1 else 0.0,
            F2=float(np.mean(f2)) if f2 else 0.0,
            F3=float(np.mean(f3)) if f3 else 0.0,
        )

    @staticmethod
    def _spectral(x: np.ndarray, sr: int) -> SpectralFeatures:
        spectrum = sp_fft.rfft(x)
        power = np.abs(spectrum) ** 2
        freqs = sp_fft.rfftfreq(len(x), d=1.0 / sr)
        total = float(power.sum())
        if total <= 0.0:
            return SpectralFeatures()

        centroid = float(np.sum(freqs * power) / total)
        bandwidth = float(np.sqrt(np.sum(((freqs - centroid) ** 2) * power) / total))
        cumulative = np.cumsum(power)
        rolloff_idx = int(np.searchsorted(cumulative, ROLLOFF_FRACTION * total))
        rolloff = float(freqs[min(rolloff_idx, freqs.size - 1)])

        magnitude = np.sqrt(power)
        mean_mag = float(magnitude.mean())
        cv = float(magnitude.std() / mean_mag) if mean_mag > 0 else 0.0
        high_band = float(power[freqs >= FRICATIVE_BAND_HZ].sum() / total)

        return SpectralFeatures(
            centroid=centroid,
            bandwidth=bandwidth,
            rolloff=rolloff,
            clarity=cv / (1.0 + cv),
            high_band_ratio=high_band,
        )

    @staticmethod
    def _temporal(x: np.ndarray, sr: int, envelope: List[float]) -> TemporalFeatures:
        env = np.asarray(envelope, dtype=np.float64)
        silent = env < SILENCE_FRAME_RMS_THRESHOLD
        if silent.size:
            # count runs: a silent frame that does not follow another silent frame
            silence_count = int(silent[0]) + int(np.sum(silent[1:] & ~silent[:-1]))
        else:
            silence_count = 0

        voicing = pitch_track(x, sr, VOICING_WINDOW_S, hop_fraction=1.0)
        if voicing.size:
            voiced = (voicing >= VOICED_MIN_HZ) & (voicing <= VOICED_MAX_HZ)
            voiced_ratio = float(voiced.mean())
        else:
            voiced_ratio = 0.0

        return TemporalFeatures(
            duration=len(x) / float(sr),
            silence_count=silence_count,
            voiced_ratio=voiced_ratio,
        )
