import io
import shutil
import asyncio
import logging
import subprocess
from typing import Optional

import numpy as np
import soundfile as sf

from cefr_speech.config import DECODE_TIMEOUT_S, FFMPEG_TARGET_SR
from cefr_speech.models.audio_sample import AudioSample
from cefr_speech.utils.b64 import guess_audio_extension

logger = logging.getLogger(__name__)


class DecodeError(RuntimeError):
    pass


class AudioService:
    def __init__(self, target_sr: int = FFMPEG_TARGET_SR, timeout: float = DECODE_TIMEOUT_S):
        self.target_sr = target_sr
        self.timeout = timeout

    def decode(self, data: bytes) -> AudioSample:
        """
        Decodifica bytes de áudio para um AudioSample mono float32.
        Tenta soundfile primeiro; formatos que ele não lê (WebM/Opus do
        navegador, MP4) passam por um pipe do ffmpeg para WAV PCM 16-bit.
        """
        if not data:
            raise DecodeError("Buffer de áudio vazio.")
        try:
            samples, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=False)
        except (sf.LibsndfileError, RuntimeError, TypeError) as e:
            logger.debug("soundfile não decodificou (%s); tentando ffmpeg", e)
            samples, sr = self._decode_with_ffmpeg(data)
        return self._to_sample(samples, sr)

    async def decode_async(self, data: bytes, timeout: Optional[float] = None) -> AudioSample:
        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(asyncio.to_thread(self.decode, data), timeout=limit)
        except asyncio.TimeoutError as e:
            raise DecodeError(f"Decodificação excedeu {limit:.1f}s") from e

    def _decode_with_ffmpeg(self, data: bytes):
        if shutil.which("ffmpeg") is None:
            raise DecodeError("Formato não suportado e ffmpeg não encontrado no PATH.")

        cmd = ["ffmpeg", "-hide_banner", "-loglevel", "error",
               "-i", "pipe:0", "-vn",
               "-acodec", "pcm_s16le", "-ar", str(self.target_sr), "-ac", "1",
               "-f", "wav", "pipe:1"]
        logger.debug("Transcodificando %d bytes (%s) via ffmpeg", len(data), guess_audio_extension(data[:16]))
        try:
            result = subprocess.run(
                cmd,
                input=data,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            raise DecodeError(e.stderr.decode(errors="ignore")) from e
        except subprocess.TimeoutExpired as e:
            raise DecodeError("ffmpeg excedeu o tempo limite.") from e

        try:
            return sf.read(io.BytesIO(result.stdout), dtype="float32", always_2d=False)
        except (sf.LibsndfileError, RuntimeError) as e:
            raise DecodeError(f"Saída do ffmpeg inválida: {e}") from e

    @staticmethod
    def _to_sample(samples: np.ndarray, sr: int) -> AudioSample:
        arr = np.asarray(samples, dtype=np.float32)
        if arr.ndim == 2:
            # Down-mix (frames, channels) -> mono
            arr = arr.mean(axis=1).astype(np.float32)
        if arr.ndim != 1:
            raise DecodeError(f"Formato de array inesperado: {arr.shape}")
        if sr <= 0:
            raise DecodeError(f"Taxa de amostragem inválida: {sr}")
        return AudioSample(samples=arr, sample_rate=int(sr))
