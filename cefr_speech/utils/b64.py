import base64
import binascii

from fastapi import HTTPException


def guess_audio_extension(header: bytes) -> str:
    if header.startswith(b"RIFF"):  # WAV
        return ".wav"
    if header.startswith(b"ID3") or header[:2] == b"\xff\xfb":  # MP3
        return ".mp3"
    if header.startswith(b"fLaC"):  # FLAC
        return ".flac"
    if header.startswith(b"OggS"):  # OGG
        return ".ogg"
    # WebM/Matroska (EBML) header 0x1A45DFA3
    if len(header) >= 4 and header[:4] == b"\x1aE\xdf\xa3":
        return ".webm"
    # ISO-BMFF (MP4/M4A)
    if header[4:8] == b"ftyp":
        return ".m4a"
    return ".wav"  # padrão seguro


def b64_to_audio_bytes(b64_str: str) -> bytes:
    """Decode a plain base64 string or a ``data:audio/...;base64,`` URL."""
    if not b64_str or not b64_str.strip():
        raise HTTPException(status_code=400, detail="Áudio ausente")
    try:
        raw = base64.b64decode(b64_str, validate=True)
    except (binascii.Error, ValueError):
        # pode ser data URL; tentar extrair após vírgula
        try:
            b64_part = b64_str.split(",", 1)[-1]
            raw = base64.b64decode(b64_part, validate=True)
        except (binascii.Error, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Base64 inválido: {e}")
    if not raw:
        raise HTTPException(status_code=400, detail="Áudio ausente")
    return raw
