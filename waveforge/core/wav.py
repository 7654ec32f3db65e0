"""
16-bit PCM WAV export through soundfile.

Samples are converted to int16 here (clamped, negatives scaled by 32768 and
positives by 32767, truncated toward zero) so libsndfile only writes the
container. Mono and stereo files get the canonical 44 byte header followed
by interleaved little-endian samples.
"""
from __future__ import annotations
import io
import os

import numpy as np
import soundfile as sf

from .buffer import PCMBuffer
from .errors import EmptyInput

HEADER_SIZE = 44  # RIFF/WAVE header for 1 or 2 channel PCM


def float_to_pcm16(data: np.ndarray) -> np.ndarray:
    """
    Clamp to [-1, 1], scale negatives by 32768 and positives by 32767,
    then truncate toward zero. NaN becomes 0.
    """
    samples = np.nan_to_num(np.asarray(data, dtype=np.float64), nan=0.0)
    samples = np.clip(samples, -1.0, 1.0)
    scaled = np.where(samples < 0, samples * 32768.0, samples * 32767.0)
    return np.trunc(scaled).astype(np.int16)


def _write(buffer: PCMBuffer, file) -> None:
    if buffer is None:
        raise EmptyInput("No buffer to export")
    sf.write(file, float_to_pcm16(buffer.data), buffer.sample_rate,
             format="WAV", subtype="PCM_16")


def encode_wav(buffer: PCMBuffer) -> bytes:
    """
    Encode a buffer as a 16-bit PCM WAV file.

    Returns:
        Complete file contents
    """
    out = io.BytesIO()
    _write(buffer, out)
    return out.getvalue()


def write_wav(buffer: PCMBuffer, path) -> int:
    """Write ``buffer`` to ``path``; returns the file size in bytes."""
    path = os.fspath(path)
    _write(buffer, path)
    return os.path.getsize(path)
