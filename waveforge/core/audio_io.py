"""
File I/O for WaveForge: decoding into PCMBuffer and WAV export.
"""
from __future__ import annotations
import logging
import os
from typing import Optional

import numpy as np

from .buffer import PCMBuffer
from .wav import write_wav

logger = logging.getLogger("WaveForge")


def load_file(file_path, sr: Optional[int] = None) -> PCMBuffer:
    """
    Decode an audio file with librosa.

    Args:
        file_path: Any format librosa/soundfile can read
        sr: Resample to this rate, keep the file's rate when None

    Returns:
        Buffer with the file's channels
    """
    import librosa

    logger.info(f"Loading file: {file_path}")
    data, samplerate = librosa.load(os.fspath(file_path), sr=sr, mono=False)

    # Convert to (samples, channels)
    if data.ndim > 1:
        data = data.T

    return PCMBuffer(data.astype(np.float32), samplerate)


def save_file(buffer: PCMBuffer, file_path) -> int:
    """Export ``buffer`` as 16-bit PCM WAV."""
    size = write_wav(buffer, file_path)
    logger.info(f"Exported {buffer.duration:.2f}s to {file_path} ({size} bytes)")
    return size
