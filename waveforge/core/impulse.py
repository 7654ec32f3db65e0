"""
Synthetic reverb impulse responses.
"""
from __future__ import annotations
import logging
from typing import Optional

import numpy as np

from .buffer import PCMBuffer
from .config import EFFECTS_CONFIG
from .errors import InvalidParameter
from .types import AudioArray

logger = logging.getLogger("WaveForge")


def make_rng(rng: Optional[np.random.Generator] = None, seed: Optional[int] = None) -> np.random.Generator:
    """Explicit random source; fresh system entropy when neither is given."""
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def generate_impulse_response(
    sr: int,
    seconds: float = EFFECTS_CONFIG.reverb_seconds,
    channels: int = EFFECTS_CONFIG.impulse_channels,
    rng: Optional[np.random.Generator] = None
) -> PCMBuffer:
    """
    Generate a decaying noise burst approximating a diffuse reverb tail.

    Sample i of N is uniform(-1, 1) * (1 - i/N)**2, independently per channel.

    Args:
        sr: Sample rate
        seconds: Tail length
        channels: Number of impulse channels (stereo by default)
        rng: Random source, fresh entropy if None

    Returns:
        Impulse response buffer of int(sr * seconds) samples
    """
    length = int(sr * seconds)
    if length <= 0:
        raise InvalidParameter(f"Impulse response length must be positive, got {length}")
    if channels < 1:
        raise InvalidParameter(f"Impulse response needs at least one channel, got {channels}")

    rng = make_rng(rng)
    envelope = (1.0 - np.arange(length, dtype=np.float64) / length) ** 2
    noise = rng.uniform(-1.0, 1.0, size=(length, channels))
    return PCMBuffer(noise * envelope[:, np.newaxis], sr)


def normalization_scale(impulse: AudioArray, sr: int) -> float:
    """
    Gain applied to an impulse response before convolution.

    Matches the normalization of a Web Audio ConvolverNode: divide by the RMS
    power over all channels, apply a -58 dB calibration and compensate for
    sample rates other than 44.1 kHz.
    """
    data = np.asarray(impulse, dtype=np.float64)
    if data.size == 0:
        return 1.0

    power = float(np.sqrt(np.sum(data ** 2) / data.size))
    if not np.isfinite(power) or power < EFFECTS_CONFIG.impulse_min_power:
        power = EFFECTS_CONFIG.impulse_min_power

    scale = 1.0 / power
    scale *= 10 ** (EFFECTS_CONFIG.impulse_gain_calibration_db * 0.05)
    scale *= EFFECTS_CONFIG.impulse_calibration_samplerate / sr

    # True-stereo responses feed two convolvers per output channel
    if data.ndim > 1 and data.shape[1] == 4:
        scale *= 0.5

    logger.debug("Impulse normalization scale %.6f (power %.6f)", scale, power)
    return scale
