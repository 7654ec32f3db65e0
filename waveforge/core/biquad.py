"""
Second-order IIR (biquad) stage.
Coefficients follow the Audio EQ Cookbook (R. Bristow-Johnson).
"""
from __future__ import annotations
import math
import numpy as np
from scipy.signal import freqz, lfilter

from .buffer import PCMBuffer
from .config import FILTER_CONFIG
from .errors import InvalidParameter
from .types import AudioArray

SHAPES = ("lowpass", "highpass", "bandpass", "lowshelf", "highshelf", "peaking")
GAIN_SHAPES = ("lowshelf", "highshelf", "peaking")


def validate(shape: str, frequency: float, sr: int, Q: float) -> None:
    """Reject unknown shapes, Q <= 0 and frequencies outside (0, Nyquist)."""
    if shape not in SHAPES:
        raise InvalidParameter(f"Unknown filter shape {shape!r}, expected one of {SHAPES}")
    nyquist = 0.5 * sr
    if not 0 < frequency < nyquist:
        raise InvalidParameter(f"Frequency {frequency} Hz outside (0, {nyquist}) Hz")
    if not Q > 0:
        raise InvalidParameter(f"Q must be positive, got {Q}")


def biquad_coefficients(
    shape: str,
    frequency: float,
    sr: int,
    Q: float = FILTER_CONFIG.default_q,
    gain_db: float = 0.0
) -> tuple[np.ndarray, np.ndarray]:
    """
    Compute normalized (b, a) coefficients for one biquad section.

    Args:
        shape: One of SHAPES
        frequency: Cutoff / center / shelf frequency in Hz
        sr: Sample rate
        Q: Quality factor (bandwidth control)
        gain_db: Gain in dB, only used by shelf and peaking shapes

    Returns:
        (b, a) arrays with a[0] == 1
    """
    validate(shape, frequency, sr, Q)

    A = 10 ** (gain_db / 40)
    omega = 2 * math.pi * frequency / sr
    sn, cs = math.sin(omega), math.cos(omega)
    alpha = sn / (2 * Q)

    if shape == "lowpass":
        b0, b1, b2 = (1 - cs) / 2, 1 - cs, (1 - cs) / 2
        a0, a1, a2 = 1 + alpha, -2 * cs, 1 - alpha
    elif shape == "highpass":
        b0, b1, b2 = (1 + cs) / 2, -(1 + cs), (1 + cs) / 2
        a0, a1, a2 = 1 + alpha, -2 * cs, 1 - alpha
    elif shape == "bandpass":
        # Constant 0 dB peak gain
        b0, b1, b2 = alpha, 0.0, -alpha
        a0, a1, a2 = 1 + alpha, -2 * cs, 1 - alpha
    elif shape == "peaking":
        b0, b1, b2 = 1 + alpha * A, -2 * cs, 1 - alpha * A
        a0, a1, a2 = 1 + alpha / A, -2 * cs, 1 - alpha / A
    elif shape == "lowshelf":
        sq = 2 * math.sqrt(A) * alpha
        b0 = A * ((A + 1) - (A - 1) * cs + sq)
        b1 = 2 * A * ((A - 1) - (A + 1) * cs)
        b2 = A * ((A + 1) - (A - 1) * cs - sq)
        a0 = (A + 1) + (A - 1) * cs + sq
        a1 = -2 * ((A - 1) + (A + 1) * cs)
        a2 = (A + 1) + (A - 1) * cs - sq
    else:  # highshelf
        sq = 2 * math.sqrt(A) * alpha
        b0 = A * ((A + 1) + (A - 1) * cs + sq)
        b1 = -2 * A * ((A - 1) + (A + 1) * cs)
        b2 = A * ((A + 1) + (A - 1) * cs - sq)
        a0 = (A + 1) - (A - 1) * cs + sq
        a1 = 2 * ((A - 1) - (A + 1) * cs)
        a2 = (A + 1) - (A - 1) * cs - sq

    b = np.array([b0, b1, b2]) / a0
    a = np.array([a0, a1, a2]) / a0
    return b, a


def apply_biquad_array(
    data: AudioArray,
    sr: int,
    shape: str,
    frequency: float,
    Q: float = FILTER_CONFIG.default_q,
    gain_db: float = 0.0
) -> AudioArray:
    """Filter a (samples, channels) array along the time axis."""
    b, a = biquad_coefficients(shape, frequency, sr, Q, gain_db)
    if len(data) == 0:
        return np.array(data, dtype=np.float32, copy=True)
    return lfilter(b, a, data, axis=0).astype(np.float32)


def apply_biquad(
    buffer: PCMBuffer,
    shape: str,
    frequency: float,
    Q: float = FILTER_CONFIG.default_q,
    gain_db: float = 0.0
) -> PCMBuffer:
    """
    Apply one biquad section to every channel of a buffer.

    Returns:
        New buffer, same shape and sample rate
    """
    return buffer.with_data(apply_biquad_array(buffer.data, buffer.sample_rate, shape, frequency, Q, gain_db))


def frequency_response(
    shape: str,
    frequency: float,
    sr: int,
    freqs: np.ndarray,
    Q: float = FILTER_CONFIG.default_q,
    gain_db: float = 0.0,
    db: bool = True
) -> np.ndarray:
    """
    Magnitude response of a biquad at the given frequencies (Hz).

    Args:
        db: Return 20*log10(|H|) instead of linear magnitude
    """
    b, a = biquad_coefficients(shape, frequency, sr, Q, gain_db)
    _, h = freqz(b, a, worN=np.asarray(freqs, dtype=np.float64), fs=sr)
    mag = np.abs(h)
    if db:
        return 20 * np.log10(np.maximum(mag, 1e-12))
    return mag
