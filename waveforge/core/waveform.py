"""
Waveform downsampling for display.
"""
from __future__ import annotations
import math

import numpy as np

from .buffer import PCMBuffer
from .config import WAVEFORM_CONFIG
from .errors import EmptyInput, InvalidParameter
from .types import MonoArray


def downsample_waveform(buffer: PCMBuffer, width: int) -> MonoArray:
    """
    One representative sample per pixel from channel 0.

    step = ceil(length / width) and pixel x shows sample floor(x * step).
    No min/max aggregation is done, so dense material aliases. Pixels that
    land past the end of the buffer read 0.0.

    Args:
        buffer: Buffer to draw
        width: Target width in pixels

    Returns:
        ``width`` float32 values in [-1, 1]
    """
    if buffer is None:
        raise EmptyInput("No buffer to draw")
    if int(width) != width or width <= 0:
        raise InvalidParameter(f"Width must be a positive integer, got {width}")
    width = int(width)

    data = buffer.channel(0)
    n = len(data)
    out = np.zeros(width, dtype=np.float32)
    if n == 0:
        return out

    step = math.ceil(n / width)
    index = np.floor(np.arange(width) * step).astype(np.int64)
    valid = index < n
    out[valid] = data[index[valid]]
    return out


def waveform_points(values: MonoArray, height: int = WAVEFORM_CONFIG.default_height) -> list[tuple[float, float]]:
    """Map values to (x, y) canvas points, y = (1 + v) * height / 2."""
    return [(float(x), (1.0 + float(v)) * height / 2) for x, v in enumerate(values)]
