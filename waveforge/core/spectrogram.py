"""
Short-time spectral analysis for the spectrogram view.

Frames are non-overlapping windows of ``n_fft`` samples from channel 0.
Each frame yields n_fft/2 byte magnitudes computed like a Web Audio
AnalyserNode (Blackman window, temporal smoothing, dB range mapped to
0..255). The whole sequence is computed eagerly; a drawing layer can
consume it at its own pace.
"""
from __future__ import annotations
import colorsys
import math
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
from scipy.signal import get_window

from .buffer import PCMBuffer
from .config import SPECTROGRAM_CONFIG
from .errors import EmptyInput, InvalidParameter

RGB = tuple[int, int, int]


@lru_cache(maxsize=None)
def bin_hue(value: int) -> float:
    """Hue in degrees: 240 (blue) for 0 down towards 0 (red) for 255."""
    return (1 - value / 256) * SPECTROGRAM_CONFIG.max_hue


@lru_cache(maxsize=None)
def bin_color(value: int) -> RGB:
    """RGB colour of a byte magnitude (HSL, full saturation, 50% lightness)."""
    r, g, b = colorsys.hls_to_rgb(
        bin_hue(value) / 360.0,
        SPECTROGRAM_CONFIG.lightness,
        SPECTROGRAM_CONFIG.saturation,
    )
    return (round(r * 255), round(g * 255), round(b * 255))


def hsl_css(value: int) -> str:
    return f"hsl({bin_hue(value)}, 100%, 50%)"


@dataclass(frozen=True, eq=False)
class SpectrogramFrame:
    """One time slice of the spectrogram."""
    index: int
    x: float
    width: float
    magnitudes: np.ndarray  # uint8, low frequency first

    @property
    def bin_count(self) -> int:
        return len(self.magnitudes)

    def colors(self) -> list[RGB]:
        return [bin_color(int(v)) for v in self.magnitudes]

    def cells(self, height: float) -> list[tuple[float, float, float, float, RGB]]:
        """
        Rectangles (x, y, w, h, rgb) for this slice, bin 0 at the bottom.
        """
        cell_h = height / self.bin_count
        return [
            (self.x, height - (i + 1) * cell_h, self.width, cell_h, bin_color(int(v)))
            for i, v in enumerate(self.magnitudes)
        ]


def byte_frequency_frames(
    samples: np.ndarray,
    n_fft: int = SPECTROGRAM_CONFIG.n_fft,
    min_db: float = SPECTROGRAM_CONFIG.min_decibels,
    max_db: float = SPECTROGRAM_CONFIG.max_decibels,
    smoothing: float = SPECTROGRAM_CONFIG.smoothing_time_constant
) -> np.ndarray:
    """
    Byte magnitude spectra of consecutive non-overlapping frames.

    Args:
        samples: Mono signal
        n_fft: Window size (even)
        min_db / max_db: dB range mapped onto 0..255
        smoothing: Weight of the previous frame (0 = no smoothing)

    Returns:
        uint8 array of shape (ceil(len / n_fft), n_fft // 2)
    """
    if n_fft < 2 or n_fft % 2:
        raise InvalidParameter(f"FFT size must be an even number >= 2, got {n_fft}")
    if not min_db < max_db:
        raise InvalidParameter(f"min_db ({min_db}) must be below max_db ({max_db})")
    if not 0.0 <= smoothing < 1.0:
        raise InvalidParameter(f"Smoothing must be within [0, 1), got {smoothing}")

    n = len(samples)
    bins = n_fft // 2
    num_frames = math.ceil(n / n_fft)
    if num_frames == 0:
        return np.zeros((0, bins), dtype=np.uint8)

    padded = np.zeros(num_frames * n_fft, dtype=np.float64)
    padded[:n] = samples
    frames = padded.reshape(num_frames, n_fft) * get_window("blackman", n_fft)

    magnitude = np.abs(np.fft.rfft(frames, axis=1))[:, :bins] / n_fft

    smoothed = np.empty_like(magnitude)
    previous = np.zeros(bins)
    for i in range(num_frames):
        previous = smoothing * previous + (1.0 - smoothing) * magnitude[i]
        smoothed[i] = previous

    with np.errstate(divide="ignore"):
        db = 20 * np.log10(smoothed)
    scaled = np.floor((db - min_db) * (255.0 / (max_db - min_db)))
    return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)


def compute_spectrogram(
    buffer: PCMBuffer,
    width: float,
    n_fft: int = SPECTROGRAM_CONFIG.n_fft
) -> tuple[SpectrogramFrame, ...]:
    """
    Analyse channel 0 of ``buffer`` into drawable frames.

    Each frame is ``width / (length / n_fft)`` pixels wide and placed after
    the previous one.
    """
    if buffer is None:
        raise EmptyInput("No buffer to analyse")
    if width <= 0:
        raise InvalidParameter(f"Width must be positive, got {width}")

    samples = buffer.channel(0)
    if len(samples) == 0:
        return ()

    spectra = byte_frequency_frames(samples, n_fft)
    slice_width = width / (len(samples) / n_fft)
    return tuple(
        SpectrogramFrame(index=i, x=i * slice_width, width=slice_width, magnitudes=row)
        for i, row in enumerate(spectra)
    )


def spectrogram_image(frames: tuple[SpectrogramFrame, ...], width: int, height: int) -> np.ndarray:
    """
    Rasterize frames into an (height, width, 3) uint8 RGB image.

    Pixels not covered by any frame stay black.
    """
    if width <= 0 or height <= 0:
        raise InvalidParameter(f"Image size must be positive, got {width}x{height}")

    image = np.zeros((height, width, 3), dtype=np.uint8)
    if not frames:
        return image

    palette = np.array([bin_color(v) for v in range(256)], dtype=np.uint8)
    bins = frames[0].bin_count
    # Row 0 is the top of the image (highest frequency)
    row_bins = ((height - 1 - np.arange(height)) * bins) // height

    for frame in frames:
        x0 = int(math.floor(frame.x))
        x1 = min(width, max(x0 + 1, int(math.floor(frame.x + frame.width))))
        if x0 >= width:
            break
        column = palette[frame.magnitudes[row_bins]]
        image[:, x0:x1] = column[:, np.newaxis, :]
    return image
