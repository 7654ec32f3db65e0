"""
PCM buffer value object shared by every WaveForge component.
"""
from __future__ import annotations
from typing import Sequence

import numpy as np

from .errors import InvalidParameter
from .types import AudioArray, MonoArray


class PCMBuffer:
    """
    Immutable multi-channel audio buffer.

    Samples are stored as a read-only float32 array of shape
    (samples, channels). Effects never modify a buffer; they build a new one.
    """
    __slots__ = ('_data', '_sample_rate')

    def __init__(self, data: np.ndarray, sample_rate: int) -> None:
        """
        Args:
            data: Samples, shape (samples,) for mono or (samples, channels)
            sample_rate: Sample rate in Hz
        """
        if int(sample_rate) != sample_rate or sample_rate <= 0:
            raise InvalidParameter(f"Sample rate must be a positive integer, got {sample_rate}")

        arr = np.array(data, dtype=np.float32, copy=True)
        if arr.ndim == 1:
            arr = arr[:, np.newaxis]
        if arr.ndim != 2 or arr.shape[1] < 1:
            raise InvalidParameter(f"Expected (samples, channels) data, got shape {arr.shape}")

        arr.setflags(write=False)
        self._data = arr
        self._sample_rate = int(sample_rate)

    @classmethod
    def from_channels(cls, channels: Sequence[Sequence[float]], sample_rate: int) -> "PCMBuffer":
        """Build a buffer from per-channel sample sequences of equal length."""
        if len(channels) == 0:
            raise InvalidParameter("A buffer needs at least one channel")
        lengths = {len(ch) for ch in channels}
        if len(lengths) != 1:
            raise InvalidParameter(f"Channels differ in length: {sorted(lengths)}")
        return cls(np.column_stack([np.asarray(ch, dtype=np.float32) for ch in channels]), sample_rate)

    @classmethod
    def silence(cls, length: int, channels: int = 1, sample_rate: int = 44100) -> "PCMBuffer":
        """Zero-filled buffer."""
        if length < 0 or channels < 1:
            raise InvalidParameter(f"Invalid silence shape: {length} x {channels}")
        return cls(np.zeros((length, channels), dtype=np.float32), sample_rate)

    # --- Shape ---

    @property
    def data(self) -> AudioArray:
        """Read-only (samples, channels) view."""
        return self._data

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def number_of_channels(self) -> int:
        return self._data.shape[1]

    @property
    def length(self) -> int:
        """Samples per channel."""
        return self._data.shape[0]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.length / self._sample_rate

    @property
    def is_empty(self) -> bool:
        return self.length == 0

    def channel(self, index: int) -> MonoArray:
        """Read-only samples of one channel."""
        if not 0 <= index < self.number_of_channels:
            raise InvalidParameter(f"Channel {index} out of range (0..{self.number_of_channels - 1})")
        return self._data[:, index]

    def channels(self) -> list[MonoArray]:
        return [self._data[:, ch] for ch in range(self.number_of_channels)]

    # --- Derived buffers ---

    def with_data(self, data: np.ndarray) -> "PCMBuffer":
        """New buffer at the same sample rate."""
        return PCMBuffer(data, self._sample_rate)

    def clamped(self) -> "PCMBuffer":
        """Copy with every sample limited to [-1, 1]."""
        return self.with_data(np.clip(self._data, -1.0, 1.0))

    def __len__(self) -> int:
        return self.length

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PCMBuffer):
            return NotImplemented
        return (self._sample_rate == other._sample_rate
                and self._data.shape == other._data.shape
                and bool(np.array_equal(self._data, other._data)))

    __hash__ = None

    def __repr__(self) -> str:
        return (f"PCMBuffer(channels={self.number_of_channels}, length={self.length}, "
                f"sample_rate={self._sample_rate})")
