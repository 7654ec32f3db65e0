"""
Type definitions for the WaveForge core module.
Provides type aliases, the effect kind enumeration and effect requests.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from .errors import InvalidParameter, UnsupportedEffect

# Audio data types
AudioArray = NDArray[np.float32]  # Shape: (samples, channels)
MonoArray = NDArray[np.float32]   # Shape: (samples,)

# Callback types
ProgressCallback = Callable[[int, int, str], None]  # (current, total, status)

EffectParams = Union[float, Sequence[float]]


class StageFunc(Protocol):
    """Protocol for graph stages that process a block of audio."""
    def __call__(self, data: AudioArray, sr: int) -> AudioArray: ...


class EffectKind(str, Enum):
    """Effects the dispatch layer understands."""
    FILTER = "filter"
    TIME_STRETCH = "timeStretch"
    PITCH_SHIFT = "pitchShift"
    REVERB = "reverb"
    NOISE_GATE = "noiseGate"
    COMPRESSION = "compression"
    EQ = "eq"
    VOLUME = "volume"

    @classmethod
    def parse(cls, name: Union[str, "EffectKind"]) -> "EffectKind":
        """Accept an enum member, its value ("timeStretch") or snake case ("time_stretch")."""
        if isinstance(name, cls):
            return name
        key = str(name).strip()
        for kind in cls:
            if key == kind.value or key.lower() == kind.name.lower():
                return kind
        raise UnsupportedEffect(f"Unknown effect kind: {name!r}")


@dataclass(frozen=True)
class EffectRequest:
    """
    One effect application, consumed once by the dispatch layer.

    ``seed`` pins the random source of effects that use one (reverb) so the
    request can be replayed bit-for-bit. ``shape`` is only read by the
    filter kind.
    """
    kind: EffectKind
    params: EffectParams
    seed: Optional[int] = None
    shape: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EffectKind.parse(self.kind))
        params = self.params
        if isinstance(params, np.ndarray) and params.ndim == 0:
            params = params.item()
        if not np.isscalar(params):
            try:
                params = tuple(params)
            except TypeError as e:
                raise InvalidParameter(
                    f"{self.kind.value} expects a number or a list of numbers, got {self.params!r}"
                ) from e
        object.__setattr__(self, "params", params)

    @property
    def description(self) -> str:
        if self.kind is EffectKind.FILTER:
            return f"{self.kind.value} ({self.shape or 'lowpass'} {self.params})"
        return f"{self.kind.value} ({self.params})"
