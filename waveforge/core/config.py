"""
Centralized configuration for WaveForge.
All magic numbers and default settings in one place.
"""
from dataclasses import dataclass
from enum import Enum, auto


class PlaybackState(Enum):
    """Playback state enumeration."""
    STOPPED = auto()
    PLAYING = auto()
    PAUSED = auto()


@dataclass(frozen=True, slots=True)
class AudioConfig:
    """Audio engine configuration."""
    default_samplerate: int = 44100
    playback_blocksize: int = 4096
    playback_channels: int = 2
    playback_end_margin_samples: int = 22050  # ~0.5s buffer at end
    max_gain: float = 2.0
    default_gain: float = 1.0


@dataclass(frozen=True, slots=True)
class FilterConfig:
    """Biquad defaults."""
    default_shape: str = "lowpass"
    default_q: float = 0.7071  # Butterworth; shelves use slope 1 (same alpha)


@dataclass(frozen=True, slots=True)
class EffectsConfig:
    """Default effect parameters."""
    # Pitch shift remaps inside blocks of this many samples (None = whole buffer)
    pitch_block_size: int | None = 4096

    # Reverb
    reverb_seconds: float = 2.0
    impulse_channels: int = 2
    impulse_gain_calibration_db: float = -58.0
    impulse_calibration_samplerate: float = 44100.0
    impulse_min_power: float = 0.000125

    # Compression (amount 0..1 maps onto threshold)
    compressor_threshold_floor_db: float = -50.0
    compressor_threshold_span_db: float = 50.0
    compressor_knee_db: float = 40.0
    compressor_ratio: float = 12.0
    compressor_attack_s: float = 0.0
    compressor_release_s: float = 0.25

    # Three band EQ
    eq_low_frequency: float = 320.0
    eq_mid_frequency: float = 1000.0
    eq_mid_q: float = 0.5
    eq_high_frequency: float = 3200.0
    eq_max_gain_db: float = 40.0


@dataclass(frozen=True, slots=True)
class WaveformConfig:
    """Waveform visualization settings."""
    default_width: int = 800
    default_height: int = 200


@dataclass(frozen=True, slots=True)
class SpectrogramConfig:
    """Spectrogram visualization settings."""
    n_fft: int = 2048
    min_decibels: float = -100.0
    max_decibels: float = -30.0
    smoothing_time_constant: float = 0.8
    max_hue: float = 240.0  # blue for silence, 0 (red) for full scale
    saturation: float = 1.0
    lightness: float = 0.5


@dataclass(frozen=True, slots=True)
class UndoConfig:
    """Undo/Redo configuration."""
    max_depth: int = 50


# Global config instances (immutable singletons)
AUDIO_CONFIG = AudioConfig()
FILTER_CONFIG = FilterConfig()
EFFECTS_CONFIG = EffectsConfig()
WAVEFORM_CONFIG = WaveformConfig()
SPECTROGRAM_CONFIG = SpectrogramConfig()
UNDO_CONFIG = UndoConfig()
