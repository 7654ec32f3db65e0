"""
WaveForge Core Module

This module contains the offline processing core:
- PCMBuffer: Immutable multi-channel sample buffer
- OfflineRenderer / SignalGraph: Offline render engine
- effects: Effect library and dispatch
- waveform / spectrogram: Visualization analysis
- wav: 16-bit PCM WAV export
- EditSession: Original recording, effect chain and current buffer
"""
from .buffer import PCMBuffer
from .renderer import OfflineRenderer, SignalGraph, Stage
from .session import EditSession
from .undo_manager import UndoManager, EditState
from .types import EffectKind, EffectRequest
from .errors import (
    EffectError,
    InvalidParameter,
    UnsupportedEffect,
    EmptyInput,
    RenderFailure,
)
from .config import (
    AUDIO_CONFIG,
    FILTER_CONFIG,
    EFFECTS_CONFIG,
    SPECTROGRAM_CONFIG,
    WAVEFORM_CONFIG,
    UNDO_CONFIG,
    PlaybackState
)
from .effects import apply_effect, apply_request, render_chain
from .waveform import downsample_waveform
from .spectrogram import compute_spectrogram
from .wav import encode_wav, write_wav
from . import biquad
from . import effects

__all__ = [
    # Main classes
    'PCMBuffer',
    'OfflineRenderer',
    'SignalGraph',
    'Stage',
    'EditSession',
    'UndoManager',
    'EditState',
    'EffectKind',
    'EffectRequest',
    # Errors
    'EffectError',
    'InvalidParameter',
    'UnsupportedEffect',
    'EmptyInput',
    'RenderFailure',
    # Config
    'AUDIO_CONFIG',
    'FILTER_CONFIG',
    'EFFECTS_CONFIG',
    'SPECTROGRAM_CONFIG',
    'WAVEFORM_CONFIG',
    'UNDO_CONFIG',
    'PlaybackState',
    # Functions
    'apply_effect',
    'apply_request',
    'render_chain',
    'downsample_waveform',
    'compute_spectrogram',
    'encode_wav',
    'write_wav',
    # Submodules
    'biquad',
    'effects',
]
