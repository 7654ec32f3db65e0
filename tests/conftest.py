"""
Pytest configuration and fixtures for WaveForge tests.
"""
import pytest
import numpy as np

from waveforge.core.buffer import PCMBuffer
from waveforge.core.renderer import OfflineRenderer
from waveforge.core.session import EditSession
from waveforge.core.undo_manager import UndoManager
from waveforge.core.config import AUDIO_CONFIG

SR = AUDIO_CONFIG.default_samplerate


def sine(freq, seconds=1.0, sr=SR, amplitude=1.0):
    t = np.arange(int(sr * seconds)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def rms(x):
    return float(np.sqrt(np.mean(np.asarray(x, dtype=np.float64) ** 2)))


@pytest.fixture
def sample_mono_audio() -> np.ndarray:
    """1 second of 440 Hz mono sine."""
    return sine(440)


@pytest.fixture
def sample_mono_buffer(sample_mono_audio) -> PCMBuffer:
    return PCMBuffer(sample_mono_audio, SR)


@pytest.fixture
def sample_stereo_buffer() -> PCMBuffer:
    """1 second of stereo sine (440 Hz left, 880 Hz right)."""
    return PCMBuffer(np.column_stack((sine(440), sine(880))), SR)


@pytest.fixture
def short_buffer() -> PCMBuffer:
    """Quarter second of stereo audio at 8 kHz, for the slower effects."""
    sr = 8000
    return PCMBuffer(np.column_stack((sine(300, 0.25, sr, 0.5), sine(600, 0.25, sr, 0.5))), sr)


@pytest.fixture
def silence_buffer() -> PCMBuffer:
    """1 second of mono silence."""
    return PCMBuffer.silence(SR, channels=1, sample_rate=SR)


@pytest.fixture
def renderer():
    engine = OfflineRenderer()
    yield engine
    engine.close()


@pytest.fixture
def session(sample_stereo_buffer):
    """Session with the stereo sine loaded and a fixed seed."""
    s = EditSession(seed=1234)
    s.load(sample_stereo_buffer, name="sine")
    yield s
    s.close()


@pytest.fixture
def undo_manager() -> UndoManager:
    return UndoManager(max_depth=10)
