"""WaveForge: offline audio effects, analysis and WAV export."""

__version__ = "0.1.0"
