"""
Edit session: the loaded recording, the effect chain applied to it and the
buffer currently shown and played.
"""
from __future__ import annotations
import logging
from typing import Optional

import numpy as np

from . import effects
from .audio_io import load_file, save_file
from .buffer import PCMBuffer
from .config import UNDO_CONFIG, WAVEFORM_CONFIG
from .errors import EffectError, EmptyInput
from .playback import PlaybackController
from .renderer import OfflineRenderer
from .spectrogram import SpectrogramFrame, compute_spectrogram
from .types import EffectKind, EffectParams, EffectRequest
from .undo_manager import EditState, UndoManager
from .waveform import downsample_waveform
from .wav import encode_wav

logger = logging.getLogger("WaveForge")


class EditSession:
    """
    Holds the original recording and the current processed buffer.

    Every effect is rendered on top of the current buffer, so moving a
    control back to an earlier value does not undo the earlier application.
    The applied requests are kept in ``chain`` so the current buffer can be
    rebuilt from the original with ``rerender()``.
    """

    def __init__(
        self,
        renderer: Optional[OfflineRenderer] = None,
        max_undo: int = UNDO_CONFIG.max_depth,
        seed: Optional[int] = None
    ) -> None:
        """
        Args:
            renderer: Render engine to use; the session owns one when None
            max_undo: Undo history depth
            seed: Seed for reverb seeds (system entropy when None)
        """
        self._owns_renderer = renderer is None
        self._renderer = renderer or OfflineRenderer()
        self._seed_source = np.random.default_rng(seed)
        self.undo_manager = UndoManager(max_depth=max_undo)
        self.playback = PlaybackController(self)
        self.name = ""
        self.original: Optional[PCMBuffer] = None
        self.current: Optional[PCMBuffer] = None
        self.chain: list[EffectRequest] = []
        self.last_error: Optional[EffectError] = None
        logger.info("EditSession initialized")

    # --- Loading ---

    def load(self, buffer: PCMBuffer, name: str = "") -> None:
        """Use ``buffer`` as the new original recording."""
        self.playback.stop()
        self.original = buffer
        self.current = buffer
        self.chain = []
        self.name = name
        self.last_error = None
        self.undo_manager.clear()
        logger.info("Loaded %s %r", name or "buffer", buffer)

    def load_file(self, file_path) -> bool:
        try:
            buffer = load_file(file_path)
        except Exception as e:
            logger.error(f"Failed to load {file_path}: {e}", exc_info=True)
            return False
        self.load(buffer, name=str(file_path))
        return True

    # --- Effects ---

    @property
    def volume(self) -> float:
        return self.playback.volume

    def set_volume(self, gain: float) -> None:
        """Live playback gain; the buffer is not touched."""
        self.playback.volume = gain
        logger.debug("Volume set to %.2f", self.playback.volume)

    def _state(self) -> EditState:
        return EditState(self.current, tuple(self.chain))

    def _restore(self, state: EditState) -> None:
        self.current = state.buffer
        self.chain = list(state.chain)

    def apply_effect(self, kind, params: EffectParams, shape: Optional[str] = None) -> bool:
        """
        Render an effect over the current buffer.

        Returns:
            True on success. On failure ``last_error`` holds the reason and
            the current buffer is unchanged.
        """
        self.last_error = None
        try:
            kind = EffectKind.parse(kind)
            if kind is EffectKind.VOLUME:
                self.set_volume(effects.scalar_param(params, kind))
                return True
            if self.current is None:
                raise EmptyInput("No audio loaded")

            seed = int(self._seed_source.integers(2 ** 63)) if kind is EffectKind.REVERB else None
            request = EffectRequest(kind, params, seed=seed, shape=shape)
            result = effects.apply_request(self.current, request, renderer=self._renderer)
        except EffectError as e:
            self.last_error = e
            logger.error("Effect %s rejected: %s", kind, e)
            return False

        before = self._state()
        self.current = result
        self.chain.append(request)
        self.undo_manager.push_action(f"Apply {request.description}", before, self._state())
        return True

    def reset(self) -> bool:
        """Go back to the original recording (undoable)."""
        if self.original is None or not self.chain:
            return False
        before = self._state()
        self._restore(EditState(self.original, ()))
        self.undo_manager.push_action("Reset effects", before, self._state())
        return True

    def rerender(self) -> PCMBuffer:
        """Rebuild the current buffer from the original by replaying the chain."""
        if self.original is None:
            raise EmptyInput("No audio loaded")
        self.current = effects.render_chain(self.original, self.chain, renderer=self._renderer)
        return self.current

    def undo(self) -> bool:
        state = self.undo_manager.undo()
        if state is None:
            return False
        self._restore(state)
        return True

    def redo(self) -> bool:
        state = self.undo_manager.redo()
        if state is None:
            return False
        self._restore(state)
        return True

    # --- Views and export ---

    def waveform(self, width: int = WAVEFORM_CONFIG.default_width) -> np.ndarray:
        return downsample_waveform(self.current, width)

    def spectrogram(self, width: float = WAVEFORM_CONFIG.default_width) -> tuple[SpectrogramFrame, ...]:
        return compute_spectrogram(self.current, width)

    def to_wav_bytes(self) -> bytes:
        return encode_wav(self.current)

    def export(self, file_path) -> int:
        if self.current is None:
            raise EmptyInput("No audio to export")
        return save_file(self.current, file_path)

    def close(self) -> None:
        self.playback.cleanup()
        if self._owns_renderer:
            self._renderer.close()
        logger.info("EditSession closed")

    def __enter__(self) -> "EditSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
