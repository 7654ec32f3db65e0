"""
Preview playback for WaveForge.
Streams the session's current buffer via sounddevice with a live volume gain.
"""
from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Optional, Callable

import numpy as np

from .config import AUDIO_CONFIG, PlaybackState

if TYPE_CHECKING:
    from .session import EditSession

logger = logging.getLogger("WaveForge")


class PlaybackController:
    """
    Plays whatever buffer the session currently holds.

    Volume is applied while streaming and never written back to the buffer.
    """
    __slots__ = (
        '_session', '_stream', '_current_frame', '_state', '_volume',
        '_on_position_changed', '_on_state_changed', '_disposed'
    )

    def __init__(
        self,
        session: "EditSession",
        on_position_changed: Optional[Callable[[float], None]] = None,
        on_state_changed: Optional[Callable[[PlaybackState], None]] = None
    ) -> None:
        """
        Args:
            session: Session whose current buffer is played
            on_position_changed: Callback for position updates (seconds)
            on_state_changed: Callback for state changes
        """
        self._session = session
        self._stream = None
        self._current_frame: int = 0
        self._state = PlaybackState.STOPPED
        self._volume: float = AUDIO_CONFIG.default_gain
        self._on_position_changed = on_position_changed
        self._on_state_changed = on_state_changed
        self._disposed: bool = False

    @property
    def current_frame(self) -> int:
        """Current playback position in samples."""
        return self._current_frame

    @property
    def current_time(self) -> float:
        """Current playback position in seconds."""
        buffer = self._session.current
        if buffer is None:
            return 0.0
        return self._current_frame / buffer.sample_rate

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, gain: float) -> None:
        """Live gain, limited to [0, AUDIO_CONFIG.max_gain]."""
        self._volume = float(np.clip(gain, 0.0, AUDIO_CONFIG.max_gain))

    def _set_state(self, state: PlaybackState) -> None:
        if self._disposed:
            self._state = state
            return
        if self._state != state:
            self._state = state
            if self._on_state_changed:
                self._on_state_changed(state)

    def _notify_position(self) -> None:
        if self._disposed:
            return
        if self._on_position_changed:
            self._on_position_changed(self.current_time)

    def fill_block(self, outdata: np.ndarray, frames: int) -> bool:
        """
        Mix the next ``frames`` samples into ``outdata`` (frames, out_channels).

        Mono buffers are sent to every output channel; extra buffer channels
        are dropped. Returns False once the end (plus margin) is reached.
        """
        outdata.fill(0)
        buffer = self._session.current
        if buffer is None:
            return False

        start = self._current_frame
        end = min(start + frames, buffer.length)
        if end > start:
            segment = buffer.data[start:end] * self._volume
            out_channels = outdata.shape[1]
            if segment.shape[1] == 1:
                outdata[:end - start] += segment
            else:
                n = min(out_channels, segment.shape[1])
                outdata[:end - start, :n] += segment[:, :n]

        # Prevent digital clipping
        np.clip(outdata, -1.0, 1.0, out=outdata)

        self._current_frame += frames
        return self._current_frame <= buffer.length + AUDIO_CONFIG.playback_end_margin_samples

    def play(self) -> bool:
        """
        Start audio playback.

        Returns:
            True if playback started successfully
        """
        if self._disposed or self.is_playing:
            return False

        buffer = self._session.current
        if buffer is None or buffer.is_empty:
            return False

        import sounddevice as sd

        self._set_state(PlaybackState.PLAYING)

        def playback_callback(outdata, frames, time, status) -> None:
            """Real-time audio callback."""
            try:
                if not self.fill_block(outdata, frames):
                    raise sd.CallbackStop()
            except sd.CallbackStop:
                raise
            except Exception as e:
                logger.error("Playback callback error: %s", e, exc_info=True)
                raise sd.CallbackStop()

        def on_finished() -> None:
            if self._disposed:
                return
            if self._state == PlaybackState.PLAYING:
                self._set_state(PlaybackState.STOPPED)
                self._current_frame = 0
                self._notify_position()

        try:
            self._stream = sd.OutputStream(
                samplerate=buffer.sample_rate,
                channels=AUDIO_CONFIG.playback_channels,
                blocksize=AUDIO_CONFIG.playback_blocksize,
                callback=playback_callback,
                finished_callback=on_finished
            )
            self._stream.start()
            logger.info("Playback started at frame %d", self._current_frame)
            return True

        except Exception as e:
            logger.error("Failed to start playback: %s", e, exc_info=True)
            self._set_state(PlaybackState.STOPPED)
            return False

    def pause(self) -> None:
        """Pause playback (keep position)."""
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning("Error stopping stream: %s", e)
            self._stream = None

        self._set_state(PlaybackState.PAUSED)

    def stop(self) -> None:
        """Stop playback and reset position."""
        self.pause()
        self._current_frame = 0
        self._set_state(PlaybackState.STOPPED)
        self._notify_position()
        logger.info("Playback stopped")

    def seek(self, sample_index: int) -> None:
        buffer = self._session.current
        total_len = buffer.length if buffer is not None else 0
        self._current_frame = max(0, min(sample_index, total_len))
        self._notify_position()

    def cleanup(self) -> None:
        """Release the stream; no callbacks fire afterwards."""
        self._disposed = True
        self._on_position_changed = None
        self._on_state_changed = None

        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning("Error closing stream: %s", e)
            self._stream = None
        self._state = PlaybackState.STOPPED
