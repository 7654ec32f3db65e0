"""
Offline render engine for WaveForge.

A SignalGraph is a chain source -> stage(s) -> sink built for one render
call. OfflineRenderer executes it synchronously over the whole buffer and
returns a brand-new PCMBuffer sized for the graph's output length.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .buffer import PCMBuffer
from .errors import EffectError, EmptyInput, InvalidParameter, RenderFailure
from .types import AudioArray, ProgressCallback, StageFunc

logger = logging.getLogger("WaveForge")


@dataclass(frozen=True)
class Stage:
    """One processing node: a pure (data, sr) -> data function."""
    name: str
    func: StageFunc


class SignalGraph:
    """
    Ephemeral processing chain for a single render.

    The sink takes whatever the last stage produced and fits it to
    ``output_length`` samples (zero padding or truncating) with the source's
    channel count; a mono result is copied to every channel.
    """
    __slots__ = ('name', 'output_length', 'stages')

    def __init__(self, name: str, output_length: int) -> None:
        if output_length < 0:
            raise InvalidParameter(f"Output length must be non-negative, got {output_length}")
        self.name = name
        self.output_length = int(output_length)
        self.stages: list[Stage] = []

    def connect(self, name: str, func: StageFunc) -> "SignalGraph":
        """Append a stage after the current last one."""
        self.stages.append(Stage(name, func))
        return self  # Fluent API

    def __len__(self) -> int:
        return len(self.stages)

    def __repr__(self) -> str:
        chain = " -> ".join(["source", *(s.name for s in self.stages), "sink"])
        return f"SignalGraph({self.name}: {chain}, length={self.output_length})"


def fit_to_sink(data: AudioArray, length: int, channels: int) -> AudioArray:
    """Pad/truncate to ``length`` samples and up-mix mono to ``channels``."""
    if data.ndim == 1:
        data = data[:, np.newaxis]

    if data.shape[1] != channels:
        if data.shape[1] == 1:
            data = np.repeat(data, channels, axis=1)
        else:
            raise RenderFailure(
                f"Stage produced {data.shape[1]} channels, sink expects {channels}"
            )

    out = np.zeros((length, channels), dtype=np.float32)
    n = min(length, data.shape[0])
    out[:n] = data[:n]
    return out


class OfflineRenderer:
    """
    Explicit offline render engine, owned by the caller.

    Use as a context manager or call close() when done. A closed renderer
    refuses new renders.
    """

    def __init__(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        """
        Args:
            progress_callback: Called as (stage_index, total_stages, stage_name)
        """
        self._progress_callback = progress_callback
        self._cancel_event = threading.Event()
        self._closed = False
        self.renders_completed = 0
        logger.debug("OfflineRenderer created")

    @property
    def closed(self) -> bool:
        return self._closed

    def cancel(self) -> None:
        """Request that the render in progress stops before its next stage."""
        self._cancel_event.set()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._progress_callback = None
            logger.debug("OfflineRenderer closed after %d renders", self.renders_completed)

    def __enter__(self) -> "OfflineRenderer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def render(self, buffer: Optional[PCMBuffer], graph: SignalGraph) -> PCMBuffer:
        """
        Run ``graph`` over ``buffer`` and return the rendered result.

        A cancel() issued before the render starts cancels it; the request is
        consumed once the render returns or fails.

        Raises:
            EmptyInput: buffer is None
            RenderFailure: renderer closed, render cancelled or a stage failed
        """
        if self._closed:
            raise RenderFailure("Renderer is closed")
        if buffer is None:
            raise EmptyInput("No buffer to render")

        try:
            return self._run(buffer, graph)
        finally:
            self._cancel_event.clear()

    def _check_cancelled(self, graph: SignalGraph, where: str) -> None:
        if self._cancel_event.is_set():
            logger.info("Render of %s cancelled before %s", graph.name, where)
            raise RenderFailure(f"Render of {graph.name} cancelled before {where}")

    def _run(self, buffer: PCMBuffer, graph: SignalGraph) -> PCMBuffer:
        sr = buffer.sample_rate
        channels = buffer.number_of_channels
        total = len(graph.stages)
        logger.debug("Rendering %r", graph)

        data: AudioArray = buffer.data
        for index, stage in enumerate(graph.stages):
            self._check_cancelled(graph, f"stage {stage.name}")
            try:
                data = stage.func(data, sr)
            except EffectError:
                raise
            except Exception as e:
                logger.error("Stage %s of %s failed: %s", stage.name, graph.name, e, exc_info=True)
                raise RenderFailure(f"Stage {stage.name} failed: {e}") from e

            if self._progress_callback:
                self._progress_callback(index + 1, total, stage.name)

        self._check_cancelled(graph, "sink")
        try:
            result = PCMBuffer(fit_to_sink(data, graph.output_length, channels), sr)
        except MemoryError as e:
            raise RenderFailure(f"Cannot allocate {graph.output_length} samples for {graph.name}") from e

        self.renders_completed += 1
        logger.info("Rendered %s: %d -> %d samples", graph.name, buffer.length, result.length)
        return result
