"""
Undo/redo history for an edit session.

Actions hold the session state before and after an edit. Buffers are
immutable, so a state snapshot is just a reference to the buffer plus the
effect chain that produced it.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from .buffer import PCMBuffer
from .config import UNDO_CONFIG
from .types import EffectRequest

logger = logging.getLogger("WaveForge")


@dataclass(frozen=True)
class EditState:
    """Current buffer and the chain of requests applied to the original."""
    buffer: Optional[PCMBuffer]
    chain: tuple[EffectRequest, ...] = ()


@dataclass(frozen=True)
class UndoAction:
    description: str
    before: EditState
    after: EditState


class UndoManager:
    """Bounded undo/redo stacks of edit actions."""

    def __init__(self, max_depth: int = UNDO_CONFIG.max_depth) -> None:
        self.undo_stack: list[UndoAction] = []
        self.redo_stack: list[UndoAction] = []
        self.max_depth = max_depth

    def __len__(self) -> int:
        return len(self.undo_stack)

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    @property
    def undo_description(self) -> Optional[str]:
        return self.undo_stack[-1].description if self.undo_stack else None

    @property
    def redo_description(self) -> Optional[str]:
        return self.redo_stack[-1].description if self.redo_stack else None

    def push_action(self, description: str, before: EditState, after: EditState) -> None:
        self.undo_stack.append(UndoAction(description, before, after))
        if len(self.undo_stack) > self.max_depth:
            self.undo_stack.pop(0)
        self.redo_stack.clear()
        logger.debug("Undo action pushed: %s", description)

    def undo(self) -> Optional[EditState]:
        """Pop the last action; returns the state to restore, or None."""
        if not self.undo_stack:
            logger.debug("Nothing to undo")
            return None

        action = self.undo_stack.pop()
        self.redo_stack.append(action)
        logger.info("Undo: %s", action.description)
        return action.before

    def redo(self) -> Optional[EditState]:
        """Re-apply the last undone action; returns the state to restore, or None."""
        if not self.redo_stack:
            logger.debug("Nothing to redo")
            return None

        action = self.redo_stack.pop()
        self.undo_stack.append(action)
        logger.info("Redo: %s", action.description)
        return action.after

    def clear(self) -> None:
        self.undo_stack.clear()
        self.redo_stack.clear()
        logger.debug("Undo/Redo stacks cleared")
