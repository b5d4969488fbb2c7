"""
Command engine.

Owns the current score and a linear undo/redo history of executed
commands. Every mutation of the score goes through ``dispatch``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from score_editor.config import EditorConfig, get_config
from score_editor.core.commands import Command, UndoRecord
from score_editor.core.ids import IdGenerator, sequential_ids
from score_editor.core.models import Score, create_default_score

logger = logging.getLogger(__name__)

Listener = Callable[[Score], None]


@dataclass
class HistoryEntry:
    """A command in the history together with the record that reverses it."""
    command: Command
    record: Optional[UndoRecord]
    description: str
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def changed(self) -> bool:
        return self.record is not None


def default_score(config: EditorConfig) -> Score:
    """Empty score built from the configured defaults."""
    defaults = config.score
    return create_default_score(
        title=defaults.title,
        num_measures=defaults.measures,
        num_staves=defaults.staves,
        time_signature=defaults.time_signature,
        key_signature=defaults.key_signature,
        bpm=defaults.bpm,
        clef=defaults.clef,
    )


class ScoreEngine:
    """
    Single writer for a score.

    Entries before the cursor can be undone, entries at or after it can be
    redone. Dispatching a new command drops the redo branch.
    """

    def __init__(
        self,
        score: Optional[Score] = None,
        max_history: Optional[int] = None,
        config: Optional[EditorConfig] = None,
    ):
        self.config = config or get_config()
        self.max_history = max_history if max_history is not None else self.config.engine.history_limit
        if self.max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {self.max_history}")

        self._score = score if score is not None else default_score(self.config)
        self._history: List[HistoryEntry] = []
        self._cursor = 0
        self._listeners: List[Listener] = []

    @property
    def score(self) -> Score:
        return self._score

    @property
    def history(self) -> List[HistoryEntry]:
        return list(self._history)

    @property
    def cursor(self) -> int:
        """Number of entries currently applied."""
        return self._cursor

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._history)

    def dispatch(self, command: Command) -> Score:
        """
        Execute a command against the current score and record it.

        Commands whose target no longer exists still get a history entry
        (with no record) so undo/redo steps line up with user actions.

        Args:
            command: Command to execute

        Returns:
            The new current score
        """
        result = command.execute(self._score)
        if self.config.engine.log_commands:
            logger.debug(f"Dispatched {command!r} (changed={result.changed})")

        if command.resets_history:
            self._history.clear()
            self._cursor = 0
            logger.info(f"History cleared by {command.description!r}")
        else:
            del self._history[self._cursor:]
            self._history.append(HistoryEntry(command, result.record, command.description))
            if len(self._history) > self.max_history:
                del self._history[:len(self._history) - self.max_history]
            self._cursor = len(self._history)

        self._set_score(result.score)
        return self._score

    def undo(self) -> bool:
        """
        Undo the most recent applied command.

        Returns:
            True if an entry was undone
        """
        if not self.can_undo():
            return False

        self._cursor -= 1
        entry = self._history[self._cursor]
        if self.config.engine.log_commands:
            logger.debug(f"Undo {entry.command!r}")
        self._set_score(entry.command.undo(self._score, entry.record))
        return True

    def redo(self) -> bool:
        """
        Re-execute the next undone command.

        Returns:
            True if an entry was redone
        """
        if not self.can_redo():
            return False

        entry = self._history[self._cursor]
        result = entry.command.execute(self._score)
        entry.record = result.record
        self._cursor += 1
        if self.config.engine.log_commands:
            logger.debug(f"Redo {entry.command!r}")
        self._set_score(result.score)
        return True

    def clear_history(self) -> None:
        self._history.clear()
        self._cursor = 0
        logger.info("History cleared")

    def load(self, score: Score) -> None:
        """Replace the score wholesale and start a fresh history."""
        self._history.clear()
        self._cursor = 0
        logger.info(f"Loaded score {score.title!r}; history cleared")
        self._set_score(score)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback invoked with the new score after every change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_score(self, score: Score) -> None:
        if score is self._score:
            return
        self._score = score
        for listener in list(self._listeners):
            listener(score)


class EngineRegistry:
    """
    Caller-owned collection of engines addressed by handle.

    Embedding code creates one registry and passes it around instead of
    relying on module-level state.
    """

    def __init__(self, config: Optional[EditorConfig] = None, id_generator: Optional[IdGenerator] = None):
        self.config = config
        self._ids = id_generator or sequential_ids("engine")
        self._engines: Dict[str, ScoreEngine] = {}

    def create(self, score: Optional[Score] = None, handle: Optional[str] = None) -> str:
        """
        Create an engine and return its handle.

        Raises:
            ValueError: If ``handle`` is already registered
        """
        handle = handle or self._ids()
        if handle in self._engines:
            raise ValueError(f"Engine {handle!r} already exists")
        self._engines[handle] = ScoreEngine(score, config=self.config)
        logger.debug(f"Created engine {handle}")
        return handle

    def get(self, handle: str) -> Optional[ScoreEngine]:
        return self._engines.get(handle)

    def destroy(self, handle: str) -> bool:
        """Drop an engine. Returns False if the handle was unknown."""
        engine = self._engines.pop(handle, None)
        if engine is None:
            return False
        engine._listeners.clear()
        logger.debug(f"Destroyed engine {handle}")
        return True

    def __contains__(self, handle: object) -> bool:
        return handle in self._engines

    def __len__(self) -> int:
        return len(self._engines)
