"""Id generation for score entities."""

from __future__ import annotations

import itertools
import uuid
from typing import Callable

IdGenerator = Callable[[], str]


def _make_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def event_id() -> str:
    return _make_id("evt")


def note_id() -> str:
    return _make_id("note")


def measure_id() -> str:
    return _make_id("m")


def chord_id() -> str:
    return _make_id("chord")


def staff_id() -> str:
    return _make_id("staff")


def sequential_ids(prefix: str, start: int = 1) -> IdGenerator:
    """
    Deterministic generator yielding ``prefix-1``, ``prefix-2``, ...

    Commands that synthesize events use this so that re-executing them
    (redo) reproduces the same ids.
    """
    counter = itertools.count(start)
    return lambda: f"{prefix}-{next(counter)}"
