"""
score_editor - Score model and command engine for a notation editor

Holds the immutable score data model, the exact quant-based time
arithmetic, and the command/undo engine every edit goes through.
Rendering, playback and file export read Score snapshots from here.
"""

__version__ = "1.0.0"

from score_editor.core.models import Score
from score_editor.core.engine import ScoreEngine
from score_editor.config import EditorConfig

__all__ = ["Score", "ScoreEngine", "EditorConfig", "__version__"]
