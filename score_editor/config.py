"""
Configuration module for the score editor.

Handles engine settings and the defaults used for new scores.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for the command engine."""
    history_limit: int = 100
    log_commands: bool = False


@dataclass
class ScoreDefaults:
    """Defaults applied when a new score is created."""
    title: str = "Untitled"
    bpm: int = 120
    time_signature: str = "4/4"
    key_signature: str = "C"
    clef: str = "treble"  # "treble", "bass", "alto", "tenor"
    measures: int = 2
    staves: int = 1


@dataclass
class EditorConfig:
    """
    Main configuration class for the score editor.

    Handles loading/saving settings.
    """

    engine: EngineConfig = field(default_factory=EngineConfig)
    score: ScoreDefaults = field(default_factory=ScoreDefaults)

    _config_dir: Path = field(default_factory=lambda: Path.home() / ".score_editor")
    _config_file: Optional[Path] = field(default=None)

    def __post_init__(self):
        """Initialize configuration paths."""
        if self._config_file is None:
            self._config_file = self._config_dir / "config.json"

    def save(self) -> None:
        """Save configuration to disk."""
        data = {
            "engine": asdict(self.engine),
            "score": asdict(self.score),
        }

        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_file, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "EditorConfig":
        """Load configuration from disk or create default."""
        config = cls() if config_file is None else cls(_config_file=Path(config_file))

        if config._config_file.exists():
            try:
                with open(config._config_file, "r") as f:
                    data = json.load(f)

                if "engine" in data:
                    config.engine = EngineConfig(**data["engine"])
                if "score" in data:
                    config.score = ScoreDefaults(**data["score"])

            except (json.JSONDecodeError, TypeError, KeyError) as e:
                logger.warning(f"Could not load config file {config._config_file}: {e}")

        return config


# Global configuration instance
_config: Optional[EditorConfig] = None


def get_config() -> EditorConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = EditorConfig.load()
    return _config


def reset_config() -> None:
    """Reset the global configuration to defaults."""
    global _config
    _config = EditorConfig()
