"""
Resolution Configuration
========================

Thresholds and limits for entity resolution, loaded from a YAML file.

Example ``config/resolution.yaml``::

    thresholds:
      place_name: 0.3
      wine_name: 0.2
      candidate_search: 0.45
      preview_context: 0.15
    candidate_limit: 5
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ResolutionConfig:
    """Configuration for resolution thresholds."""

    place_match_threshold: float = 0.3
    wine_match_threshold: float = 0.2
    search_threshold: float = 0.45
    preview_context_threshold: float = 0.15
    candidate_limit: int = 5

    def __post_init__(self) -> None:
        for name in (
            "place_match_threshold",
            "wine_match_threshold",
            "search_threshold",
            "preview_context_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.candidate_limit <= 0:
            raise ValueError("candidate_limit must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ResolutionConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        thresholds = data.get("thresholds") or {}
        return cls(
            place_match_threshold=float(thresholds.get("place_name", 0.3)),
            wine_match_threshold=float(thresholds.get("wine_name", 0.2)),
            search_threshold=float(thresholds.get("candidate_search", 0.45)),
            preview_context_threshold=float(thresholds.get("preview_context", 0.15)),
            candidate_limit=int(data.get("candidate_limit", 5)),
        )


def load_resolution_config(config_path: Path | str) -> ResolutionConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the resolution.yaml file

    Returns:
        Parsed configuration
    """
    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    return ResolutionConfig.from_dict(data)


def default_config_path() -> Path:
    """
    Path of the default configuration file.

    Uses RESOLUTION_CONFIG_PATH if set, otherwise config/resolution.yaml
    at the project root.
    """
    config_path = os.environ.get("RESOLUTION_CONFIG_PATH")
    if config_path:
        return Path(config_path)
    project_root = Path(__file__).parent.parent.parent
    return project_root / "config" / "resolution.yaml"


# Global config instance
_default_config: ResolutionConfig | None = None


def get_default_config() -> ResolutionConfig:
    """
    Get the default resolution configuration.

    Falls back to built-in defaults when no configuration file exists.
    """
    global _default_config

    if _default_config is None:
        path = default_config_path()
        _default_config = load_resolution_config(path) if path.exists() else ResolutionConfig()

    return _default_config


def reset_default_config() -> None:
    """Reset the default configuration (useful for testing)."""
    global _default_config
    _default_config = None
