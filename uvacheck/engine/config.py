"""
Configuration management for the uvacheck engine.

This module provides configuration loading with sensible defaults for the
runner. The UVA001 rule itself has no options; the config only decides how
the engine runs it.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

from .types import MatchMode

logger = logging.getLogger(__name__)

CONFIG_NAMES = [".uvacheck.yml", ".uvacheck.yaml", "uvacheck.yml", "uvacheck.yaml"]


@dataclass
class EngineConfig:
    """Configuration for the uvacheck engine."""

    # Reference matching strategy: "symbol" or "syntactic"
    match_mode: str = MatchMode.SYMBOL.value

    # Parallel workers (0 = auto)
    jobs: int = 0

    # Glob patterns of paths to skip
    exclude: List[str] = field(default_factory=lambda: ["**/bin/**", "**/obj/**"])

    # Output caps (0 = unlimited)
    max_findings_per_file: int = 0
    max_total_findings: int = 0

    def __post_init__(self):
        # Raises ValueError for unknown modes
        self.match_mode = MatchMode(self.match_mode).value
        if self.jobs < 0:
            raise ValueError(f"jobs must be >= 0, got {self.jobs}")

    @property
    def mode(self) -> MatchMode:
        return MatchMode(self.match_mode)


def _from_mapping(data: Dict[str, Any]) -> EngineConfig:
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
    return EngineConfig(**{k: v for k, v in data.items() if k in known})


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load configuration from file or use defaults.

    Args:
        config_path: Path to config file (YAML). If None, uses defaults.

    Returns:
        EngineConfig instance
    """
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                file_config = yaml.safe_load(f) or {}
            if not isinstance(file_config, dict):
                raise ValueError("top level must be a mapping")
            return _from_mapping(file_config)
        except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
            logger.warning("Failed to load config from %s: %s; using defaults", config_path, e)

    return EngineConfig()


def get_default_config() -> EngineConfig:
    """Get default configuration without loading from file."""
    return EngineConfig()


def save_config(config: EngineConfig, config_path: str) -> None:
    """
    Save configuration to file.

    Args:
        config: EngineConfig to save
        config_path: Path where to save the config
    """
    directory = os.path.dirname(config_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(asdict(config), f, default_flow_style=False, indent=2)


def find_config_file(start_path: str = ".") -> Optional[str]:
    """
    Find configuration file by walking up the directory tree.

    Looks for .uvacheck.yml, .uvacheck.yaml, uvacheck.yml and uvacheck.yaml
    in that order, starting at ``start_path`` (or its directory when it is a
    file).

    Returns:
        Path to config file or None if not found
    """
    current_path = os.path.abspath(start_path)
    if os.path.isfile(current_path):
        current_path = os.path.dirname(current_path)

    while True:
        for config_name in CONFIG_NAMES:
            config_path = os.path.join(current_path, config_name)
            if os.path.exists(config_path):
                return config_path

        parent_path = os.path.dirname(current_path)
        if parent_path == current_path:
            # Reached the root directory
            break
        current_path = parent_path

    return None
