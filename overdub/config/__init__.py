"""Simple YAML configuration loader for overdub."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..models.audio import CaptureConstraints

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "overdub.yaml"


class OverdubConfig:
    """overdub configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, uses overdub.yaml
                        in the current directory.
        """
        self.config_file = Path(config_path or DEFAULT_CONFIG_FILENAME)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if not config:
            raise ValueError("Configuration file is empty")

        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (('storage', 'data_directory'), ('logging', 'file_path')):
            if section in config and key in config[section]:
                path = config[section][key]
                if not os.path.isabs(path):
                    config[section][key] = str(config_dir / path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'capture.sample_rate').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        node = self.config
        for key in key_path.split('.'):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'mixer.decode_workers')
            value: Value to set
        """
        *parents, leaf = key_path.split('.')
        section = self.config
        for key in parents:
            section = section.setdefault(key, {})
        section[leaf] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_max_file_size(self) -> int:
        return int(self.get('storage.max_file_size_mb', 15)) * 1024 * 1024

    def get_capture_constraints(self) -> CaptureConstraints:
        """Build the capture request from the capture section."""
        sample_rate = int(self.get('capture.sample_rate', 44100))
        channels = int(self.get('capture.channels', 1))
        chunk_size = int(self.get('capture.chunk_size', sample_rate // 10))
        if channels not in (1, 2):
            raise ValueError(f"capture.channels must be 1 or 2, got {channels}")
        return CaptureConstraints(sample_rate=sample_rate, channels=channels, chunk_size=chunk_size)

    def get_tick_interval(self) -> float:
        """Seconds between duration updates while recording."""
        return int(self.get('capture.tick_interval_ms', 100)) / 1000.0

    def get_decode_workers(self) -> int:
        return int(self.get('mixer.decode_workers', 4))

    def get_playback_lead_seconds(self) -> float:
        return int(self.get('mixer.playback_lead_ms', 100)) / 1000.0
