"""Configuration module for svgplot.

This module handles loading and validating configuration from YAML files.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

# Set up logging
logger = logging.getLogger(__name__)

FLATTEN_STRATEGIES = ("arcs", "lines")


class Config:
    """Configuration handler for svgplot."""

    # Default configuration values
    DEFAULT_CONFIG = {
        "bed": {
            "width": 500,  # mm
            "height": 300,  # mm
            "center_x": 0,  # machine X of the bed centre
        },
        "machine": {
            "tool_up": 5.0,  # mm
            "tool_down": 0.0,  # mm
            "work_feed": 1000,  # mm/min
            "travel_feed": 6000,  # mm/min
        },
        "gcode": {
            "header": "Generated by svgplot",
            "decimals": 3,
            "discontinuity": 0.05,  # mm; larger gaps lift the tool
            "noise": 0.005,  # mm; smaller moves are dropped
            "tool_on": [],  # e.g. ["M05"] for a vacuum head
            "tool_off": [],
        },
        "flatten": {
            "strategy": "arcs",  # arcs, lines
            "tolerance": 0.05,  # document units
            "arc_tolerance": 0.05,
            "max_depth": 20,
            "arc_max_depth": 6,
            "detect_circles": True,
            "sample_step": 0.5,
        },
        "layout": {
            "initial_width": 100,  # mm
            "stagger": 22,  # mm
        },
        "sequencer": {
            "delay": 0.05,  # seconds
            "timeout": None,  # seconds, None waits forever
        },
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """Initialize configuration.

        Args:
            config_file: Path to YAML configuration file (optional)
        """
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_config(config_file)

    def load_config(self, config_file: Union[str, Path]) -> bool:
        """Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file

        Returns:
            True if config was loaded successfully, False otherwise
        """
        config_path = Path(config_file)

        if not config_path.exists():
            logger.error(f"Configuration file not found: {config_path}")
            return False

        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f)

            if not user_config:
                logger.warning(f"Empty configuration file: {config_path}")
                return False

            if not isinstance(user_config, dict):
                logger.error(f"Configuration must be a mapping: {config_path}")
                return False

            # Merge user config with default config
            self._merge_config(self.config, user_config)
            logger.info(f"Loaded configuration from {config_path}")
            return True

        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration: {e}")
            return False
        except OSError as e:
            logger.error(f"Error loading configuration: {e}")
            return False

    def _merge_config(self, target: Dict, source: Dict) -> None:
        """Recursively merge source dict into target dict.

        Args:
            target: Target dictionary to merge into
            source: Source dictionary to merge from
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                # Recursively merge nested dictionaries
                self._merge_config(target[key], value)
            else:
                # Replace or add values
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation path.

        Args:
            path: Configuration path (e.g., "bed.width")
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        parts = path.split(".")
        value = self.config

        try:
            for part in parts:
                value = value[part]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, path: str, value: Any) -> None:
        """Set configuration value using dot notation path.

        Args:
            path: Configuration path (e.g., "machine.work_feed")
            value: Value to set
        """
        parts = path.split(".")
        config = self.config

        # Navigate to the parent of the target
        for part in parts[:-1]:
            if part not in config or not isinstance(config[part], dict):
                config[part] = {}
            config = config[part]

        # Set the value
        config[parts[-1]] = value

    def save(self, config_file: Union[str, Path]) -> bool:
        """Save configuration to YAML file.

        Args:
            config_file: Path to YAML configuration file

        Returns:
            True if config was saved successfully, False otherwise
        """
        config_path = Path(config_file)

        try:
            # Create directory if it doesn't exist
            os.makedirs(config_path.parent, exist_ok=True)

            with open(config_path, "w") as f:
                yaml.dump(self.config, f, default_flow_style=False, sort_keys=False)

            logger.info(f"Saved configuration to {config_path}")
            return True

        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error saving configuration: {e}")
            return False

    def validate(self) -> bool:
        """Validate configuration.

        Returns:
            True if configuration is valid, False otherwise
        """
        # Check required sections
        required_sections = ["bed", "machine", "gcode", "flatten"]
        for section in required_sections:
            if not isinstance(self.config.get(section), dict):
                logger.error(f"Missing required configuration section: {section}")
                return False

        # Check bed settings
        for key in ("bed.width", "bed.height"):
            if not self._is_positive(key):
                logger.error(f"{key} must be a positive number")
                return False

        # Check machine settings
        for key in ("machine.work_feed", "machine.travel_feed"):
            if not self._is_positive(key):
                logger.error(f"{key} must be a positive number")
                return False
        if self.get("machine.tool_up", 0) < self.get("machine.tool_down", 0):
            logger.error("machine.tool_up must not be below machine.tool_down")
            return False

        # Check G-code settings
        decimals = self.get("gcode.decimals")
        if not isinstance(decimals, int) or not 0 <= decimals <= 6:
            logger.error(f"gcode.decimals must be an integer between 0 and 6, got {decimals}")
            return False

        # Check flattening settings
        strategy = self.get("flatten.strategy")
        if strategy not in FLATTEN_STRATEGIES:
            logger.error(f"Unknown flatten.strategy: {strategy}")
            return False
        for key in ("flatten.tolerance", "flatten.arc_tolerance", "flatten.sample_step"):
            if not self._is_positive(key):
                logger.error(f"{key} must be a positive number")
                return False

        return True

    def _is_positive(self, path: str) -> bool:
        value = self.get(path)
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def load_config(config_file: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration from file.

    Args:
        config_file: Path to YAML configuration file (optional)

    Returns:
        Config object
    """
    return Config(config_file)
