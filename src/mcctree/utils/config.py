"""Configuration utilities for mcctree."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

# Notices go to stderr; stdout carries command output
console = Console(stderr=True)

CONFIG_DIR = Path.home() / ".mcctree"
CONFIG_FILE_YAML = CONFIG_DIR / "config.yaml"

# Default traversal configuration
DEFAULT_TRAVERSAL_CONFIG = {
    "strategy": "deep",  # Options: "deep", "flat"
    "max_depth": None,  # None means the strategy default (deep: 10, flat: 1)
    "run_budget_seconds": 60,
    "call_timeout_seconds": 30,
    "max_workers": 4,
    "max_retries": 3,
}

# Default logging configuration
DEFAULT_LOGGING_CONFIG = {
    "level": "WARNING",
    "format": "detailed",  # Options: "simple", "detailed", "json"
    "file": False,
    "directory": "~/.mcctree/logs",
    "colors": True,
    "log_api_requests": False,
}

PROFILE_FIELDS = (
    "developer_token",
    "client_id",
    "client_secret",
    "refresh_token",
    "login_customer_id",
    "google_ads_yaml",
)


class Config:
    """Manages mcctree configuration stored as YAML."""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_dir: Directory holding ``config.yaml``; defaults to ``~/.mcctree``
        """
        self.config_data: Dict[str, Any] = {}
        self._config_dir = Path(config_dir) if config_dir is not None else CONFIG_DIR
        self._config_file_yaml = self._config_dir / "config.yaml"
        self._config_loaded = False
        self._config_dir_ensured = False

    @property
    def config_file(self) -> Path:
        return self._config_file_yaml

    def _ensure_config_dir(self):
        """Ensure the configuration directory exists."""
        if not self._config_dir_ensured:
            if not self._config_dir.exists():
                self._config_dir.mkdir(parents=True)
                console.print(f"Created configuration directory: {self._config_dir}")
            self._config_dir_ensured = True

    def _ensure_config_loaded(self):
        """Ensure configuration is loaded from file."""
        if not self._config_loaded:
            self._ensure_config_dir()
            self._load_config()
            self._config_loaded = True

    def reload_config(self):
        """Force reload configuration from file."""
        self._config_loaded = False
        self._ensure_config_loaded()

    def _load_config(self):
        """Load configuration from the YAML file, if present."""
        if not self._config_file_yaml.exists():
            self.config_data = {}
            return

        try:
            with open(self._config_file_yaml, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            console.print(
                f"[red]Error: Configuration file {self._config_file_yaml} is not valid YAML: {e}[/red]"
            )
            self.config_data = {}
            return
        except OSError as e:
            console.print(f"[red]Error reading configuration file {self._config_file_yaml}: {e}[/red]")
            self.config_data = {}
            return

        if not isinstance(data, dict):
            console.print(
                f"[yellow]Warning: Ignoring {self._config_file_yaml}; expected a mapping at the top level[/yellow]"
            )
            data = {}
        self.config_data = data

    def save_config(self):
        """Save the configuration to the YAML file."""
        self._ensure_config_dir()
        try:
            with open(self._config_file_yaml, "w", encoding="utf-8") as f:
                yaml.dump(self.config_data, f, default_flow_style=False, indent=2, sort_keys=False)
        except OSError as e:
            console.print(f"[red]Error saving configuration: {e}[/red]")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value with dot notation support.

        Args:
            key: Configuration key (supports dot notation like "traversal.max_depth")
            default: Default value if key doesn't exist

        Returns:
            Configuration value
        """
        self._ensure_config_loaded()

        if "." in key:
            value: Any = self.config_data
            for k in key.split("."):
                if isinstance(value, dict) and k in value:
                    value = value[k]
                else:
                    return default
            return value

        return self.config_data.get(key, default)

    def set(self, key: str, value: Any):
        """
        Set a top-level configuration value and save.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self._ensure_config_loaded()
        self.config_data[key] = value
        self.save_config()

    def set_section(self, section: str, value: Any):
        """
        Set a configuration section, merging with existing values.

        Args:
            section: Configuration section name
            value: Configuration section value
        """
        self._ensure_config_loaded()

        existing_section = self.config_data.get(section, {})
        if isinstance(existing_section, dict) and isinstance(value, dict):
            self.config_data[section] = self._deep_merge(existing_section, value)
        else:
            self.config_data[section] = value

        self.save_config()

    def _deep_merge(self, dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries; values from ``dict2`` win."""
        result = dict1.copy()
        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def delete(self, key: str):
        """Delete a top-level configuration value."""
        self._ensure_config_loaded()
        if key in self.config_data:
            del self.config_data[key]
            self.save_config()

    def get_all(self) -> Dict[str, Any]:
        """Return a shallow copy of all configuration values."""
        self._ensure_config_loaded()
        return self.config_data.copy()

    def get_profiles(self) -> Dict[str, Dict[str, Any]]:
        """Return the configured credential profiles."""
        profiles = self.get("profiles", {})
        return profiles if isinstance(profiles, dict) else {}

    def get_traversal_config(self) -> Dict[str, Any]:
        """
        Get traversal configuration with defaults and environment variable overrides.

        Returns:
            Traversal configuration dictionary
        """
        self._ensure_config_loaded()
        traversal_config = DEFAULT_TRAVERSAL_CONFIG.copy()

        file_traversal_config = self.config_data.get("traversal", {})
        if isinstance(file_traversal_config, dict):
            traversal_config.update(file_traversal_config)

        traversal_config["strategy"] = os.environ.get(
            "MCCTREE_TRAVERSAL_STRATEGY", traversal_config["strategy"]
        )
        traversal_config["max_depth"] = self._get_env_int(
            "MCCTREE_TRAVERSAL_MAX_DEPTH", traversal_config["max_depth"]
        )
        traversal_config["run_budget_seconds"] = self._get_env_float(
            "MCCTREE_TRAVERSAL_RUN_BUDGET_SECONDS", traversal_config["run_budget_seconds"]
        )
        traversal_config["call_timeout_seconds"] = self._get_env_float(
            "MCCTREE_TRAVERSAL_CALL_TIMEOUT_SECONDS", traversal_config["call_timeout_seconds"]
        )
        traversal_config["max_workers"] = self._get_env_int(
            "MCCTREE_TRAVERSAL_MAX_WORKERS", traversal_config["max_workers"]
        )
        traversal_config["max_retries"] = self._get_env_int(
            "MCCTREE_TRAVERSAL_MAX_RETRIES", traversal_config["max_retries"]
        )

        return traversal_config

    def get_logging_config(self) -> Dict[str, Any]:
        """
        Get logging configuration with defaults and environment variable overrides.

        Returns:
            Logging configuration dictionary
        """
        self._ensure_config_loaded()
        logging_config = DEFAULT_LOGGING_CONFIG.copy()

        file_logging_config = self.config_data.get("logging", {})
        if isinstance(file_logging_config, dict):
            logging_config.update(file_logging_config)

        logging_config["level"] = os.environ.get("MCCTREE_LOG_LEVEL", logging_config["level"])
        logging_config["file"] = self._get_env_bool("MCCTREE_LOG_FILE", logging_config["file"])

        return logging_config

    def validate_traversal_config(
        self, traversal_config: Optional[Dict[str, Any]] = None
    ) -> List[str]:
        """
        Validate traversal configuration.

        Args:
            traversal_config: Configuration to validate. If None, uses current config.

        Returns:
            List of validation errors
        """
        if traversal_config is None:
            traversal_config = self.get_traversal_config()

        errors = []

        strategy = str(traversal_config.get("strategy", "deep")).lower()
        if strategy not in ("deep", "flat"):
            errors.append("strategy must be 'deep' or 'flat'")

        max_depth = traversal_config.get("max_depth")
        if max_depth is not None and (not isinstance(max_depth, int) or max_depth < 0):
            errors.append("max_depth must be a non-negative integer")

        for field in ("run_budget_seconds", "call_timeout_seconds"):
            value = traversal_config.get(field)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                errors.append(f"{field} must be a positive number")

        for field in ("max_workers", "max_retries"):
            value = traversal_config.get(field)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"{field} must be a positive integer")

        return errors

    def _get_env_bool(self, env_var: str, default: bool) -> bool:
        """Get boolean value from environment variable."""
        value = os.environ.get(env_var)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def _get_env_int(self, env_var: str, default: Optional[int]) -> Optional[int]:
        """
        Get integer value from environment variable.

        Args:
            env_var: Environment variable name
            default: Default value if env var is not set or invalid

        Returns:
            Integer value
        """
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            console.print(
                f"Warning: Invalid integer value for {env_var}: {value}. Using default: {default}"
            )
            return default

    def _get_env_float(self, env_var: str, default: float) -> float:
        """Get float value from environment variable."""
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            console.print(
                f"Warning: Invalid number for {env_var}: {value}. Using default: {default}"
            )
            return default
