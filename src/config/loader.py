"""
Configuration loader with YAML + environment variable support.

Resolution order (later wins):
1. Model defaults (src/config/settings.py)
2. config/config.yaml
3. config/config.<environment>.yaml overlay, when present
4. Environment variables:
   - ENVIRONMENT, LOG_LEVEL, LOG_JSON, API_HOST, API_PORT (system section)
   - ANALYTICS__<SECTION>__<FIELD> for any other field, e.g.
     ANALYTICS__VOLUME_PROFILE__BUCKET_COUNT=50

String values may embed ${VAR} or ${VAR:default} placeholders.
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .settings import AppConfig


logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent

load_dotenv(PROJECT_ROOT / ".env")

ENV_PLACEHOLDER = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")
NESTED_ENV_PREFIX = "ANALYTICS__"
TRUTHY = {"1", "true", "yes", "on"}

SYSTEM_ENV_VARS = {
    "ENVIRONMENT": "environment",
    "LOG_LEVEL": "log_level",
    "LOG_JSON": "log_json",
    "API_HOST": "api_host",
    "API_PORT": "api_port",
}


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `overlay` into a copy of `base`; nested mappings merge, other values replace."""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigLoader:
    """
    Loads and validates the analytics configuration.

    Sections of config.yaml map onto AppConfig fields (system,
    volume_profile, order_flow, market_structure, risk). Missing files or
    sections fall back to model defaults.
    """

    def __init__(self, config_dir: Optional[Path] = None, config_name: str = "config"):
        """
        Args:
            config_dir: Configuration directory (defaults to PROJECT_ROOT/config)
            config_name: Base config file name (without .yaml extension)
        """
        self.config_dir = Path(config_dir) if config_dir else PROJECT_ROOT / "config"
        self.config_name = config_name
        self._cache: Dict[str, AppConfig] = {}
        logger.info(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """
        Load one YAML file with placeholders resolved.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        config_path = self.config_dir / f"{config_name}.yaml"

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.debug(f"Loading YAML config from: {config_path}")

        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return self._resolve_placeholders(data)

    def _resolve_placeholders(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._resolve_placeholders(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve_placeholders(item) for item in value]
        if isinstance(value, str):
            return ENV_PLACEHOLDER.sub(self._lookup_placeholder, value)
        return value

    @staticmethod
    def _lookup_placeholder(match: re.Match) -> str:
        var_name, default = match.group(1).strip(), match.group(2)
        env_value = os.getenv(var_name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default.strip()

        logger.warning(f"Environment variable {var_name} not set, using empty string")
        return ""

    def _load_file_layers(self) -> Dict[str, Any]:
        try:
            data = self.load_yaml(self.config_name)
        except FileNotFoundError:
            logger.warning(f"{self.config_name}.yaml not found, using defaults")
            data = {}

        environment = os.getenv("ENVIRONMENT") or (data.get("system") or {}).get("environment")
        if environment:
            overlay_name = f"{self.config_name}.{environment}"
            try:
                data = deep_merge(data, self.load_yaml(overlay_name))
                logger.info(f"Applied {overlay_name}.yaml overlay")
            except FileNotFoundError:
                logger.debug(f"No {overlay_name}.yaml overlay")

        return data

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        """
        Load complete application configuration.

        Args:
            use_cache: Return the cached config if one was loaded before

        Raises:
            ValidationError: If the merged configuration is invalid
        """
        if use_cache and "app_config" in self._cache:
            return self._cache["app_config"]

        config_data = self._apply_env_overrides(self._load_file_layers())

        try:
            app_config = AppConfig(**config_data)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        logger.info(
            f"Configuration loaded: environment={app_config.system.environment}, "
            f"log_level={app_config.system.log_level}"
        )

        if use_cache:
            self._cache["app_config"] = app_config

        return app_config

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {"system": {}}

        for env_name, field_name in SYSTEM_ENV_VARS.items():
            env_val = os.getenv(env_name)
            if not env_val:
                continue
            if field_name == "log_level":
                env_val = env_val.upper()
            elif field_name == "log_json":
                env_val = env_val.strip().lower() in TRUTHY
            overrides["system"][field_name] = env_val

        for env_name, env_val in os.environ.items():
            if not env_name.startswith(NESTED_ENV_PREFIX):
                continue
            path = [part.lower() for part in env_name[len(NESTED_ENV_PREFIX):].split("__") if part]
            if len(path) < 2:
                logger.warning(f"Ignoring {env_name}: expected {NESTED_ENV_PREFIX}<SECTION>__<FIELD>")
                continue

            target = overrides
            for part in path[:-1]:
                target = target.setdefault(part, {})
            target[path[-1]] = env_val
            logger.debug(f"Override {'.'.join(path)} from {env_name}")

        return deep_merge(config, overrides)

    def reload(self) -> AppConfig:
        """Drop the cache and load from disk again."""
        logger.info("Reloading configuration from disk")
        self._cache.clear()
        return self.load_app_config()

    def clear_cache(self):
        self._cache.clear()


# ============================================================================
# Global ConfigLoader Instance
# ============================================================================

_global_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Get or create global ConfigLoader instance."""
    global _global_loader
    if _global_loader is None:
        _global_loader = ConfigLoader()
    return _global_loader


def get_app_config(use_cache: bool = True) -> AppConfig:
    return get_config_loader().load_app_config(use_cache=use_cache)


def reload_config() -> AppConfig:
    return get_config_loader().reload()
