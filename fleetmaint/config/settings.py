import os
import yaml
import logging
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from fleetmaint.models.errors import ConfigInvalid


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingSettings(BaseModel):
    level: str = "INFO"
    console: bool = True
    json_file: bool = True

    @field_validator('level')
    def validate_level(cls, v):
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{v}'. Expected one of {', '.join(LOG_LEVELS)}.")
        return level


class FleetConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_root: str = "sessions"
    rules_dir: str = "rules"
    rule_files: Dict[str, str] = {}
    modules: List[str] = []
    force_modules: List[str] = []
    dry_run: bool = True
    interactive: bool = True
    outputs: List[str] = ["console_output", "json_output"]
    module_settings: Dict[str, Dict[str, Any]] = {}
    logging: LoggingSettings = LoggingSettings()

    @field_validator('modules')
    def validate_modules(cls, v):
        seen = set()
        for name in v:
            if name in seen:
                raise ValueError(f"Module '{name}' is listed more than once.")
            seen.add(name)
        return v

    @model_validator(mode='after')
    def validate_forced_subset(self):
        unknown = [name for name in self.force_modules if name not in self.modules]
        if unknown:
            raise ValueError(f"force_modules not listed in modules: {', '.join(unknown)}")
        return self


class ConfigManager:
    def __init__(self, config_file_path: str, overrides: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config_file_path = config_file_path
        self.base_dir = os.path.dirname(os.path.abspath(config_file_path))
        self.config_data = self._load_and_validate_config(overrides or {})


    def _load_and_validate_config(self, overrides: Dict[str, Any]) -> FleetConfig:
        """Loads and validates the main configuration file using Pydantic."""
        self.logger.info(f"Loading and validating config from: {self.config_file_path}")
        try:
            with open(self.config_file_path, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigInvalid(f"Configuration file '{self.config_file_path}' not found.")
        except yaml.YAMLError as e:
            raise ConfigInvalid(f"Configuration file '{self.config_file_path}' is not valid YAML: {e}")

        if not isinstance(raw_config, dict):
            raise ConfigInvalid(f"Configuration file '{self.config_file_path}' must contain a mapping.")

        # CLI flags win over file values
        raw_config.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return FleetConfig(**raw_config)
        except ValidationError as e:
            raise ConfigInvalid(f"Configuration validation error: {e}")


    def resolve_path(self, path: str) -> str:
        """Paths in the config file are relative to the config file itself."""
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.base_dir, path))

    def get(self, key: str, default=None):
        """Get a configuration value by key."""
        return getattr(self.config_data, key, default)

    def get_session_root(self):
        return self.resolve_path(self.config_data.session_root)

    def get_rule_files(self) -> Dict[str, str]:
        rules_dir = self.resolve_path(self.config_data.rules_dir)
        return {
            module: path if os.path.isabs(path) else os.path.join(rules_dir, path)
            for module, path in self.config_data.rule_files.items()
        }

    def get_requested_modules(self):
        return self.config_data.modules

    def get_forced_modules(self):
        return self.config_data.force_modules

    def get_module_settings(self, module_name: str) -> Dict[str, Any]:
        return dict(self.config_data.module_settings.get(module_name, {}))

    def get_output_modules(self):
        return self.config_data.outputs

    def get_logging_settings(self):
        return self.config_data.logging

    def is_dry_run(self):
        return self.config_data.dry_run

    def is_interactive(self):
        return self.config_data.interactive
