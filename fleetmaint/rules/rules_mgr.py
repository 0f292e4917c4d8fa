import os
import yaml
import logging
from typing import Dict, List
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from fleetmaint.models.base_models import ConfigRule
from fleetmaint.models.errors import ConfigInvalid


class RuleSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: str
    name_pattern: str
    action: str
    enabled: bool = True

    @field_validator('category', 'name_pattern', 'action')
    def validate_not_blank(cls, v):
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class RuleFileSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    module: str
    rules: List[RuleSchema] = []


class RuleManager:
    """
    Loads every rule file named in the config and validates it against RuleFileSchema.

    Loading is all-or-nothing: the first invalid file raises ConfigInvalid and no rules
    are returned, so a session never starts with a partial rule set.
    """

    def __init__(self, config_manager):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rule_file_paths = config_manager.get_rule_files()
        self._rules: Dict[str, List[ConfigRule]] = {}
        self._load_rules()

    def _load_rules(self):
        loaded: Dict[str, List[ConfigRule]] = {}
        for module_name, path in self.rule_file_paths.items():
            loaded[module_name] = self.load_rule_file(module_name, path)
            self.logger.info(f"Loaded {len(loaded[module_name])} rules for module '{module_name}' from {path}")
        self._rules = loaded

    def load_rule_file(self, module_name: str, path: str) -> List[ConfigRule]:
        """Reads and validates one rule file. Rule order is preserved from the file."""
        if not os.path.isfile(path):
            raise ConfigInvalid(f"Rule file '{path}' for module '{module_name}' not found.")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigInvalid(f"Rule file '{path}' is not valid YAML: {e}")
        except OSError as e:
            raise ConfigInvalid(f"Rule file '{path}' could not be read: {e}")

        if not isinstance(raw, dict):
            raise ConfigInvalid(f"Rule file '{path}' must contain a mapping with 'module' and 'rules'.")

        try:
            rule_file = RuleFileSchema(**raw)
        except ValidationError as e:
            raise ConfigInvalid(f"Rule file '{path}' failed schema validation: {e}")

        if rule_file.module != module_name:
            raise ConfigInvalid(
                f"Rule file '{path}' declares module '{rule_file.module}' but is configured for '{module_name}'."
            )

        return [ConfigRule(**rule.model_dump()) for rule in rule_file.rules]

    def get_all_rules(self) -> Dict[str, List[ConfigRule]]:
        """Returns a copy of the module -> rules mapping."""
        return {module: list(rules) for module, rules in self._rules.items()}

    def get_rules_for_module(self, module_name: str) -> List[ConfigRule]:
        rules = self._rules.get(module_name)
        if rules is None:
            self.logger.warning(f"No rule file configured for module: {module_name}")
            return []
        return list(rules)

    def get_all_module_names(self) -> List[str]:
        return list(self._rules.keys())
