import re
import logging
from functools import lru_cache
from typing import List, Tuple
from fleetmaint.models.base_models import ConfigRule


@lru_cache(maxsize=1024)
def compile_pattern(name_pattern: str) -> re.Pattern:
    """
    Translates a rule glob into a case-insensitive regex.

    Only '*' (any run of characters, including none) and '?' (exactly one character)
    are wildcards. Everything else, brackets included, matches literally.
    """
    parts = []
    for char in name_pattern:
        if char == '*':
            # Collapse runs of '*' so '**' does not backtrack twice
            if parts and parts[-1] == '.*':
                continue
            parts.append('.*')
        elif char == '?':
            parts.append('.')
        else:
            parts.append(re.escape(char))
    return re.compile(''.join(parts), re.IGNORECASE | re.DOTALL)


def matches(name_pattern: str, name: str) -> bool:
    return compile_pattern(name_pattern).fullmatch(name) is not None


class RulesCompiler:
    """Pairs every enabled rule of a module with its compiled name matcher, keeping file order."""

    def __init__(self, rules: List[ConfigRule]):
        self.rules = rules
        self.logger = logging.getLogger(self.__class__.__name__)

    def compile(self) -> List[Tuple[ConfigRule, re.Pattern]]:
        compiled = []
        for rule in self.rules:
            if not rule.enabled:
                self.logger.debug(f"Rule '{rule.name_pattern}' ({rule.category}) is disabled, not compiled.")
                continue
            compiled.append((rule, compile_pattern(rule.name_pattern)))
        return compiled
