import pytest

from fleetmaint.models.errors import ConfigInvalid
from fleetmaint.rules.rules_compiler import RulesCompiler
from fleetmaint.rules.rules_mgr import RuleManager


CONFIG = """
rules_dir: rules
rule_files:
  alpha: alpha.yaml
modules: [alpha]
"""


def test_rules_load_in_file_order(write_config):
    config = write_config(CONFIG, {"alpha.yaml": """
        module: alpha
        rules:
          - category: temp
            name_pattern: "*.tmp"
            action: delete
          - category: crash
            name_pattern: "core.*"
            action: delete
            enabled: false
          - category: logs
            name_pattern: "*.log"
            action: truncate
    """})

    rules = RuleManager(config).get_rules_for_module("alpha")

    assert [r.name_pattern for r in rules] == ["*.tmp", "core.*", "*.log"]
    assert [r.enabled for r in rules] == [True, False, True]
    assert rules[2].action == "truncate"


def test_compiler_drops_disabled_rules_and_keeps_order(rule):
    compiled = RulesCompiler([rule("b*"), rule("a*", enabled=False), rule("c*")]).compile()
    assert [r.name_pattern for r, _ in compiled] == ["b*", "c*"]


def test_unknown_module_has_no_rules(write_config):
    config = write_config(CONFIG, {"alpha.yaml": "module: alpha\nrules: []\n"})
    assert RuleManager(config).get_rules_for_module("missing") == []


@pytest.mark.parametrize("content, message", [
    ("module: alpha\nrules:\n  - category: temp\n    action: delete\n", "schema"),
    ("module: alpha\nrules:\n  - category: temp\n    name_pattern: '*'\n    action: delete\n    color: red\n", "schema"),
    ("module: alpha\nrules:\n  - category: '  '\n    name_pattern: '*'\n    action: delete\n", "schema"),
    ("module: beta\nrules: []\n", "declares module 'beta'"),
    ("- just\n- a list\n", "must contain a mapping"),
    ("module: alpha\nrules: [\n", "not valid YAML"),
])
def test_invalid_rule_files_fail_fast(write_config, content, message):
    config = write_config(CONFIG, {"alpha.yaml": content})
    with pytest.raises(ConfigInvalid, match=message):
        RuleManager(config)


def test_missing_rule_file_fails_fast(write_config):
    config = write_config(CONFIG, {})
    with pytest.raises(ConfigInvalid, match="not found"):
        RuleManager(config)


def test_one_bad_file_fails_the_whole_load(write_config):
    config = write_config("""
        rule_files:
          alpha: alpha.yaml
          beta: beta.yaml
        modules: [alpha, beta]
    """, {
        "alpha.yaml": "module: alpha\nrules:\n  - {category: t, name_pattern: '*', action: delete}\n",
        "beta.yaml": "module: beta\nrules:\n  - {category: t, action: delete}\n",
    })
    with pytest.raises(ConfigInvalid):
        RuleManager(config)
