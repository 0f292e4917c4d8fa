import os

import pytest

from fleetmaint.config.settings import ConfigManager
from fleetmaint.models.errors import ConfigInvalid


def test_defaults_and_relative_paths(write_config, tmp_path):
    config = write_config("""
        rule_files:
          alpha: alpha.yaml
        modules: [alpha]
    """, {"alpha.yaml": "module: alpha\nrules: []\n"})

    assert config.is_dry_run() is True
    assert config.is_interactive() is True
    assert config.get_session_root() == os.path.join(str(tmp_path), "sessions")
    assert config.get_rule_files() == {"alpha": os.path.join(str(tmp_path), "rules", "alpha.yaml")}
    assert config.get_output_modules() == ["console_output", "json_output"]
    assert config.get_module_settings("alpha") == {}


def test_overrides_win_over_file_values(tmp_path):
    path = tmp_path / "fleetmaint.yaml"
    path.write_text("session_root: from-file\nmodules: [alpha]\n", encoding="utf-8")

    config = ConfigManager(str(path), overrides={"session_root": str(tmp_path / "cli"), "dry_run": None})

    assert config.get_session_root() == str(tmp_path / "cli")
    assert config.is_dry_run() is True


@pytest.mark.parametrize("content", [
    "modules: [alpha, alpha]\n",
    "modules: [alpha]\nforce_modules: [beta]\n",
    "modules: [alpha]\nunknown_key: 1\n",
    "modules: [alpha]\nlogging:\n  level: LOUD\n",
    "- not\n- a mapping\n",
    "modules: [alpha\n",
])
def test_invalid_config_raises(tmp_path, content):
    path = tmp_path / "fleetmaint.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigInvalid):
        ConfigManager(str(path))


def test_missing_config_raises(tmp_path):
    with pytest.raises(ConfigInvalid, match="not found"):
        ConfigManager(str(tmp_path / "nope.yaml"))
