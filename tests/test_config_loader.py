"""Tests for leyline.config_loader: hierarchical config loading."""

import pytest
import yaml

from leyline.config_loader import (
    _interpolate_recursive,
    _load_yaml,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)

# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("LEYLINE_TEST_REF", "v1.2.0")
        assert interpolate_env_vars("${LEYLINE_TEST_REF}") == "v1.2.0"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-master}") == "master"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("MIRROR_HOST", "git.internal")
        monkeypatch.setenv("MIRROR_ORG", "standards")
        assert (
            interpolate_env_vars("https://${MIRROR_HOST}/${MIRROR_ORG}.git")
            == "https://git.internal/standards.git"
        )

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("CACHE_ROOT", "/var/cache/leyline")
        data = {"cache": {"dir": "${CACHE_ROOT}", "max_size_mb": 20}, "x": ["${CACHE_ROOT}", 1]}
        assert _interpolate_recursive(data) == {
            "cache": {"dir": "/var/cache/leyline", "max_size_mb": 20},
            "x": ["/var/cache/leyline", 1],
        }

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include YAML loading via ConfigLoader subclass."""

    def test_include_relative_file(self, tmp_path):
        (tmp_path / "sync.yml").write_text("ref: v2\n")
        main = tmp_path / "config.yml"
        main.write_text("sync: !include sync.yml\n")

        assert _load_yaml(main) == {"sync": {"ref": "v2"}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("sync: !include missing.yml\n")

        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml(main)

    def test_circular_include_raises(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml(tmp_path / "a.yml")

    def test_global_safe_loader_not_polluted(self, tmp_path):
        """!include is NOT registered on yaml.SafeLoader."""
        cfg = tmp_path / "test.yml"
        cfg.write_text("x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_no_files(self, tmp_path):
        assert discover_config_files(tmp_path) == []

    def test_env_var_takes_highest_precedence(self, tmp_path, monkeypatch):
        custom = tmp_path / "custom.yml"
        custom.write_text("sync: {}\n")
        (tmp_path / ".leyline.yml").write_text("sync: {}\n")
        monkeypatch.setenv("LEYLINE_CONFIG", str(custom))

        result = discover_config_files(tmp_path)
        assert result[0] == custom.resolve()
        assert result[1] == tmp_path / ".leyline.yml"

    def test_project_files_before_global(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        global_cfg = home / ".config" / "leyline" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text("cache: {}\n")
        monkeypatch.setenv("HOME", str(home))

        project = tmp_path / "project"
        project.mkdir()
        (project / ".leyline").write_text("categories: [go]\n")

        assert discover_config_files(project) == [
            project / ".leyline",
            global_cfg,
        ]


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config()."""

    def test_empty_when_no_files(self, tmp_path):
        assert load_hierarchical_config(tmp_path) == {}

    def test_project_overrides_global_top_level_keys(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        global_cfg = home / ".config" / "leyline" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            "sync:\n  ref: global\ncache:\n  max_size_mb: 10\n"
        )
        monkeypatch.setenv("HOME", str(home))

        project = tmp_path / "project"
        project.mkdir()
        (project / ".leyline.yml").write_text("sync:\n  ref: project\n")

        merged = load_hierarchical_config(project)
        assert merged["sync"] == {"ref": "project"}
        assert merged["cache"] == {"max_size_mb": 10}

    def test_interpolation_applied(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LEYLINE_TEST_DIR", "/srv/cache")
        (tmp_path / ".leyline.yml").write_text("cache:\n  dir: ${LEYLINE_TEST_DIR}\n")
        assert load_hierarchical_config(tmp_path) == {"cache": {"dir": "/srv/cache"}}

    def test_non_dict_root_is_skipped(self, tmp_path):
        (tmp_path / ".leyline.yml").write_text("- just\n- a list\n")
        assert load_hierarchical_config(tmp_path) == {}

    def test_broken_yaml_propagates(self, tmp_path):
        (tmp_path / ".leyline.yml").write_text("sync: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config(tmp_path)
