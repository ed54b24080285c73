"""Tests for lm_module_sync.config_loader: YAML config discovery and merging."""

import textwrap

import pytest

from lm_module_sync.config_loader import (
    _interpolate_recursive,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with an empty CWD and HOME and no explicit config path."""
    home = tmp_path / "home"
    cwd = tmp_path / "project"
    home.mkdir()
    cwd.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(cwd)
    monkeypatch.delenv("LM_MODULE_SYNC_CONFIG", raising=False)
    return cwd, home


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("LM_TEST_HOST", "acme.logicmonitor.com")
        assert interpolate_env_vars("${LM_TEST_HOST}") == "acme.logicmonitor.com"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_embedded_in_text(self, monkeypatch):
        monkeypatch.setenv("LM_TEST_ENV", "prod")
        assert interpolate_env_vars("portal-${LM_TEST_ENV}.yml") == "portal-prod.yml"

    def test_recursive(self, monkeypatch):
        monkeypatch.setenv("LM_TEST_TOKEN", "abc")
        data = {"portal": {"token": "${LM_TEST_TOKEN}", "tags": ["${LM_TEST_TOKEN}", 1]}}
        assert _interpolate_recursive(data) == {
            "portal": {"token": "abc", "tags": ["abc", 1]}
        }


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_none_found(self, isolated):
        assert discover_config_files() == []

    def test_order_explicit_project_global(self, isolated, tmp_path, monkeypatch):
        cwd, home = isolated
        explicit = _write(tmp_path / "explicit.yml", "portal: {}\n")
        project = _write(cwd / ".lm_module_sync" / "config.yml", "portal: {}\n")
        global_ = _write(home / ".config" / "lm_module_sync" / "config.yml", "portal: {}\n")
        monkeypatch.setenv("LM_MODULE_SYNC_CONFIG", str(explicit))

        found = discover_config_files()
        assert found[0] == explicit.resolve()
        assert found[1:] == [project, global_]


class TestLoadHierarchicalConfig:
    def test_empty_when_no_files(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_wins_over_global(self, isolated):
        cwd, home = isolated
        _write(
            home / ".config" / "lm_module_sync" / "config.yml",
            """
            portal:
              hostname: global.logicmonitor.com
            logging:
              level: DEBUG
            """,
        )
        _write(
            cwd / ".lm_module_sync" / "config.yml",
            """
            portal:
              hostname: project.logicmonitor.com
            """,
        )
        merged = load_hierarchical_config()
        assert merged["portal"] == {"hostname": "project.logicmonitor.com"}
        assert merged["logging"] == {"level": "DEBUG"}

    def test_interpolates_after_merge(self, isolated, monkeypatch):
        cwd, _ = isolated
        monkeypatch.setenv("LM_TEST_TOKEN", "from-env")
        _write(
            cwd / ".lm_module_sync" / "config.yml",
            """
            portal:
              token: ${LM_TEST_TOKEN}
            """,
        )
        assert load_hierarchical_config()["portal"]["token"] == "from-env"

    def test_non_dict_root_skipped(self, isolated):
        cwd, _ = isolated
        _write(cwd / ".lm_module_sync" / "config.yml", "- a\n- b\n")
        assert load_hierarchical_config() == {}
