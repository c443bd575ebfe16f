"""
Configuration model, source parsing, title ids and the INI file manager.
"""

import configparser

import pytest
from pydantic import ValidationError

from oracle_cli.exceptions import ConfigurationError
from oracle_cli.models.config import DEFAULT_SOURCES, OracleConfig, parse_source_spec
from oracle_cli.models.library import (
    ArtifactKind,
    SourceType,
    parse_title_id,
    title_id_from_stem,
)
from oracle_cli.storage.config_manager import ConfigManager


class TestSourceSpecs:
    def test_type_defaults_to_branch_zip(self):
        source = parse_source_spec("owner/repo", 3)

        assert source.source_id == "owner/repo"
        assert source.priority == 3
        assert source.source_type is SourceType.BRANCH_ZIP

    def test_tree_alias(self):
        assert parse_source_spec("a/b:tree", 0).source_type is SourceType.REPO_TREE

    @pytest.mark.parametrize("spec", ["not-a-repo", "a/b:ftp", "a/b/c"])
    def test_invalid_specs(self, spec):
        with pytest.raises(ValueError):
            parse_source_spec(spec, 0)


class TestOracleConfig:
    def test_defaults(self, tmp_path):
        config = OracleConfig(steam_config_path=str(tmp_path), config_path=str(tmp_path))

        assert config.sources == DEFAULT_SOURCES
        assert not config.create_missing_dirs
        assert config.cache_max_age_days == 0
        assert [s.priority for s in config.candidate_sources()] == [0, 1, 2]
        assert config.destination_dir(ArtifactKind.MANIFEST) == tmp_path / "depotcache"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"steam_config_path": ""},
            {"max_workers": 0},
            {"request_timeout": -1},
            {"cache_max_age_days": -3},
            {"sources": ["a/b", "a/b:tree"]},
        ],
    )
    def test_rejects_invalid_values(self, tmp_path, overrides):
        values = {"steam_config_path": str(tmp_path), "config_path": str(tmp_path)}
        values.update(overrides)

        with pytest.raises(ValidationError):
            OracleConfig(**values)


class TestConfigManager:
    def test_save_then_load(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.ini")
        manager.save_new_config(
            {"steam_config_path": "/opt/steam/config", "sources": ["x/y", "z/w:tree"]}
        )

        config = manager.load_config()

        assert config.steam_config_path == "/opt/steam/config"
        assert config.sources == ["x/y", "z/w:tree"]
        assert config.config_path == str(tmp_path)

    def test_cli_options_override_file_values(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.ini")
        manager.save_new_config({"steam_config_path": "/opt/steam/config"})

        config = manager.load_config(
            {"keep_archives": True, "max_workers": 2, "helper_installer_path": "/opt/setup"}
        )

        assert config.keep_archives
        assert config.helper_installer_path == "/opt/setup"
        assert config.max_workers == 2

    def test_missing_keys_are_migrated(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[DEFAULT]\nsteam_config_path = /opt/steam/config\n")

        config = ConfigManager(path).load_config()

        parser = configparser.ConfigParser(interpolation=None)
        parser.read(path)
        assert parser["DEFAULT"]["cache_max_age_days"] == "0"
        assert parser["DEFAULT"]["helper_installer_path"] == ""
        assert config.sources == DEFAULT_SOURCES

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="oracle-cli init"):
            ConfigManager(tmp_path / "missing.ini").load_config()

    def test_invalid_value_becomes_configuration_error(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[DEFAULT]\nsteam_config_path = /opt/steam/config\nmax_workers = 99\n")

        with pytest.raises(ConfigurationError):
            ConfigManager(path).load_config()

    def test_update_settings(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.ini")
        manager.save_new_config({"steam_config_path": "/opt/steam/config"})

        config = manager.update_settings({"github_token": "ghp_example"})

        assert config.github_token == "ghp_example"
        assert config.steam_config_path == "/opt/steam/config"


class TestTitleIds:
    @pytest.mark.parametrize("value, expected", [(440, 440), ("440", 440), (" 730 ", 730)])
    def test_parse_accepts_positive_ids(self, value, expected):
        assert parse_title_id(value) == expected

    @pytest.mark.parametrize("value", ["²", "٣", "0", 0, -1, "abc", True, ""])
    def test_parse_rejects_everything_else(self, value):
        with pytest.raises(ValueError):
            parse_title_id(value)

    @pytest.mark.parametrize(
        "stem, expected", [("440", 440), ("0", None), ("0440", None), ("²", None)]
    )
    def test_title_id_from_stem(self, stem, expected):
        assert title_id_from_stem(stem) == expected
