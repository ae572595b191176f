"""Unit tests for the app_config module."""
import os
from unittest.mock import MagicMock, patch

import pytest
import yaml

from translation_coverage.app_config import (
    CONFIG_FILE_ENV,
    DEFAULT_EXCLUDE_DIRS,
    EngineConfig,
    load_engine_config,
)
from translation_coverage.gate import GatePolicy
from translation_coverage.key_classifier import (
    DEFAULT_CRITICAL_KEYWORDS,
    DEFAULT_MARKERS,
    DEFAULT_MEDICAL_KEYWORDS,
)


@pytest.fixture
def mock_logger():
    """Keep load_engine_config from touching real log handlers."""
    with patch("translation_coverage.app_config.setup_logger") as setup:
        setup.return_value = MagicMock()
        yield setup


def _write_config(directory, data, name="translation_coverage.yaml"):
    path = os.path.join(str(directory), name)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


class TestEngineConfig:
    """Test cases for the EngineConfig dataclass."""

    def test_engine_config_creation(self):
        """Test that EngineConfig can be created with only the required fields."""
        config = EngineConfig(
            project_root="/test/root",
            source_dir="/test/root/src",
            locales_dir="/test/root/locales",
            locale_codes=["es", "en"],
        )

        assert config.overlay_filename == "auto_generated.json"
        assert config.gate == GatePolicy()
        assert config.dry_run is False
        assert "node_modules" in config.exclude_dirs


class TestLoadEngineConfig:
    """Test cases for the load_engine_config function."""

    def test_load_config_with_valid_yaml_file(self, tmp_path, mock_logger):
        """Test loading configuration from a valid YAML file."""
        _write_config(tmp_path, {
            "source_dir": "app",
            "locales_dir": "public/locales",
            "dry_run": True,
            "supported_locales": [
                {"code": "de", "name": "German"},
                {"code": "es", "name": "Spanish"},
            ],
            "scanner": {
                "extensions": ["vue", ".js"],
                "exclude_dirs": ["vendor"],
                "max_workers": 3,
            },
            "classifier": {"markers": ["xxx"], "flag_short_values": True},
            "gate": {"min_coverage_percent": 95, "max_placeholders": 4,
                     "treat_critical_missing_as_fatal": True},
            "key_categories": {"critical_keywords": ["alert"], "medical_keywords": ["dosage"]},
            "logging": {"log_level": "DEBUG", "log_file_path": "test.log"},
        })

        with patch.dict(os.environ, {}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert config.project_root == str(tmp_path)
        assert config.source_dir == os.path.join(str(tmp_path), "app")
        assert config.locales_dir == os.path.join(str(tmp_path), "public/locales")
        assert config.locale_codes == ["de", "es"]
        assert config.language_names == {"de": "German", "es": "Spanish"}
        assert config.source_extensions == frozenset({".vue", ".js"})
        assert config.exclude_dirs == frozenset({"vendor"})
        assert config.max_workers == 3
        assert config.classifier.markers == ("xxx",)
        assert config.classifier.flag_short_values is True
        assert config.gate.min_coverage_percent == 95.0
        assert config.gate.max_placeholders == 4
        assert config.gate.treat_critical_missing_as_fatal is True
        assert config.critical_keywords == ("alert",)
        assert config.medical_keywords == ("dosage",)
        assert config.dry_run is True
        mock_logger.assert_called_once_with("DEBUG", "test.log", True)

    def test_load_config_with_missing_file_uses_defaults(self, tmp_path, mock_logger, capsys):
        """Test that a missing config file results in default values."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert "not found" in capsys.readouterr().err
        assert config.locale_codes == ["es", "en"]
        assert config.source_dir == os.path.join(str(tmp_path), ".")
        assert config.exclude_dirs == frozenset(DEFAULT_EXCLUDE_DIRS)
        assert config.classifier.markers == DEFAULT_MARKERS
        assert config.critical_keywords == DEFAULT_CRITICAL_KEYWORDS
        assert config.medical_keywords == DEFAULT_MEDICAL_KEYWORDS
        assert config.gate == GatePolicy()
        mock_logger.assert_called_once_with("INFO", "logs/translation_coverage.log", True)

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path, mock_logger, capsys):
        with open(tmp_path / "translation_coverage.yaml", "w", encoding="utf-8") as f:
            f.write("supported_locales: [unclosed\n")

        with patch.dict(os.environ, {}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert "Invalid YAML" in capsys.readouterr().err
        assert config.locale_codes == ["es", "en"]

    def test_non_mapping_yaml_falls_back_to_defaults(self, tmp_path, mock_logger, capsys):
        with open(tmp_path / "translation_coverage.yaml", "w", encoding="utf-8") as f:
            f.write("- just\n- a list\n")

        with patch.dict(os.environ, {}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert "must contain a YAML dictionary" in capsys.readouterr().err
        assert config.gate == GatePolicy()

    def test_load_config_with_environment_overrides(self, tmp_path, mock_logger):
        """Test that environment variables override config file values."""
        _write_config(tmp_path, {"gate": {"min_coverage_percent": 100}, "scanner": {"max_workers": 8}})

        with patch.dict(os.environ, {"COVERAGE_MIN_PERCENT": "80.5", "COVERAGE_MAX_WORKERS": "2"}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert config.gate.min_coverage_percent == 80.5
        assert config.max_workers == 2

    def test_load_config_with_dotenv_file(self, tmp_path, mock_logger):
        """Test that a .env file in the project root is loaded."""
        with open(tmp_path / ".env", "w", encoding="utf-8") as f:
            f.write("COVERAGE_MIN_PERCENT=60\n")

        with patch.dict(os.environ, {}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert config.gate.min_coverage_percent == 60.0

    def test_custom_config_file_path(self, tmp_path, mock_logger):
        """Test using a custom config file path via environment variable."""
        custom = _write_config(tmp_path, {"supported_locales": [{"code": "fr"}]}, name="custom.yaml")

        with patch.dict(os.environ, {CONFIG_FILE_ENV: custom}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert config.locale_codes == ["fr"]
        assert config.language_names == {"fr": "fr"}

    def test_explicit_config_path_wins_over_environment(self, tmp_path, mock_logger):
        explicit = _write_config(tmp_path, {"supported_locales": [{"code": "pt"}]}, name="explicit.yaml")
        other = _write_config(tmp_path, {"supported_locales": [{"code": "fr"}]}, name="other.yaml")

        with patch.dict(os.environ, {CONFIG_FILE_ENV: other}, clear=True):
            config = load_engine_config(config_path=explicit, project_root=str(tmp_path))

        assert config.locale_codes == ["pt"]

    def test_duplicate_locale_codes_are_ignored(self, tmp_path, mock_logger):
        _write_config(tmp_path, {"supported_locales": [
            {"code": "es", "name": "Spanish"},
            {"code": "es", "name": "Castellano"},
            {"name": "No code"},
        ]})

        with patch.dict(os.environ, {}, clear=True):
            config = load_engine_config(project_root=str(tmp_path))

        assert config.locale_codes == ["es"]
        assert config.language_names == {"es": "Spanish"}
