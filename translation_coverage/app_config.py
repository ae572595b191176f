"""Engine configuration: YAML file, .env and environment overrides."""
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from translation_coverage.gate import GatePolicy
from translation_coverage.key_classifier import (
    DEFAULT_CRITICAL_KEYWORDS,
    DEFAULT_MARKERS,
    DEFAULT_MEDICAL_KEYWORDS,
    ClassifierPolicy,
)
from translation_coverage.logging_config import setup_logger

CONFIG_FILE_ENV = 'TRANSLATION_COVERAGE_CONFIG_FILE'
DEFAULT_CONFIG_FILENAME = 'translation_coverage.yaml'

DEFAULT_EXCLUDE_DIRS = ('node_modules', '.next', 'dist', 'build', '.git', 'coverage', '.nuxt', 'tmp')
DEFAULT_SOURCE_EXTENSIONS = ('.js', '.jsx', '.ts', '.tsx')
DEFAULT_OVERLAY_FILENAME = 'auto_generated.json'
DEFAULT_MAX_FILE_BYTES = 1024 * 1024


@dataclass(frozen=True)
class EngineConfig:
    """Configuration passed to every engine component."""
    # Core paths
    project_root: str
    source_dir: str
    locales_dir: str

    # Locale configuration
    locale_codes: List[str]
    language_names: Dict[str, str] = field(default_factory=dict)
    overlay_filename: str = DEFAULT_OVERLAY_FILENAME
    locale_file_extensions: Tuple[str, ...] = ('.json',)

    # Scanner settings
    exclude_dirs: frozenset = frozenset(DEFAULT_EXCLUDE_DIRS)
    source_extensions: frozenset = frozenset(DEFAULT_SOURCE_EXTENSIONS)
    extraction_patterns: List[Dict[str, str]] = field(default_factory=list)
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    file_read_timeout: float = 10.0
    max_workers: int = os.cpu_count() or 1
    show_progress: bool = True

    # Classification, gate and remediation
    classifier: ClassifierPolicy = ClassifierPolicy()
    critical_keywords: Tuple[str, ...] = DEFAULT_CRITICAL_KEYWORDS
    medical_keywords: Tuple[str, ...] = DEFAULT_MEDICAL_KEYWORDS
    gate: GatePolicy = GatePolicy()
    term_table: Dict[str, Dict[str, str]] = field(default_factory=dict)
    dry_run: bool = False


def _resolve_project_root(project_root: Optional[str]) -> str:
    """Use the given root, or the working directory the build runs from."""
    return os.path.abspath(project_root or os.getcwd())


def _load_dotenv_files(project_root: str) -> None:
    dotenv_path = os.path.join(project_root, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)


def _load_yaml_config(project_root: str, config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to defaults on any problem."""
    default_config_path = os.path.join(project_root, DEFAULT_CONFIG_FILENAME)
    config_file = config_path or os.environ.get(CONFIG_FILE_ENV, default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(os.path.join(project_root, config_file))

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a {DEFAULT_CONFIG_FILENAME} file in '{project_root}' "
                  f"or set {CONFIG_FILE_ENV} environment variable.", file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    log_config = config.get('logging', {}) or {}
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/translation_coverage.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _build_language_mappings(locales_list: List[Dict[str, str]]) -> Tuple[List[str], Dict[str, str]]:
    """Build the ordered locale code list and code -> name mapping."""
    codes: List[str] = []
    names: Dict[str, str] = {}
    for locale in locales_list:
        code = locale.get('code')
        if code and code not in names:
            codes.append(code)
            names[code] = locale.get('name', code)
    return codes, names


def _normalize_extensions(extensions) -> frozenset:
    return frozenset(ext if ext.startswith('.') else f'.{ext}' for ext in extensions)


def _build_classifier_policy(section: Dict[str, Any]) -> ClassifierPolicy:
    return ClassifierPolicy(
        markers=tuple(section.get('markers', DEFAULT_MARKERS)),
        flag_short_values=bool(section.get('flag_short_values', False)),
        flag_key_like_values=bool(section.get('flag_key_like_values', False)),
    )


def _build_gate_policy(section: Dict[str, Any]) -> GatePolicy:
    # Coverage threshold with environment override
    default_min_coverage = section.get('min_coverage_percent', 100.0)
    min_coverage = float(os.environ.get('COVERAGE_MIN_PERCENT', default_min_coverage))
    return GatePolicy(
        min_coverage_percent=min_coverage,
        max_placeholders=int(section.get('max_placeholders', 0)),
        treat_malformed_as_fatal=bool(section.get('treat_malformed_as_fatal', False)),
        treat_conflicts_as_fatal=bool(section.get('treat_conflicts_as_fatal', False)),
        treat_critical_missing_as_fatal=bool(section.get('treat_critical_missing_as_fatal', False)),
    )


def load_engine_config(config_path: Optional[str] = None,
                       project_root: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration from a YAML file and environment variables.

    Args:
        config_path: Explicit YAML path; otherwise TRANSLATION_COVERAGE_CONFIG_FILE
            or translation_coverage.yaml in the project root.
        project_root: Directory relative paths resolve against (default: cwd).

    Returns:
        EngineConfig: The loaded configuration.
    """
    project_root = _resolve_project_root(project_root)

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root, config_path)

    logger = _setup_logger_from_config(config)

    locale_codes, language_names = _build_language_mappings(config.get('supported_locales', []))
    if not locale_codes:
        locale_codes, language_names = ['es', 'en'], {'es': 'Spanish', 'en': 'English'}
        logger.info("No supported_locales configured; defaulting to %s", ", ".join(locale_codes))

    scanner_config = config.get('scanner', {}) or {}
    categories_config = config.get('key_categories', {}) or {}
    max_workers = int(os.environ.get('COVERAGE_MAX_WORKERS',
                                     scanner_config.get('max_workers', os.cpu_count() or 1)))

    return EngineConfig(
        project_root=project_root,
        source_dir=os.path.join(project_root, config.get('source_dir', '.')),
        locales_dir=os.path.join(project_root, config.get('locales_dir', 'locales')),
        locale_codes=locale_codes,
        language_names=language_names,
        overlay_filename=config.get('overlay_filename', DEFAULT_OVERLAY_FILENAME),
        locale_file_extensions=tuple(sorted(_normalize_extensions(
            config.get('locale_file_extensions', ['.json'])))),
        exclude_dirs=frozenset(scanner_config.get('exclude_dirs', DEFAULT_EXCLUDE_DIRS)),
        source_extensions=_normalize_extensions(scanner_config.get('extensions', DEFAULT_SOURCE_EXTENSIONS)),
        extraction_patterns=list(scanner_config.get('extraction_patterns', [])),
        max_file_bytes=int(scanner_config.get('max_file_bytes', DEFAULT_MAX_FILE_BYTES)),
        file_read_timeout=float(scanner_config.get('file_read_timeout', 10.0)),
        max_workers=max(1, max_workers),
        show_progress=bool(config.get('show_progress', True)),
        classifier=_build_classifier_policy(config.get('classifier', {}) or {}),
        critical_keywords=tuple(categories_config.get('critical_keywords', DEFAULT_CRITICAL_KEYWORDS)),
        medical_keywords=tuple(categories_config.get('medical_keywords', DEFAULT_MEDICAL_KEYWORDS)),
        gate=_build_gate_policy(config.get('gate', {}) or {}),
        term_table=config.get('term_table', {}) or {},
        dry_run=bool(config.get('dry_run', False)),
    )
