"""The scan -> load -> validate (-> remediate -> reload -> validate) pipeline."""
import logging
from dataclasses import dataclass, field
from typing import List

from translation_coverage.app_config import EngineConfig
from translation_coverage.coverage_validator import CoverageValidator
from translation_coverage.locale_store import LocaleStore
from translation_coverage.models import CoverageReport
from translation_coverage.remediator import Remediator
from translation_coverage.source_scanner import SourceScanner

logger = logging.getLogger(__name__)


@dataclass
class EngineRun:
    report: CoverageReport
    written_overlays: List[str] = field(default_factory=list)


def run_engine(config: EngineConfig, auto_fix: bool = False) -> EngineRun:
    """
    Run one full coverage pass.

    With ``auto_fix`` the missing keys are written to the overlay files and
    the locales are loaded and validated again, so the returned report
    reflects the state on disk after remediation.

    Raises:
        NoLocalesLoadedError: If none of the configured locales could be loaded.
    """
    scanner = SourceScanner(config)
    store = LocaleStore(config)
    validator = CoverageValidator(config)

    scan = scanner.scan(config.source_dir)
    loaded = store.load(config.locale_codes, config.locales_dir)

    def _validate(locales):
        return validator.validate(
            scan.used_keys,
            locales.namespaces,
            usages=scan.usages,
            prior_issues=scan.issues + locales.issues,
            files_scanned=scan.files_scanned,
        )

    report = _validate(loaded)
    if not auto_fix:
        return EngineRun(report)

    missing_total = sum(len(coverage.missing) for coverage in report.per_locale.values())
    if missing_total == 0:
        logger.info("No missing translations; nothing to remediate.")
        return EngineRun(report)

    logger.info(f"Remediating {missing_total} missing translation(s)...")
    remediator = Remediator(config)
    remediated = remediator.remediate(report, loaded.namespaces)
    written = remediator.persist(loaded.namespaces, remediated)

    if config.dry_run:
        logger.info("Dry run enabled; validating the remediated namespaces in memory.")
        loaded.namespaces = remediated
        return EngineRun(_validate(loaded), written)

    logger.info("Re-validating after remediation...")
    reloaded = store.load(config.locale_codes, config.locales_dir)
    return EngineRun(_validate(reloaded), written)
