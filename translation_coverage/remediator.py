import dataclasses
import logging
import re
from typing import Dict, List, Mapping, Optional

from translation_coverage.app_config import EngineConfig
from translation_coverage.locale_parser import unflatten, write_locale_file
from translation_coverage.models import CoverageReport, IssueKind, LocaleNamespace

logger = logging.getLogger(__name__)

# Prefix for synthesized values with no known translation. The classifier
# flags it through the "todo" marker, so the key is reported again until a
# human replaces it.
AUTO_TAG = "[TODO]"

MEDICAL_TERMS = {
    'medical': {'es': 'médico', 'en': 'medical'},
    'patient': {'es': 'paciente', 'en': 'patient'},
    'doctor': {'es': 'doctor', 'en': 'doctor'},
    'diagnosis': {'es': 'diagnóstico', 'en': 'diagnosis'},
    'treatment': {'es': 'tratamiento', 'en': 'treatment'},
    'consultation': {'es': 'consulta', 'en': 'consultation'},
    'prescription': {'es': 'receta', 'en': 'prescription'},
    'symptom': {'es': 'síntoma', 'en': 'symptom'},
    'condition': {'es': 'condición', 'en': 'condition'},
    'therapy': {'es': 'terapia', 'en': 'therapy'},
    'medication': {'es': 'medicamento', 'en': 'medication'},
    'procedure': {'es': 'procedimiento', 'en': 'procedure'},
    'examination': {'es': 'examen', 'en': 'examination'},
    'test': {'es': 'prueba', 'en': 'test'},
    'result': {'es': 'resultado', 'en': 'result'},
    'report': {'es': 'informe', 'en': 'report'},
}

COMMON_TERMS = {
    'save': {'es': 'guardar', 'en': 'save'},
    'cancel': {'es': 'cancelar', 'en': 'cancel'},
    'delete': {'es': 'eliminar', 'en': 'delete'},
    'edit': {'es': 'editar', 'en': 'edit'},
    'create': {'es': 'crear', 'en': 'create'},
    'update': {'es': 'actualizar', 'en': 'update'},
    'close': {'es': 'cerrar', 'en': 'close'},
    'open': {'es': 'abrir', 'en': 'open'},
    'submit': {'es': 'enviar', 'en': 'submit'},
    'confirm': {'es': 'confirmar', 'en': 'confirm'},
    'error': {'es': 'error', 'en': 'error'},
    'warning': {'es': 'advertencia', 'en': 'warning'},
    'success': {'es': 'éxito', 'en': 'success'},
    'loading': {'es': 'cargando', 'en': 'loading'},
    'please_wait': {'es': 'por favor espere', 'en': 'please wait'},
    'required': {'es': 'requerido', 'en': 'required'},
    'optional': {'es': 'opcional', 'en': 'optional'},
}

# Renderings for generic trailing segments such as "form.title".
SEGMENT_TERMS = {
    'title': {'es': 'Título', 'en': 'Title'},
    'description': {'es': 'Descripción', 'en': 'Description'},
    'placeholder': {'es': 'Ingrese texto aquí', 'en': 'Enter text here'},
    'label': {'es': 'Etiqueta', 'en': 'Label'},
    'button': {'es': 'Botón', 'en': 'Button'},
}


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def fallback_value(key: str) -> str:
    return f"{AUTO_TAG} {re.sub(r'[._]', ' ', key)}"


class Remediator:
    """Fills missing keys into each locale's overlay file, and nowhere else."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.common_terms = dict(COMMON_TERMS)
        self.common_terms.update(config.term_table)

    def _lookup(self, term: str, locale: str) -> Optional[str]:
        if term in MEDICAL_TERMS and locale in MEDICAL_TERMS[term]:
            return MEDICAL_TERMS[term][locale]
        if term in self.common_terms and locale in self.common_terms[term]:
            return self.common_terms[term][locale]
        return None

    def _render(self, term: str, text: str, key: str) -> str:
        if term in MEDICAL_TERMS:
            return f"{text} ({key})"
        return _capitalize(text)

    def synthesize_value(self, key: str, locale: str) -> str:
        """
        Produce a best-effort value for a missing key.

        Lookup order: the trailing segment, generic segment renderings, each
        word of the key from last to first, then substrings of the key.
        Anything unresolved gets a tagged fallback derived from the key.
        """
        lowered = key.lower()
        segment = lowered.rsplit('.', 1)[-1]

        text = self._lookup(segment, locale)
        if text is not None:
            return self._render(segment, text, key)

        if segment in SEGMENT_TERMS and locale in SEGMENT_TERMS[segment]:
            return SEGMENT_TERMS[segment][locale]

        for word in reversed(re.split(r'[._-]', lowered)):
            text = self._lookup(word, locale)
            if text is not None:
                return self._render(word, text, key)

        for term in list(MEDICAL_TERMS) + list(self.common_terms):
            if term in lowered:
                text = self._lookup(term, locale)
                if text is not None:
                    return self._render(term, text, key)

        return fallback_value(key)

    @staticmethod
    def _conflicts(key: str, namespace: LocaleNamespace) -> bool:
        parts = key.split('.')
        prefixes = {'.'.join(parts[:i]) for i in range(1, len(parts))}
        if prefixes & set(namespace.entries):
            return True
        return key in namespace.containers()

    def remediate(self, report: CoverageReport,
                  locales: Mapping[str, LocaleNamespace]) -> Dict[str, LocaleNamespace]:
        """
        Add a synthesized overlay entry for every missing translation.

        The input namespaces are left untouched. Keys already defined in the
        merged namespace are never added, so running this on an up-to-date
        report changes nothing.

        Returns:
            New namespaces by locale code; the caller decides whether to persist.
        """
        remediated: Dict[str, LocaleNamespace] = {
            code: dataclasses.replace(
                namespace,
                entries=dict(namespace.entries),
                sources=dict(namespace.sources),
                overlay_entries=dict(namespace.overlay_entries),
                files=list(namespace.files),
            )
            for code, namespace in locales.items()
        }

        added: Dict[str, int] = {}
        for issue in report.issues_of(IssueKind.MISSING_TRANSLATION):
            namespace = remediated.get(issue.locale)
            if namespace is None or issue.key in namespace.entries:
                continue
            if self._conflicts(issue.key, namespace):
                logger.warning(f"Not remediating '{issue.key}' for '{issue.locale}': "
                               f"it would clash with an existing leaf/container key")
                continue
            value = self.synthesize_value(issue.key, issue.locale)
            namespace.overlay_entries[issue.key] = value
            namespace.entries[issue.key] = value
            namespace.sources[issue.key] = self.config.overlay_filename
            added[issue.locale] = added.get(issue.locale, 0) + 1

        for code, count in sorted(added.items()):
            logger.info(f"Synthesized {count} missing key(s) for '{code}'")
        return remediated

    def persist(self, original: Mapping[str, LocaleNamespace],
                remediated: Mapping[str, LocaleNamespace]) -> List[str]:
        """
        Write overlay files whose content changed.

        Returns:
            Paths of the overlay files written (empty in dry-run mode).
        """
        written = []
        for code, namespace in sorted(remediated.items()):
            before = original.get(code)
            if before is not None and before.overlay_entries == namespace.overlay_entries:
                continue
            if self.config.dry_run:
                logger.info(f"[Dry Run] Would write {len(namespace.overlay_entries)} key(s) "
                            f"to '{namespace.overlay_path}'.")
                continue
            write_locale_file(namespace.overlay_path, unflatten(namespace.overlay_entries))
            logger.info(f"Updated overlay for '{code}' at '{namespace.overlay_path}'.")
            written.append(namespace.overlay_path)
        return written
