import json
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from translation_coverage.models import IssueKind, KeyConflictError

# A locale document must be a mapping at its root; anything deeper is free-form.
LOCALE_DOCUMENT_SCHEMA = {"type": "object"}

YAML_EXTENSIONS = ('.yaml', '.yml')


@dataclass(frozen=True)
class LocaleFileResult:
    """Outcome of reading one locale document: flat entries or an error."""
    path: str
    entries: Optional[Dict[str, Any]] = None
    error_kind: Optional[IssueKind] = None
    error: Optional[str] = None
    # Dot-paths the document defines more than once.
    duplicates: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error_kind is None


def _flatten_into(document: Dict[str, Any], prefix: str, result: Dict[str, Any],
                  duplicates: List[str]) -> None:
    for raw_key, value in document.items():
        key = f"{prefix}.{raw_key}" if prefix else str(raw_key)
        if isinstance(value, dict) and value:
            _flatten_into(value, key, result, duplicates)
            continue
        if key in result:
            duplicates.append(key)
        result[key] = value


def flatten(document: Dict[str, Any], prefix: str = '',
            duplicates: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Flatten a nested document into dot-path keys.

    Lists are terminal values and are never descended into. An empty mapping
    is kept as a leaf so that ``unflatten(flatten(d)) == d`` holds.

    A dotted key and an equivalent nested path (``{"a.b": 1, "a": {"b": 2}}``)
    produce the same dot-path; the later one in document order wins.

    Args:
        document: The nested mapping to flatten.
        prefix: Dot-path prefix for all keys produced.
        duplicates: If given, every dot-path produced more than once is appended.

    Returns:
        A single-level dictionary keyed by dot-joined paths.
    """
    result: Dict[str, Any] = {}
    _flatten_into(document, prefix, result, duplicates if duplicates is not None else [])
    return result


def unflatten(flat: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rebuild the nested structure of a flat dot-path mapping.

    Raises:
        KeyConflictError: If a path is both a leaf and a container.
    """
    result: Dict[str, Any] = {}
    for flat_key, value in flat.items():
        parts = flat_key.split('.')
        current = result
        for depth, part in enumerate(parts[:-1]):
            node = current.setdefault(part, {})
            if not isinstance(node, dict):
                raise KeyConflictError('.'.join(parts[:depth + 1]))
            current = node
        last = parts[-1]
        if last in current and isinstance(current[last], dict) and current[last]:
            raise KeyConflictError(flat_key)
        current[last] = value
    return result


def _load_document(file_path: str, content: str) -> Any:
    if file_path.endswith(YAML_EXTENSIONS):
        return yaml.safe_load(content)
    return json.loads(content)


def parse_locale_file(file_path: str) -> LocaleFileResult:
    """
    Read and flatten one locale document.

    Never raises for bad input: unreadable files and parse failures come back
    as an error result so a run can carry on with the remaining files.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        return LocaleFileResult(file_path, error_kind=IssueKind.FILE_UNREADABLE,
                                error=f"Could not read locale file: {e}")

    try:
        document = _load_document(file_path, content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        return LocaleFileResult(file_path, error_kind=IssueKind.MALFORMED_LOCALE_FILE,
                                error=f"Invalid document: {e}")

    if document is None:
        # An empty YAML file is an empty locale document.
        document = {}
    try:
        jsonschema.validate(instance=document, schema=LOCALE_DOCUMENT_SCHEMA)
    except jsonschema.ValidationError:
        return LocaleFileResult(file_path, error_kind=IssueKind.MALFORMED_LOCALE_FILE,
                                error=f"Document root must be an object, got {type(document).__name__}")

    duplicates: List[str] = []
    entries = flatten(document, duplicates=duplicates)
    return LocaleFileResult(file_path, entries=entries, duplicates=tuple(duplicates))


def write_locale_file(file_path: str, document: Dict[str, Any]) -> None:
    """
    Write a nested locale document as JSON.

    The content goes to a temporary file in the same directory first and is
    then moved into place, so an interrupted write never leaves a torn file.
    """
    directory = os.path.dirname(file_path) or '.'
    os.makedirs(directory, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.json', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(document, f, ensure_ascii=False, indent=2)
            f.write('\n')
        os.replace(temp_path, file_path)
    except BaseException:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise
