"""Heuristic quality classification of translation values."""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

DEFAULT_MARKERS = ("todo", "placeholder", "missing", "fixme")

_ALL_CAPS = re.compile(r'[A-Z_]{2,}')
_KEY_LIKE = re.compile(r'[a-zA-Z0-9._-]+')
_DOTTED_IDENTIFIER = re.compile(r'[a-zA-Z0-9_-]+(\.[a-zA-Z0-9_-]+)+')

CRITICAL_CATEGORY = "critical"
MEDICAL_CATEGORY = "medical"

# Substrings of a key that mark it as user-critical UI or clinical content.
DEFAULT_CRITICAL_KEYWORDS = (
    'error', 'warning', 'success', 'confirm', 'cancel', 'save', 'delete',
    'login', 'logout', 'submit', 'close', 'open', 'edit', 'create', 'update',
    'start', 'stop', 'recording', 'active', 'inactive', 'permissions',
)
DEFAULT_MEDICAL_KEYWORDS = (
    'medical', 'clinical', 'diagnosis', 'treatment', 'patient', 'doctor',
    'consultation', 'prescription', 'symptom', 'condition', 'therapy',
    'medication', 'procedure', 'examination', 'test', 'result', 'report',
    'ai_assistant', 'transcription', 'microphone', 'documentation', 'workflow',
    'conversation', 'dialogue', 'forms', 'navigation', 'demo',
)

# Values that are structured but legitimate, such as plural lists.
OPAQUE_TYPES = (list,)


class Classification(str, Enum):
    VALID = "valid"
    PLACEHOLDER = "placeholder"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ClassifierPolicy:
    markers: Tuple[str, ...] = DEFAULT_MARKERS
    flag_short_values: bool = False
    flag_key_like_values: bool = False


DEFAULT_CLASSIFIER_POLICY = ClassifierPolicy()


@dataclass(frozen=True)
class ClassificationResult:
    classification: Classification
    rule: str


def _segment(key: str) -> str:
    return key.rsplit('.', 1)[-1]


# Each rule returns a result to stop the chain, or None to fall through.
Rule = Callable[[str, Any, ClassifierPolicy], Optional[ClassificationResult]]


def _non_string(key, value, policy):
    if not isinstance(value, str) and not isinstance(value, OPAQUE_TYPES):
        return ClassificationResult(Classification.MALFORMED, "non_string_value")
    return None


def _opaque(key, value, policy):
    if isinstance(value, OPAQUE_TYPES):
        return ClassificationResult(Classification.VALID, "opaque_value")
    return None


def _empty(key, value, policy):
    if value == "":
        return ClassificationResult(Classification.MALFORMED, "empty_value")
    return None


def _equals_key(key, value, policy):
    if value == key:
        return ClassificationResult(Classification.PLACEHOLDER, "value_equals_key")
    return None


def _equals_segment(key, value, policy):
    if value == _segment(key):
        return ClassificationResult(Classification.PLACEHOLDER, "value_equals_segment")
    return None


def _marker(key, value, policy):
    lowered = value.lower()
    for marker in policy.markers:
        if marker.lower() in lowered:
            return ClassificationResult(Classification.PLACEHOLDER, f"marker:{marker}")
    return None


def _braced(key, value, policy):
    if len(value) >= 2 and value.startswith('{') and value.endswith('}'):
        return ClassificationResult(Classification.PLACEHOLDER, "wrapped_in_braces")
    return None


def _all_caps(key, value, policy):
    if _ALL_CAPS.fullmatch(value):
        return ClassificationResult(Classification.PLACEHOLDER, "all_caps")
    return None


def _short(key, value, policy):
    if policy.flag_short_values and len(value) < 3 and _KEY_LIKE.fullmatch(value):
        return ClassificationResult(Classification.PLACEHOLDER, "suspiciously_short")
    return None


def _key_like(key, value, policy):
    if policy.flag_key_like_values and _DOTTED_IDENTIFIER.fullmatch(value):
        return ClassificationResult(Classification.PLACEHOLDER, "looks_like_key")
    return None


RULES: List[Rule] = [
    _non_string,
    _opaque,
    _empty,
    _equals_key,
    _equals_segment,
    _marker,
    _braced,
    _all_caps,
    _short,
    _key_like,
]

_VALID = ClassificationResult(Classification.VALID, "valid")


def classify(key: str, value: Any,
             policy: ClassifierPolicy = DEFAULT_CLASSIFIER_POLICY) -> ClassificationResult:
    """
    Classify a translation value as valid, placeholder or malformed.

    Rules are applied as an ordered short-circuit chain; the first rule that
    matches decides the outcome and names itself in ``rule``.

    Args:
        key: The dot-path key the value is defined under.
        value: The flattened leaf value.
        policy: Marker list and optional extra heuristics.

    Returns:
        A ClassificationResult. This function does not raise.
    """
    for rule in RULES:
        result = rule(key, value, policy)
        if result is not None:
            return result
    return _VALID


def key_categories(key: str,
                   critical_keywords: Tuple[str, ...] = DEFAULT_CRITICAL_KEYWORDS,
                   medical_keywords: Tuple[str, ...] = DEFAULT_MEDICAL_KEYWORDS) -> Tuple[str, ...]:
    """Categories whose keywords occur in the key, matched case-insensitively."""
    lowered = key.lower()
    categories = []
    if any(keyword.lower() in lowered for keyword in critical_keywords):
        categories.append(CRITICAL_CATEGORY)
    if any(keyword.lower() in lowered for keyword in medical_keywords):
        categories.append(MEDICAL_CATEGORY)
    return tuple(categories)
