"""
Field reconciliation and validation for model-generated notes.

Models occasionally misspell the JSON keys they were asked for ("Readng"
instead of "Reading"). reconcile() maps returned keys back onto the note
type's field names, validate() decides whether the result is good enough to
become an Anki note.
"""

import logging
from enum import Enum
from typing import Dict, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from anki_gen.errors import AllFieldsEmptyError, MissingFieldsError, NoContentError

logger = logging.getLogger(__name__)

MAX_EDIT_DISTANCE = 2


class ValidationMode(Enum):
    STRICT = "strict"
    OPTIONAL = "optional"

    @classmethod
    def from_flag(cls, optional: bool) -> "ValidationMode":
        return cls.OPTIONAL if optional else cls.STRICT


def _closest_unfilled(key: str, expected: Sequence[str], filled: Dict[str, str]):
    """Return (name, distance) of the nearest expected name not yet in `filled`."""
    best = None
    for name in expected:
        if name in filled:
            continue
        distance = Levenshtein.distance(key, name)
        # strict '<' keeps the earliest name on ties
        if best is None or distance < best[1]:
            best = (name, distance)
    return best


def reconcile(raw: Dict[str, str], expected: Sequence[str]) -> Dict[str, str]:
    """
    Remap model output keys to the expected field names.

    Exact matches are kept. Any other key is compared against the expected
    names that have not received a value yet; if the closest one is within
    MAX_EDIT_DISTANCE the key is renamed, otherwise it is kept as-is.

    Args:
        raw: Field map parsed from the model response
        expected: Field names of the target note type, in order

    Returns:
        New field map; unrecognised keys are passed through, never dropped
    """
    result: Dict[str, str] = {}
    expected_set = set(expected)

    for key, value in raw.items():
        if key in expected_set:
            # may overwrite an earlier fuzzy match for the same name
            result[key] = value
            continue

        best = _closest_unfilled(key, expected, result)
        if best is not None and best[1] <= MAX_EDIT_DISTANCE:
            name, distance = best
            logger.info(f"Fuzzy fix: '{key}' -> '{name}' (edit distance {distance})")
            result[name] = value
        else:
            result[key] = value

    return result


def validate(fields: Dict[str, str], expected: Sequence[str], mode: ValidationMode) -> None:
    """
    Check reconciled fields against the validation policy.

    Strict: every expected field must be present and at least one of them
    must be non-empty. Optional: any field in the map (expected or not) must
    carry non-whitespace content.

    Raises:
        MissingFieldsError, AllFieldsEmptyError: strict mode failures
        NoContentError: optional mode failure
    """
    if mode is ValidationMode.OPTIONAL:
        if not any(value.strip() for value in fields.values()):
            raise NoContentError()
        return

    missing = [name for name in expected if name not in fields]
    if missing:
        raise MissingFieldsError(missing, list(fields))

    if all(fields.get(name, "") == "" for name in expected):
        raise AllFieldsEmptyError()


def history_label(fields: Dict[str, str], expected: Sequence[str], fallback: str) -> str:
    """Label to record in history: the sort field's value, else `fallback`."""
    sort_value: Optional[str] = fields.get(expected[0]) if expected else None
    if sort_value and sort_value.strip():
        return sort_value
    return fallback
