from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pulse.core.errors import ValidationError, ValidationReason

MAX_CUSTOM_EVENT_NAME_LENGTH = 120
MAX_CUSTOM_EVENT_STRING_SIZE = 10 * 1024
MAX_CUSTOM_EVENT_KEYS = 12
MAX_CUSTOM_EVENT_ARRAY_SIZE = 12


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    reason: ValidationReason | None = None
    message: str | None = None

    def raise_if_invalid(self) -> None:
        if not self.valid:
            raise ValidationError(self.reason or ValidationReason.INVALID_TYPES, self.message or "")


OK = ValidationResult(valid=True)


def _fail(reason: ValidationReason, message: str) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason, message=message)


def validate_custom_event(name: Any, metadata: Any = None) -> ValidationResult:
    """
    Checks a custom event name and optional metadata. First failure wins:

      1. name non-empty
      2. name length <= 120
      3. metadata values are str | int | float | bool | list[str]
      4. canonical JSON of metadata <= 10 KiB, measured as UTF-8
      5. at most 12 keys
      6. every list has at most 12 items

    A metadata object that references itself fails with CIRCULAR_REFERENCE,
    never with a size or shape reason.
    """
    if not isinstance(name, str) or not name:
        return _fail(ValidationReason.NAME_REQUIRED, "send_custom_event name is required.")

    if len(name) > MAX_CUSTOM_EVENT_NAME_LENGTH:
        return _fail(
            ValidationReason.NAME_TOO_LONG,
            f'send_custom_event name "{name[:32]}..." too large '
            f"(max {MAX_CUSTOM_EVENT_NAME_LENGTH} chars).",
        )

    if metadata is None:
        return OK

    return _check_metadata(metadata, subject=f'send_custom_event "{name}" metadata object')


def validate_global_metadata(metadata: Any) -> ValidationResult:
    """Same rule set as custom event metadata; runs once at construction."""
    if metadata is None:
        return OK
    return _check_metadata(metadata, subject="global_metadata object")


def _check_metadata(metadata: Any, *, subject: str) -> ValidationResult:
    shape = _shape_violation(metadata)
    if shape is ValidationReason.CIRCULAR_REFERENCE:
        return _fail(shape, f"{subject} contains circular references.")
    if shape is not None:
        return _fail(
            shape,
            f"{subject} has invalid types. "
            "Valid types are string, number, boolean or lists of strings.",
        )

    try:
        encoded = json.dumps(metadata, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except ValueError:
        return _fail(
            ValidationReason.CIRCULAR_REFERENCE, f"{subject} contains circular references."
        )
    except TypeError:
        return _fail(ValidationReason.INVALID_TYPES, f"{subject} is not JSON serializable.")

    if len(encoded.encode("utf-8")) > MAX_CUSTOM_EVENT_STRING_SIZE:
        return _fail(
            ValidationReason.TOO_LARGE,
            f"{subject} is too large (max {MAX_CUSTOM_EVENT_STRING_SIZE // 1024} KB).",
        )

    if len(metadata) > MAX_CUSTOM_EVENT_KEYS:
        return _fail(
            ValidationReason.TOO_MANY_KEYS,
            f"{subject} has too many keys (max {MAX_CUSTOM_EVENT_KEYS} keys).",
        )

    if any(isinstance(v, list) and len(v) > MAX_CUSTOM_EVENT_ARRAY_SIZE for v in metadata.values()):
        return _fail(
            ValidationReason.ARRAY_TOO_LARGE,
            f"{subject} has a too large array prop (max {MAX_CUSTOM_EVENT_ARRAY_SIZE} length).",
        )

    return OK


def _shape_violation(metadata: Any) -> ValidationReason | None:
    if not isinstance(metadata, Mapping):
        return ValidationReason.INVALID_TYPES

    for key, value in metadata.items():
        if not isinstance(key, str):
            return ValidationReason.INVALID_TYPES
        if value is metadata:
            return ValidationReason.CIRCULAR_REFERENCE
        if isinstance(value, str | bool | int):
            continue
        if isinstance(value, float):
            if not math.isfinite(value):
                return ValidationReason.INVALID_TYPES
            continue
        if isinstance(value, list):
            if any(item is value or item is metadata for item in value):
                return ValidationReason.CIRCULAR_REFERENCE
            if all(isinstance(item, str) for item in value):
                continue
        return ValidationReason.INVALID_TYPES

    return None
