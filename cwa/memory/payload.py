"""Payload boundary between engine records and vector stores."""

from __future__ import annotations

from typing import Any, Mapping

from cwa.core.exceptions import InvalidPayload

from .records import Payload


def flatten_payload(payload: Mapping[str, Any]) -> Payload:
    """Validate a payload as a flat mapping of scalar values.

    ``None`` values are dropped. Nested or non-scalar values raise
    :class:`InvalidPayload` instead of being stringified.
    """
    flat: Payload = {}
    for key, value in payload.items():
        if not isinstance(key, str):
            raise InvalidPayload(f"Payload keys must be strings, got {type(key).__name__}")
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            flat[key] = value
        else:
            raise InvalidPayload(
                f"Payload field '{key}' has unsupported type {type(value).__name__}; "
                "only str, int, float and bool are allowed"
            )
    return flat
