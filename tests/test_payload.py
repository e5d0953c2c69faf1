"""Tests for the payload boundary."""

from __future__ import annotations

import pytest

from cwa.core.exceptions import InvalidPayload
from cwa.memory.payload import flatten_payload


def test_scalars_pass_through_and_none_is_dropped():
    flat = flatten_payload(
        {"id": "a", "count": 3, "confidence": 0.8, "active": True, "context": None}
    )
    assert flat == {"id": "a", "count": 3, "confidence": 0.8, "active": True}
    assert flat["active"] is True


@pytest.mark.parametrize("value", [{"nested": 1}, ["a"], ("a",), {"a"}, object()])
def test_non_scalars_are_rejected(value):
    with pytest.raises(InvalidPayload):
        flatten_payload({"field": value})


def test_invalid_payload_is_a_value_error():
    with pytest.raises(ValueError):
        flatten_payload({"facts": ["a", "b"]})


def test_non_string_keys_are_rejected():
    with pytest.raises(InvalidPayload):
        flatten_payload({1: "one"})
