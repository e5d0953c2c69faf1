"""Deterministic mapping from application ids to vector point ids."""

from __future__ import annotations

import re
import uuid

_UUID_BYTES = 16
_HYPHENATED_UUID = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


def uuid_to_point_id(value: str) -> str:
    """Return a UUID string usable as a vector point id.

    A hyphenated 8-4-4-4-12 hex string is returned unchanged. Anything else is
    folded into 16 bytes and stamped as a version 4 UUID, so the same input
    always yields the same point id.
    """
    if _HYPHENATED_UUID.fullmatch(value):
        return value

    raw = value.encode("utf-8")
    folded = bytearray(_UUID_BYTES)
    folded[: min(len(raw), _UUID_BYTES)] = raw[:_UUID_BYTES]
    for index in range(_UUID_BYTES, len(raw)):
        folded[index % _UUID_BYTES] ^= raw[index]

    folded[6] = (folded[6] & 0x0F) | 0x40
    folded[8] = (folded[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(folded)))
