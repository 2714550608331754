"""Element normalizer: fills identity, revision and randomization fields."""

from __future__ import annotations

import secrets
import string
from collections.abc import Iterable
from typing import Any

ID_ALPHABET = string.digits + string.ascii_lowercase
ID_LENGTH = 12
SEED_LIMIT = 2**31


def generate_id(length: int = ID_LENGTH) -> str:
    """Return a random element id drawn from ``[0-9a-z]``."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_seed() -> int:
    return secrets.randbelow(SEED_LIMIT)


def normalize_element(raw: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``raw`` with the fields the renderer requires."""
    element = dict(raw)
    if "id" not in element or element["id"] in (None, ""):
        element["id"] = generate_id()
    if "version" not in element:
        element["version"] = 1
    if "versionNonce" not in element:
        element["versionNonce"] = 0
    if "seed" not in element:
        element["seed"] = generate_seed()
    element["isDeleted"] = False
    return element


def normalize(raw_elements: Iterable[Any]) -> list[Any]:
    """Normalize every record, preserving order and count.

    Records that are not mappings pass through untouched; the drawing
    surface decides whether to accept them.
    """
    return [
        normalize_element(raw) if isinstance(raw, dict) else raw
        for raw in raw_elements
    ]
