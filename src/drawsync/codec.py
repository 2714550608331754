"""Content codec: transport encoding, fence stripping and document (de)serialization."""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from typing import Any

from drawsync.errors import ParseError

# View-state keys kept when projecting the surface app-state into the document
VIEW_STATE_KEYS = ("viewBackgroundColor", "currentItemFontFamily")

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


@dataclass
class Document:
    """An ordered element list plus optional view state."""

    elements: list[dict[str, Any]] = field(default_factory=list)
    view_state: dict[str, Any] | None = None


# ── Transport encoding ──


def encode_content(text: str) -> str:
    """Encode raw text for the remote store (base64 over UTF-8)."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(encoded: str) -> str:
    """Decode base64 content as returned by the remote store.

    The store wraps its base64 output at 60 columns, so embedded newlines
    are removed before decoding.
    """
    compact = "".join(encoded.split())
    try:
        return base64.b64decode(compact, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ParseError(f"Content is not valid base64 UTF-8: {e}") from e


# ── AI output cleanup ──


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapped around a payload, if present."""
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


# ── Documents ──


def project_view_state(app_state: dict[str, Any] | None) -> dict[str, Any] | None:
    """Keep only the view-state keys that belong in a serialized document."""
    if not app_state:
        return None
    projected = {k: app_state[k] for k in VIEW_STATE_KEYS if k in app_state}
    return projected or None


def document_from_parsed(parsed: Any) -> Document:
    """Build a Document from parsed JSON: a bare array or an ``elements`` wrapper."""
    if isinstance(parsed, list):
        return Document(elements=list(parsed))
    if isinstance(parsed, dict) and isinstance(parsed.get("elements"), list):
        app_state = parsed.get("appState")
        return Document(
            elements=list(parsed["elements"]),
            view_state=app_state if isinstance(app_state, dict) else None,
        )
    raise ParseError("Expected a JSON array of elements or an object with an 'elements' array")


def parse_document(text: str) -> Document:
    """Parse document text, raising ParseError on invalid JSON or shape."""
    try:
        parsed = json.loads(text)
    except ValueError as e:
        raise ParseError(f"Invalid JSON: {e}") from e
    return document_from_parsed(parsed)


def serialize_elements(elements: list[dict[str, Any]]) -> str:
    """Serialize elements to the bare-array form used by the text buffer."""
    return json.dumps(list(elements), indent=2, ensure_ascii=False)


def serialize_file(doc: Document) -> str:
    """Serialize a Document to the wrapper form written to ``.excalidraw`` files."""
    data = {
        "type": "excalidraw",
        "version": 2,
        "source": "https://excalidraw.com",
        "elements": doc.elements,
        "appState": doc.view_state or {},
        "files": {},
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
