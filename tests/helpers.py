"""Shared test helpers — mock requests.Response factories."""

import json
from unittest.mock import MagicMock


def _make_response(status: int = 200, payload=None, text: str | None = None, content_type: str = "application/json"):
    """Create a mock requests.Response carrying a JSON payload or raw text."""
    if text is None:
        text = json.dumps(payload) if payload is not None else ""
    body = text.encode("utf-8")

    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.text = text
    resp.content = body
    resp.headers = {"Content-Type": content_type}
    resp.iter_content.return_value = iter([body[:5], body[5:]]) if body else iter([])
    if payload is not None:
        resp.json.return_value = payload
    else:
        resp.json.side_effect = ValueError("not json")
    return resp


def _make_openai_response(content: str, status: int = 200):
    """Create a mock chat-completions response whose first choice holds ``content``."""
    return _make_response(status, {"choices": [{"message": {"role": "assistant", "content": content}}]})


def _make_anthropic_response(content: str, status: int = 200):
    """Create a mock messages response whose first content block holds ``content``."""
    return _make_response(status, {"content": [{"type": "text", "text": content}]})
