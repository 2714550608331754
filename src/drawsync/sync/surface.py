"""Drawing-surface collaborator interface and a headless in-memory surface."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from drawsync.errors import SurfaceImportError
from drawsync.normalizer import normalize

logger = logging.getLogger(__name__)

# (elements, view_state, tag) -> None; tag is None for user-originated changes
ChangeListener = Callable[[list[dict[str, Any]], dict[str, Any], "int | None"], None]
AckListener = Callable[[int], None]


@dataclass(frozen=True)
class SceneUpdate:
    """A tagged instruction asking the surface to adopt a document."""

    tag: int
    elements: list[dict[str, Any]]
    view_state: dict[str, Any] | None = None


@runtime_checkable
class DrawingSurface(Protocol):
    # True when the surface calls the ack listener after each SceneUpdate
    supports_ack: bool

    def convert_elements(self, raw: list[Any]) -> list[dict[str, Any]]:
        """Validate and convert loosely-typed elements into surface elements."""
        ...

    def update_scene(self, update: SceneUpdate) -> None:
        """Adopt the given scene. Change notifications may fire later."""
        ...

    def subscribe(self, on_change: ChangeListener, on_ack: AckListener | None = None) -> None:
        ...


class HeadlessSurface:
    """In-memory surface used by the service and tests.

    Change notifications for a SceneUpdate carry its tag and are followed by an
    acknowledgement. Edits made through ``edit`` notify untagged, like a user
    drawing on the canvas.
    """

    supports_ack = True

    def __init__(self) -> None:
        self._elements: list[dict[str, Any]] = []
        self._view_state: dict[str, Any] = {"viewBackgroundColor": "#ffffff", "currentItemFontFamily": 1}
        self._listeners: list[tuple[ChangeListener, AckListener | None]] = []
        self._lock = threading.Lock()

    @property
    def elements(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._elements]

    @property
    def view_state(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._view_state)

    def subscribe(self, on_change: ChangeListener, on_ack: AckListener | None = None) -> None:
        self._listeners.append((on_change, on_ack))

    def convert_elements(self, raw: list[Any]) -> list[dict[str, Any]]:
        for i, el in enumerate(raw):
            if not isinstance(el, dict):
                raise SurfaceImportError(f"Element {i} is not an object")
            if not isinstance(el.get("type"), str):
                raise SurfaceImportError(f"Element {i} has no type")
        return normalize(raw)

    def update_scene(self, update: SceneUpdate) -> None:
        with self._lock:
            self._elements = [dict(e) for e in update.elements]
            if update.view_state:
                self._view_state.update(update.view_state)
        logger.debug("Scene replaced: %d element(s), tag=%d", len(update.elements), update.tag)
        self._notify(update.tag)
        for _, on_ack in self._listeners:
            if on_ack is not None:
                on_ack(update.tag)

    def edit(self, elements: list[dict[str, Any]], view_state: dict[str, Any] | None = None) -> None:
        """Replace the scene as the user would, notifying without a tag."""
        with self._lock:
            self._elements = [dict(e) for e in elements]
            if view_state:
                self._view_state.update(view_state)
        self._notify(None)

    def _notify(self, tag: int | None) -> None:
        elements, view_state = self.elements, self.view_state
        for on_change, _ in self._listeners:
            on_change(elements, view_state, tag)
