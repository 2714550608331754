"""Sync core: reconciles the drawing surface, the text buffer and external loads.

Loop prevention works by request/acknowledgement. Every programmatic scene
change is sent as a tagged SceneUpdate; outbound propagation (surface -> text)
stays suppressed until the surface acknowledges that tag. Surfaces that cannot
acknowledge get a fixed settle delay instead, after which the same tag check
releases suppression.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
from typing import Any

from drawsync import codec, config
from drawsync.errors import ParseError
from drawsync.github_store import RemoteFileHandle
from drawsync.sync.surface import DrawingSurface, SceneUpdate

logger = logging.getLogger(__name__)


class SyncCore:
    def __init__(
        self,
        surface: DrawingSurface,
        settle_seconds: float | None = None,
        initial_text: str = "[]",
    ) -> None:
        self._surface = surface
        self._settle = config.SURFACE_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        self._lock = threading.RLock()
        self._tags = itertools.count(1)
        self._in_flight: int | None = None
        self._timer: threading.Timer | None = None
        self.canonical_text = initial_text
        self.view_state: dict[str, Any] | None = None
        self.provenance: RemoteFileHandle | None = None
        surface.subscribe(self._on_surface_change, self.acknowledge)

    @property
    def suppress_feedback(self) -> bool:
        return self._in_flight is not None

    # ── Surface -> text ──

    def apply_from_surface(
        self,
        elements: list[dict[str, Any]],
        view_state: dict[str, Any] | None = None,
        tag: int | None = None,
    ) -> bool:
        """Serialize a surface change into the canonical text.

        Returns False when the change was an echo of a programmatic update.
        """
        with self._lock:
            if self._in_flight is not None:
                logger.debug("Surface change dropped (in flight=%s, tag=%s)", self._in_flight, tag)
                return False
            self.canonical_text = codec.serialize_elements(elements)
            self.view_state = codec.project_view_state(view_state)
            return True

    def _on_surface_change(self, elements, view_state, tag) -> None:
        self.apply_from_surface(elements, view_state, tag=tag)

    # ── Text -> surface ──

    def apply_from_text(self, raw_text: str) -> None:
        """Apply an edit of the text buffer.

        Blank text clears the scene. Text that does not parse is kept in the
        buffer and otherwise ignored so the user can keep typing.
        """
        with self._lock:
            self.canonical_text = raw_text
            if not raw_text.strip():
                self._issue(SceneUpdate(tag=next(self._tags), elements=[]))
                return
            try:
                parsed = json.loads(raw_text)
            except ValueError:
                return
            self.apply_from_document(parsed)

    def apply_from_document(self, parsed: Any) -> bool:
        """Push a parsed document (bare array or ``elements`` wrapper) into the surface."""
        try:
            doc = codec.document_from_parsed(parsed)
        except ParseError:
            logger.debug("Ignoring JSON that is not a document: %s", type(parsed).__name__)
            return False

        with self._lock:
            tag = next(self._tags)
            self._begin(tag)
            try:
                elements = self._surface.convert_elements(doc.elements)
                update = SceneUpdate(tag=tag, elements=elements, view_state=doc.view_state)
            except Exception:
                logger.exception("Failed to update scene")
                self._release(tag)
                return False
            return self._dispatch(update)

    def apply_from_external_source(
        self, raw_text: str, provenance: RemoteFileHandle | None = None,
    ) -> bool:
        """Load AI output or a fetched file.

        Text and provenance change only once the surface has accepted the
        document; anything rejected is logged and dropped.
        """
        with self._lock:
            try:
                parsed = json.loads(raw_text)
            except ValueError as e:
                logger.error("Invalid JSON from external source: %s", e)
                return False
            if not self.apply_from_document(parsed):
                logger.error("External document rejected; keeping the current one")
                return False
            self.canonical_text = raw_text
            if provenance is not None:
                self.provenance = provenance
            return True

    # ── Acknowledgement ──

    def acknowledge(self, tag: int) -> None:
        """Completion signal from the surface; stale tags are ignored."""
        with self._lock:
            if self._in_flight == tag:
                self._release(tag)

    def _issue(self, update: SceneUpdate) -> bool:
        self._begin(update.tag)
        return self._dispatch(update)

    def _begin(self, tag: int) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._in_flight = tag

    def _dispatch(self, update: SceneUpdate) -> bool:
        try:
            self._surface.update_scene(update)
        except Exception:
            logger.exception("Failed to update scene")
            self._release(update.tag)
            return False
        if not self._surface.supports_ack and self._in_flight == update.tag:
            self._timer = threading.Timer(self._settle, self.acknowledge, args=(update.tag,))
            self._timer.daemon = True
            self._timer.start()
        return True

    def _release(self, tag: int) -> None:
        if self._in_flight == tag:
            self._in_flight = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
