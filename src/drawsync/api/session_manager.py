"""Per-session state: one surface, sync core and chat history per editing session."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from drawsync.agent.pipeline import ChatSession
from drawsync.agent.provider import ProviderConfig
from drawsync.relay import Relay
from drawsync.sync.core import SyncCore
from drawsync.sync.surface import HeadlessSurface

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: str
    surface: HeadlessSurface
    core: SyncCore
    chat: ChatSession
    # Serializes applyFrom* calls for this document
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Held for the duration of a remote save
    save_lock: threading.Lock = field(default_factory=threading.Lock)


class SessionManager:
    """Creates, looks up and removes sessions.

    A session lives until it is removed or the process exits; nothing is
    evicted automatically.
    """

    def __init__(
        self,
        config_loader: Callable[[], ProviderConfig],
        relay_factory: Callable[[], Relay] | None = None,
    ) -> None:
        self._config_loader = config_loader
        self._relay_factory = relay_factory or Relay
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self) -> Session:
        surface = HeadlessSurface()
        session = Session(
            id=str(uuid.uuid4()),
            surface=surface,
            core=SyncCore(surface),
            chat=ChatSession(self._config_loader, relay=self._relay_factory()),
        )
        with self._lock:
            self._sessions[session.id] = session
        logger.info("Session %s created", session.id)
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info("Session %s removed", session_id)
        return True
