"""
In-memory session store.

Each browser session owns one PoetController. Nothing is persisted; the
oldest sessions are evicted once SESSION_LIMIT is reached.
"""

import logging
import uuid
from collections import OrderedDict
from typing import Optional

from photopoet.config import Settings, get_settings
from photopoet.services.generation import GenerationService, get_generation_service
from photopoet.state.controller import PoetController

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, service: Optional[GenerationService] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.service = service or get_generation_service()
        self._sessions: "OrderedDict[str, PoetController]" = OrderedDict()

    def create(self) -> PoetController:
        session_id = uuid.uuid4().hex
        controller = PoetController(self.service, settings=self.settings, session_id=session_id)
        self._sessions[session_id] = controller

        while len(self._sessions) > self.settings.SESSION_LIMIT:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info(f"Evicted session {evicted}")

        logger.info(f"Created session {session_id} ({len(self._sessions)} active)")
        return controller

    def get(self, session_id: str) -> Optional[PoetController]:
        controller = self._sessions.get(session_id)
        if controller is not None:
            self._sessions.move_to_end(session_id)
        return controller

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


# Dependency injection support
_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store
