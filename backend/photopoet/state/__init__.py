# State package - per-session UI state, fencing and the typewriter reveal
from photopoet.state.controller import PoetController, UIState
from photopoet.state.reveal import TextReveal
from photopoet.state.sessions import SessionStore, get_session_store

__all__ = [
    "PoetController",
    "UIState",
    "TextReveal",
    "SessionStore",
    "get_session_store",
]
