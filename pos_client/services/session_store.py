"""In-process store of checkout sessions, keyed by an id in the signed session cookie."""
import logging
import threading
import time
import uuid
from typing import Callable, Dict, Optional

from flask import Flask, current_app, g, session

from pos_client.models import CheckoutSession

logger = logging.getLogger(__name__)

SESSION_KEY = 'checkout_session_id'


class SessionStore:
    """
    Thread-safe dict of CheckoutSession objects.

    Sessions not touched for `idle_timeout` seconds are evicted on the next
    access to the store.
    """

    def __init__(self, idle_timeout: float = 86400, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[str, CheckoutSession] = {}
        self._last_access: Dict[str, float] = {}
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._lock = threading.Lock()

    def _evict_idle(self, now: float) -> None:
        expired = [sid for sid, seen in self._last_access.items() if now - seen > self._idle_timeout]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._last_access.pop(sid, None)
        if expired:
            logger.info(f"[SESSION] Evicted {len(expired)} idle checkout session(s)")

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            state = self._sessions.get(session_id)
            if state is not None:
                self._last_access[session_id] = now
            return state

    def create(self) -> CheckoutSession:
        state = CheckoutSession(session_id=uuid.uuid4().hex)
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            self._sessions[state.session_id] = state
            self._last_access[state.session_id] = now
        logger.info(f"[SESSION] Created checkout session {state.session_id}")
        return state

    def discard(self, session_id: str) -> bool:
        with self._lock:
            self._last_access.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def init_session_store(app: Flask) -> None:
    """Initialize the checkout session store for the app."""
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    lifetime = app.config.get('PERMANENT_SESSION_LIFETIME', 86400)
    if hasattr(lifetime, 'total_seconds'):
        lifetime = lifetime.total_seconds()
    app.extensions['checkout_sessions'] = SessionStore(idle_timeout=lifetime)


def _get_store() -> SessionStore:
    store = current_app.extensions.get('checkout_sessions')
    if store is None:
        raise RuntimeError("Session store not initialized.")
    return store


def find_checkout_session() -> Optional[CheckoutSession]:
    """Return the caller's checkout session if one exists; never creates one."""
    session_id = session.get(SESSION_KEY)
    state = _get_store().get(session_id) if session_id else None
    if state is not None:
        g.checkout_session = state
    return state


def get_checkout_session() -> CheckoutSession:
    """Return the caller's checkout session, creating one on first use."""
    state = find_checkout_session()
    if state is None:
        state = _get_store().create()
        session[SESSION_KEY] = state.session_id
        g.checkout_session = state
    return state


def drain_feedback() -> list:
    """Pending feedback of an existing session (empty when there is none)."""
    state = find_checkout_session()
    return state.drain_feedback() if state is not None else []


def discard_checkout_session() -> None:
    """Drop the caller's checkout session (logout / screen closed)."""
    session_id = session.pop(SESSION_KEY, None)
    if session_id and _get_store().discard(session_id):
        logger.info(f"[SESSION] Discarded checkout session {session_id}")
