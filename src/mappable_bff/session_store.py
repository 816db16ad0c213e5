# src/mappable_bff/session_store.py

import logging
import time
import typing
import uuid

from fastapi import Request
from itsdangerous import BadSignature, TimestampSigner
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from .exceptions import SessionKeyError
from .session_data import SessionData

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "mappable_session"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24  # 24 hours
SESSION_PURGE_INTERVAL = 60 * 5


class SessionStore:
    """
    In-memory server-side session storage keyed by an opaque session ID.

    A record exists only once something has been written to it; requests that
    never set a key leave no trace. Expiry is sliding: every successful lookup
    pushes the deadline out by ``max_age`` seconds. Expired records are swept
    at most once per ``purge_interval``. All access happens on the event loop,
    so writes are simply last-write-wins.
    """

    def __init__(self, max_age: int = SESSION_COOKIE_MAX_AGE,
                 clock: typing.Callable[[], float] = time.time,
                 purge_interval: float = SESSION_PURGE_INTERVAL):
        self.max_age = max_age
        self.purge_interval = purge_interval
        self._clock = clock
        self._last_purge = clock()
        self._sessions: typing.Dict[str, SessionData] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self._peek(session_id) is not None

    def _is_expired(self, data: SessionData, now: float) -> bool:
        return now - data.last_seen > self.max_age

    def _peek(self, session_id: str) -> typing.Optional[SessionData]:
        data = self._sessions.get(session_id)
        if data is None:
            return None
        if self._is_expired(data, self._clock()):
            del self._sessions[session_id]
            return None
        return data

    @staticmethod
    def new_session_id() -> str:
        return uuid.uuid4().hex

    def _store_new(self, session_id: str) -> SessionData:
        now = self._clock()
        if now - self._last_purge >= self.purge_interval:
            self.purge_expired()
        data = SessionData(created_at=now, last_seen=now)
        self._sessions[session_id] = data
        return data

    def get(self, session_id: str) -> typing.Optional[SessionData]:
        data = self._peek(session_id)
        if data is not None:
            data.last_seen = self._clock()
        return data

    def touch(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def set_key(self, session_id: str, key: str) -> None:
        data = self.get(session_id)
        if data is None:
            data = self._store_new(session_id)
        data.api_key = key

    def get_key(self, session_id: str) -> typing.Optional[str]:
        data = self.get(session_id)
        if data is None or not data.has_api_key:
            return None
        return data.api_key

    def invalidate(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        self._last_purge = now
        expired = [sid for sid, data in self._sessions.items() if self._is_expired(data, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Purged %d expired session(s)", len(expired))
        return len(expired)


class SessionMiddlewareCustom(BaseHTTPMiddleware):
    """
    Resolves the signed session cookie to a server-side session.

    A missing, tampered or expired cookie gets a fresh session ID that is only
    stored (and sent as a cookie) once a handler writes to it. Live sessions
    have their cookie re-issued on every response, which slides its expiry.
    """

    def __init__(self, app, store: SessionStore, secret_key: str, https_only: bool = False):
        super().__init__(app)
        self.store = store
        self.signer = TimestampSigner(secret_key, salt="mappable-bff.session")
        self.https_only = https_only

    def _load_session_id(self, cookie_value: typing.Optional[str]) -> typing.Optional[str]:
        if not cookie_value:
            return None
        try:
            session_id = self.signer.unsign(cookie_value, max_age=self.store.max_age).decode("utf-8")
        except BadSignature:
            logger.info("Rejected session cookie with invalid or expired signature")
            return None
        if not self.store.touch(session_id):
            return None
        return session_id

    async def dispatch(self, request, call_next):
        cookie_value = request.cookies.get(SESSION_COOKIE_NAME)
        session_id = self._load_session_id(cookie_value)
        if session_id is None:
            session_id = self.store.new_session_id()
        request.state.session_id = session_id
        request.state.session_store = self.store

        response: StarletteResponse = await call_next(request)

        if session_id in self.store:
            response.set_cookie(
                SESSION_COOKIE_NAME,
                self.signer.sign(session_id).decode("utf-8"),
                max_age=self.store.max_age,
                httponly=True,
                secure=self.https_only,
                samesite="lax",
            )
        elif cookie_value:
            response.delete_cookie(SESSION_COOKIE_NAME, secure=self.https_only, samesite="lax")
        return response


def get_session_store(request: Request) -> SessionStore:
    return request.state.session_store


def get_session_id(request: Request) -> str:
    return request.state.session_id


def require_api_key(request: Request) -> str:
    """FastAPI dependency: the session's API key, or ``SessionKeyError``."""
    api_key = get_session_store(request).get_key(get_session_id(request))
    if not api_key:
        logger.warning("Rejected %s %s: API key is not set in the session.",
                       request.method, request.url.path)
        raise SessionKeyError()
    return api_key
