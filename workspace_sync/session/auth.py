"""
Identity boundary: the hosted auth service (GoTrue endpoints under ``/auth/v1``).

Every public mutator returns an ``AuthOutcome`` instead of raising, so callers can show
the message to the user. State changes are broadcast through ``on_auth_state_change``
listeners as ``signed_in`` / ``signed_out`` / ``token_refreshed`` events.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

import httpx
from pydantic import BaseModel

from ..errors import AuthError
from ..utils.timestamps import now_ms

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Authentication operation in progress. Please wait."
UNAVAILABLE_MESSAGE = "Authentication service unavailable"


class AuthEvent(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"


class User(BaseModel):
    id: str
    email: Optional[str] = None
    email_confirmed_at: Optional[str] = None


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    user: User


class AuthOutcome(BaseModel):
    error: Optional[str] = None
    user: Optional[User] = None

    @property
    def ok(self) -> bool:
        return self.error is None


Listener = Callable[[AuthEvent, Optional[Session]], None]


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def _parse_session(payload: Dict[str, Any]) -> Session:
    expires_at = payload.get("expires_at")
    if expires_at is None and payload.get("expires_in") is not None:
        expires_at = now_ms() // 1000 + int(payload["expires_in"])
    return Session(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        expires_at=expires_at,
        user=User(**payload["user"]),
    )


class AuthService:
    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/auth/v1",
            timeout=timeout,
            transport=transport,
            headers={"apikey": api_key, "Content-Type": "application/json"},
        )
        self._session: Optional[Session] = None
        self._listeners: Set[Listener] = set()
        self._operation_lock = asyncio.Lock()
        self.loading = False

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user(self) -> Optional[User]:
        return self._session.user if self._session else None

    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    def on_auth_state_change(self, listener: Listener) -> Callable[[], None]:
        self._listeners.add(listener)

        def unsubscribe() -> None:
            self._listeners.discard(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        logger.info("Auth state change: %s (%s)", event.value, session.user.email if session else "no user")
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth listener failed on %s", event.value)

    async def _call(self, method: str, path: str, *, params: Optional[Dict[str, str]] = None, json: Any = None, token: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as error:
            raise AuthError(UNAVAILABLE_MESSAGE) from error
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        if response.status_code >= 400:
            raise AuthError(_error_message(payload, f"Authentication failed ({response.status_code})"))
        return payload if isinstance(payload, dict) else {}

    async def _run(self, name: str, operation: Callable[[], Any]) -> AuthOutcome:
        if self._operation_lock.locked():
            return AuthOutcome(error=BUSY_MESSAGE)
        async with self._operation_lock:
            self.loading = True
            try:
                return await operation()
            except AuthError as error:
                logger.warning("%s failed: %s", name, error)
                return AuthOutcome(error=str(error))
            finally:
                self.loading = False

    async def sign_up(self, email: str, password: str) -> AuthOutcome:
        async def _operation() -> AuthOutcome:
            payload = await self._call("POST", "/signup", json={"email": email, "password": password})
            if payload.get("access_token"):
                self._session = _parse_session(payload)
                self._emit(AuthEvent.SIGNED_IN, self._session)
                return AuthOutcome(user=self._session.user)
            # Email confirmation pending: the user exists but there is no session yet.
            user_payload = payload.get("user") or payload
            user = User(**user_payload) if user_payload.get("id") else None
            return AuthOutcome(user=user)

        return await self._run("sign_up", _operation)

    async def sign_in(self, email: str, password: str) -> AuthOutcome:
        async def _operation() -> AuthOutcome:
            payload = await self._call("POST", "/token", params={"grant_type": "password"}, json={"email": email, "password": password})
            self._session = _parse_session(payload)
            self._emit(AuthEvent.SIGNED_IN, self._session)
            return AuthOutcome(user=self._session.user)

        return await self._run("sign_in", _operation)

    async def sign_out(self) -> AuthOutcome:
        async def _operation() -> AuthOutcome:
            token = self.access_token()
            try:
                if token:
                    await self._call("POST", "/logout", token=token)
            finally:
                # Local session goes away even when the server call fails.
                self._session = None
                self._emit(AuthEvent.SIGNED_OUT, None)
            return AuthOutcome()

        return await self._run("sign_out", _operation)

    async def reset_password(self, email: str) -> AuthOutcome:
        async def _operation() -> AuthOutcome:
            await self._call("POST", "/recover", json={"email": email})
            return AuthOutcome()

        return await self._run("reset_password", _operation)

    async def refresh_session(self) -> AuthOutcome:
        async def _operation() -> AuthOutcome:
            if not self._session or not self._session.refresh_token:
                return AuthOutcome(error="No session to refresh")
            try:
                payload = await self._call("POST", "/token", params={"grant_type": "refresh_token"}, json={"refresh_token": self._session.refresh_token})
            except AuthError:
                self._session = None
                self._emit(AuthEvent.SIGNED_OUT, None)
                raise
            self._session = _parse_session(payload)
            self._emit(AuthEvent.TOKEN_REFRESHED, self._session)
            return AuthOutcome(user=self._session.user)

        return await self._run("refresh_session", _operation)

    async def get_user(self) -> Optional[User]:
        token = self.access_token()
        if not token:
            return None
        try:
            payload = await self._call("GET", "/user", token=token)
        except AuthError as error:
            logger.error("Session verification failed: %s", error)
            return None
        if not payload.get("id"):
            return None
        return User(**payload)

    async def aclose(self) -> None:
        await self._client.aclose()
