from __future__ import annotations

import secrets
from enum import Enum
from threading import Lock
from typing import Callable, Dict, List, Optional, Protocol
from uuid import uuid4

import bcrypt
from pydantic import EmailStr, TypeAdapter, ValidationError

from labreview.domain.models.user import Identity
from labreview.errors import AuthError

_email_adapter = TypeAdapter(EmailStr)


class AuthChangeEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"


AuthStateCallback = Callable[[AuthChangeEvent, Optional[Identity]], None]


class Subscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self._active = True

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._unsubscribe()


class SessionStore(Protocol):
    """Client-side handle onto an authentication provider.

    One instance tracks at most one signed-in session, identified by its
    access token. Callbacks registered with ``on_auth_state_change`` are called
    synchronously after every sign-in and sign-out.
    """

    @property
    def access_token(self) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError

    async def sign_in(self, email: str, password: str) -> Identity:  # pragma: no cover - interface
        """Sign in with a password; raises AuthError on bad credentials."""
        raise NotImplementedError

    async def sign_up(self, email: str, password: str) -> Identity:  # pragma: no cover - interface
        """Create an identity and sign it in; raises AuthError on duplicates."""
        raise NotImplementedError

    async def sign_out(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def get_current_user(self) -> Optional[Identity]:  # pragma: no cover - interface
        raise NotImplementedError

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:  # pragma: no cover - interface
        raise NotImplementedError


class AuthListeners:
    def __init__(self) -> None:
        self._callbacks: List[AuthStateCallback] = []

    def add(self, callback: AuthStateCallback) -> Subscription:
        self._callbacks.append(callback)
        return Subscription(lambda: self._callbacks.remove(callback))

    def emit(self, event: AuthChangeEvent, identity: Optional[Identity]) -> None:
        for callback in list(self._callbacks):
            callback(event, identity)


class InMemoryIdentityDirectory:
    """Process-local identity provider shared by all session store handles.

    Stores bcrypt password hashes and opaque bearer tokens. Intended for tests
    and local development; hosted deployments use GoTrueSessionStore.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._by_email: Dict[str, Identity] = {}
        self._by_id: Dict[str, Identity] = {}
        self._password_hashes: Dict[str, bytes] = {}
        self._tokens: Dict[str, str] = {}

    @staticmethod
    def _normalize(email: str) -> str:
        return email.strip().lower()

    def create_identity(self, email: str, password: str) -> Identity:
        key = self._normalize(email)
        try:
            _email_adapter.validate_python(key)
        except ValidationError as exc:
            raise AuthError("Unable to validate email address: invalid format") from exc
        if len(password) < 6:
            raise AuthError("Password should be at least 6 characters")
        with self._lock:
            if key in self._by_email:
                raise AuthError("User already registered")
            identity = Identity(id=str(uuid4()), email=key)
            self._by_email[key] = identity
            self._by_id[identity.id] = identity
            self._password_hashes[identity.id] = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
        return identity

    def authenticate(self, email: str, password: str) -> Identity:
        with self._lock:
            identity = self._by_email.get(self._normalize(email))
            hashed = self._password_hashes.get(identity.id) if identity is not None else None
        if identity is None or hashed is None or not bcrypt.checkpw(password.encode("utf-8"), hashed):
            raise AuthError("Invalid login credentials")
        return identity

    def issue_token(self, identity: Identity) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._tokens[token] = identity.id
        return token

    def identity_for_token(self, token: str) -> Optional[Identity]:
        with self._lock:
            identity_id = self._tokens.get(token)
            if identity_id is None:
                return None
            return self._by_id.get(identity_id)

    def revoke_token(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)


class InMemorySessionStore:
    def __init__(self, directory: InMemoryIdentityDirectory, access_token: Optional[str] = None) -> None:
        self._directory = directory
        self._access_token = access_token
        self._listeners = AuthListeners()

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    async def sign_in(self, email: str, password: str) -> Identity:
        identity = self._directory.authenticate(email, password)
        self._access_token = self._directory.issue_token(identity)
        self._listeners.emit(AuthChangeEvent.SIGNED_IN, identity)
        return identity

    async def sign_up(self, email: str, password: str) -> Identity:
        identity = self._directory.create_identity(email, password)
        # Accounts are confirmed immediately, so sign-up also opens a session.
        self._access_token = self._directory.issue_token(identity)
        self._listeners.emit(AuthChangeEvent.SIGNED_IN, identity)
        return identity

    async def sign_out(self) -> None:
        if self._access_token is not None:
            self._directory.revoke_token(self._access_token)
            self._access_token = None
        self._listeners.emit(AuthChangeEvent.SIGNED_OUT, None)

    async def get_current_user(self) -> Optional[Identity]:
        if self._access_token is None:
            return None
        return self._directory.identity_for_token(self._access_token)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        return self._listeners.add(callback)
