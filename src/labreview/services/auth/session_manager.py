from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from labreview.domain.models.user import AuthState, Identity, Role
from labreview.errors import AuthError, LabReviewError, ProfileInsertError
from labreview.infra.auth.session_store import AuthChangeEvent, SessionStore, Subscription
from labreview.services.auth.profiles import ProfileRegistrar, RoleResolver

logger = logging.getLogger(__name__)

AuthStateListener = Callable[[AuthState], None]


class AuthSessionManager:
    """Observable ``{identity, role, profile_id, loading}`` state for one session.

    Combines a SessionStore with role resolution. Every resolution is tagged
    with a generation number; only the resolution for the current generation
    may write state, and starting a new one cancels the previous task.
    """

    def __init__(
        self,
        store: SessionStore,
        resolver: RoleResolver,
        registrar: ProfileRegistrar,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._registrar = registrar
        self._state = AuthState()
        self._listeners: List[AuthStateListener] = []
        self._generation = 0
        self._resolution: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None
        self._closed = False

    @property
    def state(self) -> AuthState:
        return self._state.model_copy()

    @property
    def access_token(self) -> Optional[str]:
        return self._store.access_token

    def subscribe(self, listener: AuthStateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **updates: Any) -> None:
        self._state = self._state.model_copy(update=updates)
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)

    def _next_generation(self) -> int:
        self._generation += 1
        if self._resolution is not None and not self._resolution.done():
            self._resolution.cancel()
        self._resolution = None
        return self._generation

    async def start(self) -> None:
        """Load the current user and resolve its role.

        Lookup failures propagate; ``loading`` is cleared either way.
        """

        if self._subscription is None:
            self._subscription = self._store.on_auth_state_change(self._on_auth_change)
        generation = self._next_generation()
        self._set_state(loading=True)
        try:
            identity = await self._store.get_current_user()
            if identity is None:
                if generation == self._generation:
                    self._set_state(identity=None, role=Role.NONE, profile_id=None)
                return
            await self._resolve(identity, generation)
        finally:
            if generation == self._generation:
                self._set_state(loading=False)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        task = self._resolution
        self._next_generation()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        self._listeners.clear()

    async def __aenter__(self) -> "AuthSessionManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _resolve(self, identity: Identity, generation: int) -> None:
        resolution = await run_in_threadpool(self._resolver.resolve_role, identity.id)
        if generation != self._generation:
            logger.debug("Discarding stale role resolution for generation %s", generation)
            return
        self._set_state(identity=identity, role=resolution.role, profile_id=resolution.profile_id)

    def _schedule_resolution(self, identity: Identity) -> None:
        generation = self._next_generation()
        task = asyncio.get_running_loop().create_task(self._resolve(identity, generation))
        task.add_done_callback(self._log_resolution_failure)
        self._resolution = task

    @staticmethod
    def _log_resolution_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Role resolution failed", exc_info=exc)

    def _clear(self) -> None:
        self._next_generation()
        self._set_state(identity=None, role=Role.NONE, profile_id=None, loading=False)

    def _on_auth_change(self, event: AuthChangeEvent, identity: Optional[Identity]) -> None:
        if self._closed:
            return
        if event in (AuthChangeEvent.SIGNED_IN, AuthChangeEvent.USER_UPDATED):
            if identity is None:
                self._clear()
            else:
                self._schedule_resolution(identity)
        elif event == AuthChangeEvent.SIGNED_OUT:
            self._clear()
        else:
            raise ValueError(f"Unhandled auth event: {event!r}")

    async def wait_until_settled(self) -> None:
        """Wait for the in-flight role resolution, if any, to finish."""

        while self._resolution is not None and not self._resolution.done():
            await asyncio.wait({self._resolution})

    async def sign_in(self, email: str, password: str) -> Optional[LabReviewError]:
        try:
            await self._store.sign_in(email, password)
        except AuthError as exc:
            return exc
        return None

    async def sign_up(
        self,
        email: str,
        password: str,
        role: Role,
        profile_fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[LabReviewError]:
        """Create the identity, then its doctor or patient profile.

        Returns the first error encountered, or None. A profile insert failure
        leaves the identity in place without a profile.
        """

        if role == Role.NONE:
            return AuthError("Choose a doctor or patient account")
        try:
            identity = await self._store.sign_up(email, password)
        except AuthError as exc:
            return exc

        try:
            await run_in_threadpool(self._registrar.create_profile, role, identity, profile_fields)
        except ProfileInsertError as exc:
            logger.warning("Profile insert failed after sign-up; identity %s has no profile", identity.id)
            return exc

        # The sign-in notification may have resolved before the profile existed.
        if self._store.access_token is not None:
            self._schedule_resolution(identity)
        return None

    async def sign_out(self) -> None:
        try:
            await self._store.sign_out()
        finally:
            self._clear()
