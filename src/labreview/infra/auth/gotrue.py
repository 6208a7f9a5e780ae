from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from labreview.domain.models.user import Identity
from labreview.errors import AuthError
from labreview.infra.auth.session_store import AuthChangeEvent, AuthListeners, AuthStateCallback, Subscription

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Auth request failed with status {response.status_code}"
    for key in ("error_description", "msg", "message", "error"):
        value = body.get(key) if isinstance(body, dict) else None
        if isinstance(value, str) and value:
            return value
    return f"Auth request failed with status {response.status_code}"


def _identity_from_user(user: Dict[str, Any]) -> Identity:
    return Identity(id=str(user["id"]), email=user.get("email") or "")


class GoTrueSessionStore:
    """Session store backed by a hosted GoTrue (Supabase Auth) endpoint.

    The shared ``httpx.AsyncClient`` is owned by the caller; this handle only
    tracks the access token of its own session.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        anon_key: str,
        access_token: Optional[str] = None,
    ) -> None:
        self._client = client
        self._auth_url = f"{base_url.rstrip('/')}/auth/v1"
        self._anon_key = anon_key
        self._access_token = access_token
        self._listeners = AuthListeners()

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token or self._anon_key}",
        }

    async def _post(self, path: str, payload: Dict[str, Any], *, token: Optional[str] = None) -> httpx.Response:
        try:
            return await self._client.post(f"{self._auth_url}{path}", json=payload, headers=self._headers(token))
        except httpx.HTTPError as exc:
            raise AuthError(f"Auth service unreachable: {exc.__class__.__name__}") from exc

    async def sign_in(self, email: str, password: str) -> Identity:
        response = await self._post("/token?grant_type=password", {"email": email, "password": password})
        if response.status_code >= 400:
            raise AuthError(_error_message(response))
        body = response.json()
        identity = _identity_from_user(body["user"])
        self._access_token = body["access_token"]
        self._listeners.emit(AuthChangeEvent.SIGNED_IN, identity)
        return identity

    async def sign_up(self, email: str, password: str) -> Identity:
        response = await self._post("/signup", {"email": email, "password": password})
        if response.status_code >= 400:
            raise AuthError(_error_message(response))
        body = response.json()
        # With auto-confirm the body is a session; otherwise it is the bare user.
        if "access_token" in body:
            identity = _identity_from_user(body["user"])
            self._access_token = body["access_token"]
            self._listeners.emit(AuthChangeEvent.SIGNED_IN, identity)
            return identity
        return _identity_from_user(body)

    async def sign_out(self) -> None:
        token = self._access_token
        self._access_token = None
        if token is not None:
            try:
                response = await self._client.post(f"{self._auth_url}/logout", headers=self._headers(token))
                if response.status_code >= 400:
                    logger.warning("GoTrue logout returned status %s", response.status_code)
            except httpx.HTTPError:
                logger.warning("GoTrue logout request failed", exc_info=True)
        self._listeners.emit(AuthChangeEvent.SIGNED_OUT, None)

    async def get_current_user(self) -> Optional[Identity]:
        if self._access_token is None:
            return None
        try:
            response = await self._client.get(f"{self._auth_url}/user", headers=self._headers(self._access_token))
        except httpx.HTTPError as exc:
            raise AuthError(f"Auth service unreachable: {exc.__class__.__name__}") from exc
        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise AuthError(_error_message(response))
        return _identity_from_user(response.json())

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        return self._listeners.add(callback)
