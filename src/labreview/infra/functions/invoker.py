from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from labreview.errors import RemoteFunctionError

logger = logging.getLogger(__name__)

GENERATE_REPORT = "generate-report"
PROCESS_PDF = "process-pdf"


class FunctionInvoker(Protocol):
    """Invokes a named remote function with a JSON body.

    Returns the function's JSON data on success and raises
    RemoteFunctionError on any failure. ``access_token`` identifies the
    calling user to the function.
    """

    async def invoke(
        self,
        name: str,
        body: Dict[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError

    async def aclose(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class HttpFunctionInvoker:
    """Calls hosted edge functions at ``{base_url}/functions/v1/{name}``."""

    def __init__(self, client: httpx.AsyncClient, *, base_url: str, anon_key: str) -> None:
        self._client = client
        self._functions_url = f"{base_url.rstrip('/')}/functions/v1"
        self._anon_key = anon_key

    async def invoke(
        self,
        name: str,
        body: Dict[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {access_token or self._anon_key}",
        }
        try:
            response = await self._client.post(f"{self._functions_url}/{name}", json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Remote function %s unreachable: %s", name, exc.__class__.__name__)
            raise RemoteFunctionError(f"Function '{name}' is unreachable") from exc

        if response.status_code >= 400:
            message = f"Function '{name}' failed with status {response.status_code}"
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and isinstance(payload.get("error"), str):
                message = payload["error"]
            raise RemoteFunctionError(message)

        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteFunctionError(f"Function '{name}' returned a non-JSON response") from exc
        return data if isinstance(data, dict) else {"data": data}

    async def aclose(self) -> None:
        # The shared httpx client is closed by its owner.
        return None
