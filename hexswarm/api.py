"""
BackendClient -- request/response calls to the local backend.

Every call returns the backend's JSON object. Transport failures and non-JSON
replies come back as ``{"ok": False, "error": "..."}`` rather than raising:
callers fire these and wait for the next ``sessions`` push to see the effect.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from hexswarm.hexgrid import AxialCoordinate

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


class BackendClient:
    def __init__(self, base_url: str, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._client().request(method, url, json=body, params=params) as resp:
                try:
                    result = await resp.json(content_type=None)
                except ValueError:
                    text = await resp.text()
                    return {"ok": False, "error": f"{resp.status}: {text[:200]}"}
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            return {"ok": False, "error": str(exc) or type(exc).__name__}

        if not isinstance(result, dict):
            return {"ok": False, "error": f"unexpected response from {path}"}
        if not result.get("ok", True) and result.get("error"):
            logger.warning("%s %s: %s", method, path, result["error"])
        return result

    # -- server ---------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def config(self) -> dict[str, Any]:
        return await self._request("GET", "/config")

    # -- sessions -------------------------------------------------------------

    async def list_sessions(self) -> dict[str, Any]:
        return await self._request("GET", "/sessions")

    async def create_session(
        self,
        name: str | None = None,
        cwd: str | None = None,
        flags: dict[str, bool] | None = None,
        zone_position: AxialCoordinate | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if name:
            body["name"] = name
        if cwd:
            body["cwd"] = cwd
        if flags:
            body["flags"] = flags
        if zone_position is not None:
            body["zonePosition"] = zone_position.to_dict()
        return await self._request("POST", "/sessions", body)

    async def update_session(
        self,
        session_id: str,
        name: str | None = None,
        zone_position: AxialCoordinate | None = None,
        clear_position: bool = False,
        auto_accept: bool | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if clear_position:
            body["zonePosition"] = None
        elif zone_position is not None:
            body["zonePosition"] = zone_position.to_dict()
        if auto_accept is not None:
            body["autoAccept"] = auto_accept
        return await self._request("PATCH", f"/sessions/{session_id}", body)

    async def delete_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/sessions/{session_id}")

    async def restart_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/sessions/{session_id}/restart")

    async def send_prompt(self, session_id: str, prompt: str) -> dict[str, Any]:
        return await self._request("POST", f"/sessions/{session_id}/prompt", {"prompt": prompt})

    async def cancel_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/sessions/{session_id}/cancel")

    async def open_terminal(self, session_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/sessions/{session_id}/terminal")

    # -- projects -------------------------------------------------------------

    async def projects(self) -> dict[str, Any]:
        return await self._request("GET", "/projects")

    async def default_path(self) -> dict[str, Any]:
        return await self._request("GET", "/projects/default")

    async def autocomplete(self, query: str, limit: int = 15) -> dict[str, Any]:
        return await self._request(
            "GET", "/projects/autocomplete", params={"q": query, "limit": str(limit)}
        )
