"""Authenticated JSON transport for the scheduling API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from .config import settings
from .exceptions import (
    HTTP_401_UNAUTHORIZED,
    UnauthorizedError,
    UnknownError,
    error_from_response,
)
from .security import CredentialProvider

logger = logging.getLogger(__name__)


class ApiTransport:
    """Send requests with a bearer credential, retrying exactly once after a 401."""

    def __init__(
        self,
        credentials: CredentialProvider,
        client: httpx.AsyncClient | None = None,
        on_sign_out: Callable[[], None] | None = None,
    ):
        self.credentials = credentials
        self.on_sign_out = on_sign_out
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.api_timeout_seconds,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "ApiTransport":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    async def get(self, path: str, params: dict[str, Any] | None = None, *, unwrap: bool = False) -> Any:
        return await self.request("GET", path, params=params, unwrap=unwrap)

    async def post(
        self,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        *,
        unwrap: bool = True,
    ) -> Any:
        return await self.request("POST", path, json=json, params=params, unwrap=unwrap)

    async def put(
        self,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        *,
        unwrap: bool = True,
    ) -> Any:
        return await self.request("PUT", path, json=json, params=params, unwrap=unwrap)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        unwrap: bool = False,
    ) -> Any:
        token = await self.credentials.token()
        response = await self._send(method, path, token, json=json, params=params)
        if response.status_code == HTTP_401_UNAUTHORIZED:
            logger.warning("401 from %s %s; refreshing credential and retrying once", method, path)
            try:
                token = await self.credentials.refresh()
            except UnauthorizedError:
                await self._sign_out()
                raise
            response = await self._send(method, path, token, json=json, params=params)
            if response.status_code == HTTP_401_UNAUTHORIZED:
                await self._sign_out()
                raise UnauthorizedError("Session expired")

        payload = _decode(response)
        if response.is_error:
            logger.debug("%s %s failed with %s: %s", method, path, response.status_code, payload)
            raise error_from_response(response.status_code, payload)
        if unwrap:
            return _unwrap(payload)
        return payload

    async def _sign_out(self) -> None:
        await self.credentials.sign_out()
        if self.on_sign_out is not None:
            self.on_sign_out()

    async def _send(
        self,
        method: str,
        path: str,
        token: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        try:
            return await self.client.request(method, path, json=json, params=params or None, headers=headers)
        except httpx.TimeoutException as exc:
            raise UnknownError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise UnknownError(f"{method} {path} failed: {exc}") from exc


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        if response.is_error:
            return {"message": response.text}
        raise UnknownError("Failed to parse scheduling service response") from exc


def _unwrap(payload: Any) -> Any:
    if not isinstance(payload, dict):
        return payload
    if payload.get("success") is False:
        raise UnknownError(payload.get("message") or "Scheduling service reported failure")
    if "data" in payload:
        return payload["data"]
    return payload
