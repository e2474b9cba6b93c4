from __future__ import annotations

import asyncio
import json as jsonlib
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import aiohttp

from zmachine.observability.logger import logger

# ─── Errors ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class HttpError(Exception):
    status: int
    body: str

    def __str__(self) -> str:
        if self.status == 0:
            return f"connection failed: {self.body}"
        return f"HTTP {self.status}: {self.body}"


# ─── Response ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Response:
    """Raw response: status, body text and headers, uninterpreted.

    The meaning of a status code varies by endpoint, so classification is
    left to the caller.
    """

    status: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status // 100 == 2

    def json(self) -> Any:
        """Decode the body as JSON. Empty bodies decode to ``None``.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        if not self.body.strip():
            return None
        return jsonlib.loads(self.body)


# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


# ─── Client ──────────────────────────────────────────────────────────


class HttpClient:
    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._default_headers = default_headers or {}
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _build_headers(self, auth: Auth | None) -> dict[str, str]:
        headers = {"Accept": "application/json", **self._default_headers}
        if auth:
            headers.update(await auth.headers())
        return headers

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        auth: Auth | None = None,
    ) -> Response:
        """Execute a request and return the raw response for any status.

        Args:
            method: HTTP method.
            path: Path appended to the base URL.
            json: Optional JSON body.
            params: Optional query parameters.
            auth: Per-request auth, overriding the client's default.

        Raises:
            HttpError: With ``status=0`` when the call itself could not be
                completed (connection refused, reset, request timeout).
        """
        session = await self._ensure_session()
        headers = await self._build_headers(auth or self._auth)
        self._log.debug("{method} {path}", method=method, path=path)

        try:
            async with session.request(
                method, self._url(path), headers=headers, json=json, params=params
            ) as resp:
                body = await resp.text()
                self._log.debug(
                    "{method} {path} -> {status}",
                    method=method, path=path, status=resp.status,
                )
                return Response(status=resp.status, body=body, headers=dict(resp.headers))
        except aiohttp.ClientError as e:
            raise HttpError(status=0, body=str(e) or type(e).__name__) from e
        except asyncio.TimeoutError as e:
            raise HttpError(status=0, body=f"request timed out after {self._timeout.total}s") from e

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session and not self._session.closed:
            self._log.debug("Closing HTTP session")
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
