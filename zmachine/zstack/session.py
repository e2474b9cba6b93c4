"""Session-authenticated access to the ZStack control plane.

A Session owns the account credentials and the session token issued at
login. Every resource client built against the same credentials holds a
reference to the same Session and goes through ``request``; none of them
touch the token directly.
"""

from __future__ import annotations

import hashlib
from typing import Any

from zmachine.core.exceptions import AuthenticationError, ProtocolError, TransportError
from zmachine.infra.http import HttpClient, HttpError, Response
from zmachine.observability.logger import logger

from .types import LOGIN_PATH, LOGOUT_PATH, LoginRequest, describe_error


def hash_password(password: str) -> str:
    """One-way digest sent in place of the plaintext password (hex SHA-512)."""
    return hashlib.sha512(password.encode("utf-8")).hexdigest()


class Session:
    """Credentials plus the session token they were exchanged for.

    Example:
        async with await Session.open("admin", "password", "http://zstack:8080") as session:
            resp = await session.request("GET", "/zstack/v1/vm-instances")
    """

    def __init__(
        self,
        account_name: str,
        password: str,
        endpoint: str,
        *,
        request_timeout: float = 30,
        http: HttpClient | None = None,
    ) -> None:
        self.account_name = account_name
        self.password_digest = hash_password(password)
        self.endpoint = endpoint.rstrip("/")
        self._token = ""
        self._http = http or HttpClient(self.endpoint, timeout=request_timeout)
        self._log = logger.bind(provider="zstack", component="session")

    @classmethod
    async def open(
        cls,
        account_name: str,
        password: str,
        endpoint: str,
        *,
        request_timeout: float = 30,
    ) -> Session:
        """Build a session and log in."""
        session = cls(account_name, password, endpoint, request_timeout=request_timeout)
        try:
            await session.login()
        except BaseException:
            await session._http.close()
            raise
        return session

    @property
    def token(self) -> str:
        return self._token

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    async def headers(self) -> dict[str, str]:
        return {"Authorization": f"OAuth {self._token}"}

    async def login(self) -> None:
        """Exchange the credentials for a session token.

        Does nothing when a token is already held.

        Raises:
            AuthenticationError: Non-2xx status or an error object in the body.
            TransportError: The login call could not be completed.
            ProtocolError: The response body could not be decoded.
        """
        if self._token:
            self._log.debug("Already logged in, skipping login")
            return

        body: LoginRequest = {
            "logInByAccount": {
                "accountName": self.account_name,
                "password": self.password_digest,
            },
            "systemTags": [],
            "userTags": [],
        }
        try:
            # v1 REST login is PUT, not the POST some older clients send.
            resp = await self._http.send("PUT", LOGIN_PATH, json=dict(body))
        except HttpError as e:
            raise TransportError(f"login request to {self.endpoint} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            if not resp.ok:
                raise AuthenticationError(f"login rejected with status {resp.status}") from e
            raise ProtocolError(f"undecodable login response: {resp.body[:200]}") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            try:
                code, message = describe_error(error)
            except ProtocolError as e:
                raise e.add_context("login")
            raise AuthenticationError(f"login rejected: [{code}] {message}")
        if not resp.ok:
            raise AuthenticationError(f"login rejected with status {resp.status}, expected 2xx")

        inventory = data.get("inventory") if isinstance(data, dict) else None
        token = inventory.get("uuid") if isinstance(inventory, dict) else None
        if not isinstance(token, str) or not token:
            raise ProtocolError("login response carries no session uuid")

        self._token = token
        self._log.info("Logged in as {account}", account=self.account_name)

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> Response:
        """Send an authenticated request and return the raw response.

        Status codes are not interpreted here: a 2xx means different things
        on synchronous and job-accepting endpoints.

        Raises:
            TransportError: The call could not be completed.
        """
        try:
            return await self._http.send(method, path, json=body, params=params, auth=self)
        except HttpError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    async def teardown(self) -> None:
        """Log out and forget the token.

        Logout is best-effort: a server-side failure is logged and the
        token is cleared regardless.
        """
        if not self._token:
            await self._http.close()
            return

        path = LOGOUT_PATH.format(uuid=self._token)
        try:
            resp = await self._http.send("DELETE", path, auth=self)
            if resp.status != 200:
                self._log.warning(
                    "Logout returned status {status}, expected 200", status=resp.status
                )
            else:
                self._log.debug("Logged out")
        except HttpError as e:
            self._log.warning("Logout failed: {error}", error=e)
        finally:
            self._token = ""
            await self._http.close()

    async def __aenter__(self) -> Session:
        await self.login()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.teardown()
