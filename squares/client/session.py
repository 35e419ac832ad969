"""Signed-in state for an API client: the current user and its bearer token."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

from squares.client.api_client import ApiClient, ApiClientError

logger = logging.getLogger("squares.client")


class AuthSession:
    """Holds the token and user for one ApiClient.

    With `token_path` the token survives restarts: it is written on login and removed
    on logout or when the server rejects it.
    """

    def __init__(self, client: ApiClient, token_path: Optional[Union[str, Path]] = None):
        self.client = client
        self.token_path = Path(token_path) if token_path else None
        self.user: Optional[dict[str, Any]] = None
        self.is_loading = True

    @property
    def token(self) -> Optional[str]:
        return self.client.token

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def _stored_token(self) -> Optional[str]:
        if self.token_path is None or not self.token_path.exists():
            return None
        return self.token_path.read_text(encoding="utf-8").strip() or None

    def _set_token(self, token: str) -> None:
        self.client.token = token
        if self.token_path is not None:
            self.token_path.write_text(token, encoding="utf-8")

    def _clear(self) -> None:
        self.client.token = None
        self.user = None
        if self.token_path is not None and self.token_path.exists():
            self.token_path.unlink()

    async def initialize(self) -> Optional[dict[str, Any]]:
        """Restore a stored token and load its user. A rejected token is discarded."""
        self.is_loading = True
        try:
            token = self._stored_token() or self.client.token
            if not token:
                self._clear()
                return None
            self.client.token = token
            try:
                response = await self.client.get_current_user()
            except ApiClientError as e:
                logger.info("Stored token rejected: %s", e.message)
                self._clear()
                return None
            self.user = response.get("data")
            if not self.user:
                self._clear()
            return self.user
        finally:
            self.is_loading = False

    async def login(self, username: str, password: str) -> dict[str, Any]:
        self.is_loading = True
        try:
            response = await self.client.login(username, password)
            data = response.get("data") or {}
            if not data.get("token"):
                raise ApiClientError(response.get("error") or "Login failed")
            self._set_token(data["token"])
            self.user = data["user"]
            return self.user
        except ApiClientError:
            self._clear()
            raise
        finally:
            self.is_loading = False

    async def register(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create an account, then sign in with the same credentials."""
        self.is_loading = True
        try:
            await self.client.register(data)
        except ApiClientError:
            self._clear()
            self.is_loading = False
            raise
        return await self.login(data["username"], data["password"])

    async def logout(self) -> None:
        """Sign out locally even if the server call fails."""
        try:
            if self.client.token:
                await self.client.logout()
        except ApiClientError as e:
            logger.warning("Logout request failed: %s", e.message)
        finally:
            self._clear()
            self.is_loading = False

    async def refresh_user(self) -> Optional[dict[str, Any]]:
        if not self.client.token:
            self._clear()
            return None
        try:
            response = await self.client.get_current_user()
        except ApiClientError as e:
            logger.warning("Failed to refresh user: %s", e.message)
            self._clear()
            return None
        self.user = response.get("data")
        return self.user
