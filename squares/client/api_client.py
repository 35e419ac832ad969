"""Async client for the squares API gateway."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

import config

logger = logging.getLogger("squares.client")

STATUS_MESSAGES = {
    401: "Authentication required",
    403: "Access denied",
    404: "Resource not found",
}


class ApiClientError(Exception):
    """A failed API call. status_code is None for network errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


def _error_from_response(response: httpx.Response) -> ApiClientError:
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None
    details = body.get("details") if isinstance(body, dict) and isinstance(body.get("details"), dict) else None
    if status in STATUS_MESSAGES:
        return ApiClientError(STATUS_MESSAGES[status], status, details)
    if status >= 500:
        return ApiClientError("Server error", status, details)
    if isinstance(body, dict) and (body.get("error") or body.get("message")):
        return ApiClientError(body.get("error") or body.get("message"), status, details)
    return ApiClientError(f"Request failed with status {status}", status, details)


class ApiClient:
    """One method per API route. Each returns the response envelope {success, data, message?}.

    Usable as an async context manager; pass `transport` to run against an in-process app.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.token = token
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout if timeout is not None else config.API_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        headers = {}
        token = token or self.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._http.request(
                method,
                endpoint,
                json=body if method in ("POST", "PUT") and body is not None else None,
                params=params or None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error("API request failed: %s %s: %s", method, endpoint, e)
            raise ApiClientError(f"Network error: {e}") from e
        if response.is_error:
            error = _error_from_response(response)
            logger.warning("API request failed: %s %s -> %d %s", method, endpoint, response.status_code, error.message)
            raise error
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # Authentication

    async def login(self, username: str, password: str) -> dict[str, Any]:
        return await self.request("POST", "/auth/login", {"username": username, "password": password})

    async def register(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", "/auth/register", data)

    async def logout(self) -> dict[str, Any]:
        return await self.request("POST", "/auth/logout")

    async def get_current_user(self, token: Optional[str] = None) -> dict[str, Any]:
        return await self.request("GET", "/auth/me", token=token)

    async def health(self) -> dict[str, Any]:
        return await self.request("GET", "/health")

    # Games

    async def get_games(
        self, status: Optional[str] = None, limit: Optional[int] = None, cursor: Optional[str] = None
    ) -> dict[str, Any]:
        return await self.request("GET", "/games", params={"status": status, "limit": limit, "cursor": cursor})

    async def get_game(self, game_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/games/{game_id}")

    async def create_game(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", "/games", data)

    async def update_game(self, game_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self.request("PUT", f"/games/{game_id}", data)

    async def delete_game(self, game_id: str) -> dict[str, Any]:
        return await self.request("DELETE", f"/games/{game_id}")

    async def assign_numbers(self, game_id: str) -> dict[str, Any]:
        return await self.request("POST", f"/games/{game_id}/assign-numbers")

    async def update_game_status(self, game_id: str, status: str) -> dict[str, Any]:
        return await self.request("PUT", f"/games/{game_id}/status", {"status": status})

    async def update_game_scores(self, game_id: str, scores: dict[str, Any]) -> dict[str, Any]:
        return await self.request("PUT", f"/games/{game_id}/scores", {"scores": scores})

    async def get_game_winners(self, game_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/games/{game_id}/winners")

    # Squares

    async def get_game_squares(self, game_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/games/{game_id}/squares")

    async def request_square(self, game_id: str, row: int, col: int) -> dict[str, Any]:
        return await self.request("POST", f"/games/{game_id}/squares/request", {"row": row, "col": col})

    async def cancel_square_request(self, game_id: str, square_id: str) -> dict[str, Any]:
        return await self.request("DELETE", f"/games/{game_id}/squares/{square_id}/cancel")

    async def remove_square_from_player(self, game_id: str, square_id: str) -> dict[str, Any]:
        return await self.request("DELETE", f"/games/{game_id}/squares/{square_id}/remove")

    # Square requests

    async def get_square_requests(
        self,
        game_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> dict[str, Any]:
        if game_id:
            return await self.request("GET", f"/games/{game_id}/requests", params={"status": status})
        return await self.request("GET", "/requests", params={"status": status, "limit": limit, "cursor": cursor})

    async def approve_square_request(self, request_id: str) -> dict[str, Any]:
        return await self.request("POST", f"/requests/{request_id}/approve")

    async def reject_square_request(self, request_id: str, reason: Optional[str] = None) -> dict[str, Any]:
        return await self.request("POST", f"/requests/{request_id}/reject", {"reason": reason or ""})

    async def reconcile(self) -> dict[str, Any]:
        return await self.request("POST", "/admin/reconcile")

    # Players

    async def get_user_squares(self, user_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/users/{user_id}/squares")

    async def get_user_requests(self, user_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/users/{user_id}/requests")
