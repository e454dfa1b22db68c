from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from expense_tracker.errors import NotFoundError, RateLimitedError, TransportError
from expense_tracker.logger import get_logger
from expense_tracker.storage import USER_TOKEN_KEY, KeyValueStorage

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
RATE_LIMITED_MESSAGE = "Too many requests. Please try again in a few moments."
NOT_FOUND_MESSAGE = "Resource not found. Please try again."


@dataclass
class ApiClient:
    """Client for the remote expense data service.

    Every request carries `Authorization: Bearer <token>` when a session
    token is present in storage. Failures surface as `TransportError`
    (or its `RateLimitedError` subclass) and `NotFoundError`; nothing is
    retried.
    """

    base_url: str
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    storage: Optional[KeyValueStorage] = None
    opener: Callable[..., Any] = urlopen

    def list_expenses(self) -> list[dict]:
        payload = self._request("GET", "/expenses")
        if not isinstance(payload, list):
            raise TransportError("Unexpected response from server.")
        return payload

    def get_expense(self, expense_id: str) -> Optional[dict]:
        try:
            payload = self._request("GET", f"/expenses/{quote(str(expense_id), safe='')}")
        except NotFoundError:
            return None
        if not isinstance(payload, dict):
            raise TransportError("Unexpected response from server.")
        return payload

    def create_expense(self, record: dict) -> dict:
        payload = self._request("POST", "/expenses", body=record)
        if not isinstance(payload, dict):
            raise TransportError("Unexpected response from server.")
        return payload

    def delete_expense(self, expense_id: str) -> None:
        self._request("DELETE", f"/expenses/{quote(str(expense_id), safe='')}")

    def find_user(self, username: str) -> Optional[dict]:
        try:
            payload = self._request("GET", f"/users?{urlencode({'username': username})}")
        except NotFoundError:
            return None
        if not isinstance(payload, list):
            raise TransportError("Unexpected response from server.")
        return payload[0] if payload else None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = self.storage.get(USER_TOKEN_KEY) if self.storage else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        url = f"{self.base_url.rstrip('/')}{path}"
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = Request(url, data=data, method=method, headers=self._headers())
        try:
            with self.opener(request, timeout=self.timeout) as response:
                raw = response.read()
        except HTTPError as exc:
            if exc.code == 429:
                raise RateLimitedError(RATE_LIMITED_MESSAGE) from exc
            if exc.code == 404:
                raise NotFoundError(NOT_FOUND_MESSAGE) from exc
            logger.error("API error %s %s: HTTP %s", method, path, exc.code)
            raise TransportError(f"Request failed with status {exc.code}.") from exc
        except (URLError, TimeoutError, OSError) as exc:
            logger.error("API error %s %s: %s", method, path, exc)
            raise TransportError("Network error. Please check your connection.") from exc

        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise TransportError("Unexpected response from server.") from exc
