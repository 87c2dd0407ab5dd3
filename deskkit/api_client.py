"""Asynchronous JSON API client with authentication headers and a registry of named clients."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Mapping

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3

_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class ApiError(Exception):
    """Base class for errors raised by the API client."""


class HttpError(ApiError):
    """The server answered with a non-success status."""

    def __init__(self, status_code: int, reason: str, response: Any = None) -> None:
        self.status_code = status_code
        self.reason = reason
        self.response = response
        super().__init__(f"HTTP {status_code}: {reason}")


class ApiTimeoutError(ApiError):
    """The request timed out."""

    def __init__(self) -> None:
        super().__init__("Request timeout")


class ApiConnectionError(ApiError):
    """The request could not reach the server, or the API is unknown."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Connection error: {detail}")


def _valid_header(name: str, value: str) -> bool:
    if not _HEADER_NAME.match(name):
        return False
    return all(ch == "\t" or 32 <= ord(ch) < 127 for ch in value)


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown"


class ApiClient:
    """HTTP client that sends and receives JSON against one base URL."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        bearer_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries

        default_headers: dict[str, str] = {}
        if api_key is not None:
            default_headers["X-API-Key"] = api_key
        if bearer_token is not None:
            default_headers["Authorization"] = f"Bearer {bearer_token}"
        default_headers["Content-Type"] = "application/json"
        default_headers["Accept"] = "application/json"
        for name, value in (headers or {}).items():
            if _valid_header(name, value):
                default_headers[name] = value
            else:
                logger.debug("Skipping invalid header %r", name)

        self._client = httpx.AsyncClient(
            headers=default_headers,
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=retries),
        )

    def __repr__(self) -> str:
        return f"ApiClient(base_url={self.base_url!r})"

    def build_url(self, endpoint: str) -> str:
        """Join the base URL and an endpoint with exactly one slash."""
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = self.build_url(endpoint)
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ApiTimeoutError() from exc
        except httpx.TransportError as exc:
            raise ApiConnectionError(str(exc)) from exc
        return self._handle_response(response)

    @staticmethod
    def _handle_response(response: httpx.Response) -> Any:
        if response.is_success:
            if response.headers.get("content-length") == "0" or not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return response.text
        try:
            error_data = response.json()
        except ValueError:
            error_data = None
        raise HttpError(response.status_code, _reason_phrase(response.status_code), error_data)

    async def get(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any:
        """Send a GET request; return the decoded body or None."""
        if params is not None:
            return await self._request("GET", endpoint, params=dict(params))
        return await self._request("GET", endpoint)

    async def post(self, endpoint: str, json: Any = None) -> Any:
        """Send a POST request with an optional JSON body."""
        return await self._send_json("POST", endpoint, json)

    async def put(self, endpoint: str, json: Any = None) -> Any:
        """Send a PUT request with an optional JSON body."""
        return await self._send_json("PUT", endpoint, json)

    async def patch(self, endpoint: str, json: Any = None) -> Any:
        """Send a PATCH request with an optional JSON body."""
        return await self._send_json("PATCH", endpoint, json)

    async def delete(self, endpoint: str) -> Any:
        """Send a DELETE request."""
        return await self._request("DELETE", endpoint)

    async def _send_json(self, method: str, endpoint: str, body: Any) -> Any:
        if body is None:
            return await self._request(method, endpoint)
        return await self._request(method, endpoint, json=body)

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


@dataclass
class _ClientConfig:
    base_url: str
    api_key: str | None = None
    bearer_token: str | None = None
    timeout: float = DEFAULT_TIMEOUT


class ApiClientFactory:
    """Registry of API configurations that builds and caches one client per name."""

    def __init__(self) -> None:
        self._configs: dict[str, _ClientConfig] = {}
        self._clients: dict[str, ApiClient] = {}

    def register(
        self,
        name: str,
        base_url: str,
        bearer_token: str | None = None,
        api_key: str | None = None,
    ) -> None:
        """Register (or replace) the configuration for a named API."""
        self._configs[name] = _ClientConfig(base_url, api_key=api_key, bearer_token=bearer_token)
        logger.debug("Registered API: %s -> %s", name, base_url)

    def get(self, name: str) -> ApiClient:
        """Return the client for a registered API, building it on first use."""
        client = self._clients.get(name)
        if client is not None:
            return client
        config = self._configs.get(name)
        if config is None:
            raise ApiConnectionError(f"Unknown API: {name}. Register it first.")
        client = ApiClient(
            config.base_url,
            api_key=config.api_key,
            bearer_token=config.bearer_token,
            timeout=config.timeout,
        )
        self._clients[name] = client
        logger.debug("Created API client: %s", name)
        return client

    def update_token(self, name: str, token: str) -> None:
        """Change the bearer token of a registered API; the next get() builds a fresh client."""
        config = self._configs.get(name)
        if config is not None:
            config.bearer_token = token
            self._clients.pop(name, None)

    def remove(self, name: str) -> None:
        """Forget a registered API and its cached client."""
        self._clients.pop(name, None)
        self._configs.pop(name, None)

    def list_apis(self) -> list[str]:
        """Return the names of all registered APIs."""
        return list(self._configs)