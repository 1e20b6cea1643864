"""
Core HTTP client for the SDC CloudAPI.

Handles request signing, request/response, status checking, and error handling.
"""

import http.client
import json
import os
import urllib.error
import urllib.request
from collections.abc import Mapping
from email.utils import formatdate
from typing import Any, Protocol

from loguru import logger

from sdc_cli.core.auth import Credentials
from sdc_cli.core.errors import APIError, CLIError, InvalidStateError, NotFoundError, ValidationError
from sdc_cli.core.request import HTTP_NO_CONTENT, HTTP_OK, Request

__all__ = [
    "APIClient",
    "APIError",
    "CLIError",
    "HTTPTransport",
    "InvalidStateError",
    "NotFoundError",
    "Transport",
    "ValidationError",
]

# Configuration
DEFAULT_BASE_URL = "https://us-east-1.api.joyentcloud.com"
DEFAULT_API_VERSION = "~7.0"
DEFAULT_TIMEOUT = 60


# =============================================================================
# Transport
# =============================================================================


class Transport(Protocol):
    """Sends one HTTP request and returns ``(status, body)``.

    Non-2xx responses are returned, not raised; only an unreachable server
    raises.
    """

    def send(self, method: str, url: str, body: bytes | None, headers: dict[str, str]) -> tuple[int, bytes]: ...


class HTTPTransport:
    """urllib based transport."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def send(self, method: str, url: str, body: bytes | None, headers: dict[str, str]) -> tuple[int, bytes]:
        try:
            req = urllib.request.Request(url, data=body, headers=headers, method=method)
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return response.status, response.read()

        except urllib.error.HTTPError as e:
            return e.code, e.read()

        except urllib.error.URLError as e:
            raise APIError(f"Connection error: {e.reason}") from e

        except TimeoutError as e:
            raise APIError(f"Request timed out after {self.timeout} seconds") from e

        # Dropped or reset connections surface from getresponse() unwrapped
        except (OSError, http.client.HTTPException) as e:
            raise APIError(f"Connection error: {e!r}") from e


# =============================================================================
# API client
# =============================================================================


class APIClient:
    """
    Low-level HTTP client for the SDC CloudAPI.

    Handles:
    - Request signing via account credentials
    - Expected status checking (200/201/202/204)
    - Error handling and response parsing
    """

    def __init__(
        self,
        base_url: str | None = None,
        credentials: Credentials | None = None,
        api_version: str | None = None,
        transport: Transport | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the API client.

        Args:
            base_url: CloudAPI endpoint (or SDC_URL env var)
            credentials: Signing credentials (or Credentials.from_env())
            api_version: Api-Version header (or SDC_API_VERSION env var)
            transport: Transport used to send requests (defaults to HTTPTransport)
            timeout: Request timeout in seconds for the default transport

        """
        self.base_url = (base_url or os.environ.get("SDC_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.credentials = credentials if credentials is not None else Credentials.from_env()
        self.api_version = api_version or os.environ.get("SDC_API_VERSION", DEFAULT_API_VERSION)
        self.transport = transport or HTTPTransport(timeout)

    def _build_url(self, request: Request) -> str:
        """Build full URL from a request."""
        return f"{self.base_url}{request.url}"

    def _headers(self, with_body: bool) -> dict[str, str]:
        date = formatdate(usegmt=True)
        headers = {
            "Accept": "application/json",
            "Api-Version": self.api_version,
            "Date": date,
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        try:
            authorization = self.credentials.authorization(date)
        except ValueError as e:
            raise APIError(f"failed to sign request: {e}") from e
        if authorization:
            headers["Authorization"] = authorization
        return headers

    def send(self, request: Request, error: str | None = None) -> Any:
        """
        Send a request and decode its JSON response.

        Args:
            request: The request to send
            error: Message prefix naming the operation, used when the request fails

        Returns:
            Decoded JSON response, or None for empty bodies

        Raises:
            NotFoundError: When the server answers 404
            APIError: On transport errors or any other unexpected status

        """
        try:
            return self._make_request(request)
        except APIError as e:
            if error is None:
                raise
            logger.warning("{} {} failed: {}", request.method, request.url, e.message)
            raise type(e)(f"{error}: {e.message}", status=e.status, details=e.details) from e

    def _make_request(self, request: Request) -> Any:
        url = self._build_url(request)
        body = json.dumps(request.body).encode("utf-8") if request.body is not None else None
        headers = self._headers(body is not None)

        logger.debug("{} {}", request.method, url)
        status, raw = self.transport.send(request.method, url, body, headers)
        logger.debug("{} {} -> {}", request.method, url, status)

        text = raw.decode("utf-8") if raw else ""
        if status != request.expected_status:
            raise self._status_error(status, text)

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}", status=status)

    @staticmethod
    def _status_error(status: int, text: str) -> APIError:
        """Build an error from a failed response body."""
        error_data: dict[str, Any] = {}
        message = f"HTTP {status}"
        if text:
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                message = f"HTTP {status}: {text}"
            else:
                # CloudAPI errors look like {"code": "ResourceNotFound", "message": "..."}
                if isinstance(decoded, dict):
                    error_data = decoded
                    message = decoded.get("message") or decoded.get("code") or message
        if status == 404:
            return NotFoundError(message, status=status, details=error_data)
        return APIError(message, status=status, details=error_data)

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    def get(self, path: str, params: Mapping[str, Any] | None = None, error: str | None = None) -> Any:
        """Make a GET request expecting 200."""
        return self.send(Request("GET", path, query=params), error)

    def post(
        self,
        path: str,
        data: Any = None,
        params: Mapping[str, Any] | None = None,
        expected_status: int = HTTP_OK,
        error: str | None = None,
    ) -> Any:
        """Make a POST request."""
        return self.send(Request("POST", path, query=params, body=data, expected_status=expected_status), error)

    def put(self, path: str, data: Any = None, expected_status: int = HTTP_OK, error: str | None = None) -> Any:
        """Make a PUT request."""
        return self.send(Request("PUT", path, body=data, expected_status=expected_status), error)

    def delete(self, path: str, error: str | None = None) -> None:
        """Make a DELETE request expecting 204."""
        self.send(Request("DELETE", path, expected_status=HTTP_NO_CONTENT), error)
