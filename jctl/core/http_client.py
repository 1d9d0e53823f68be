"""
HTTP client utilities using httpx with SSL/proxy support
Responses are wrapped in HTTPResponse so callers can map platform status codes to typed errors
"""

import httpx
import ssl
import json as json_module
from typing import Optional, Dict, Any
from dataclasses import dataclass
from loguru import logger
from .exceptions import ServiceError, GatewayError, NotFoundError, ValidationError, ConflictError


@dataclass
class HTTPResponse:
    """Rich response object providing access to all response data"""
    status_code: int
    headers: Dict[str, str]
    text: str
    content: bytes
    url: str

    def json(self) -> Any:
        """Parse response as JSON"""
        try:
            return json_module.loads(self.text)
        except json_module.JSONDecodeError as e:
            raise ServiceError(f"Failed to parse JSON response: {e}")

    def is_success(self) -> bool:
        """Check if response is successful (2xx)"""
        return 200 <= self.status_code < 300

    def is_client_error(self) -> bool:
        """Check if response is client error (4xx)"""
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        """Check if response is server error (5xx)"""
        return 500 <= self.status_code < 600

    def error_body(self) -> Dict[str, Any]:
        """Best-effort parse of a platform error body ({code, reason, message, detail})"""
        try:
            body = json_module.loads(self.text)
        except json_module.JSONDecodeError:
            return {"message": self.text}
        return body if isinstance(body, dict) else {"message": self.text}

    def raise_for_status(self) -> None:
        """Raise a typed gateway error for non-2xx responses"""
        if self.is_success():
            return

        body = self.error_body()
        message = body.get("message") or f"HTTP {self.status_code}"
        detail = body.get("detail")

        if self.status_code == 404:
            raise NotFoundError(message, self.status_code, detail)
        if self.status_code == 400:
            raise ValidationError(message, self.status_code, detail)
        if self.status_code == 409:
            raise ConflictError(message, self.status_code, detail)
        if self.is_client_error() or self.is_server_error():
            raise GatewayError(message, self.status_code, detail)
        raise ServiceError(f"Unexpected HTTP status {self.status_code}: {message}")


class HTTPClient:
    """Modern HTTP client with SSL and proxy support"""

    def __init__(self,
                 timeout: int = 30,
                 verify_ssl: bool = True,
                 proxy: Optional[str] = None):
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.proxy = proxy
        self.logger = logger

    def _create_client(self) -> httpx.AsyncClient:
        """Create configured httpx client"""

        if not self.verify_ssl:
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            verify = ssl_context
        else:
            verify = True

        client_kwargs = {
            "timeout": self.timeout,
            "verify": verify,
            "headers": {"User-Agent": "jctl"}
        }

        # httpx uses 'proxy' not 'proxies'
        if self.proxy:
            client_kwargs["proxy"] = self.proxy

        return httpx.AsyncClient(**client_kwargs)

    async def _make_request(self, method: str, url: str, **kwargs) -> HTTPResponse:
        """Internal method to make HTTP requests and return HTTPResponse"""
        try:
            async with self._create_client() as client:
                self.logger.debug(f"{method.upper()} {url}")

                response = await client.request(method, url, **kwargs)

                return HTTPResponse(
                    status_code=response.status_code,
                    headers=dict(response.headers),
                    text=response.text,
                    content=response.content,
                    url=str(response.url)
                )

        except httpx.RequestError as e:
            error_msg = f"Request error: {str(e)}"
            self.logger.error(f"Request error for {url}: {error_msg}")
            raise ServiceError(f"Network error: {error_msg}")

    async def get_response(self, url: str, headers: Optional[Dict[str, str]] = None,
                          params: Optional[Dict[str, str]] = None) -> HTTPResponse:
        """GET request returning HTTPResponse object"""
        return await self._make_request("GET", url, headers=headers, params=params)

    async def post_response(self, url: str, json: Optional[Any] = None,
                           headers: Optional[Dict[str, str]] = None,
                           params: Optional[Dict[str, str]] = None) -> HTTPResponse:
        """POST request returning HTTPResponse object"""
        kwargs = {"headers": headers, "params": params}
        if json is not None:
            kwargs["json"] = json
        return await self._make_request("POST", url, **kwargs)

    async def put_response(self, url: str, json: Optional[Any] = None,
                          headers: Optional[Dict[str, str]] = None,
                          params: Optional[Dict[str, str]] = None) -> HTTPResponse:
        """PUT request returning HTTPResponse object"""
        kwargs = {"headers": headers, "params": params}
        if json is not None:
            kwargs["json"] = json
        return await self._make_request("PUT", url, **kwargs)

    async def delete_response(self, url: str, headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
        """DELETE request returning HTTPResponse object"""
        return await self._make_request("DELETE", url, headers=headers)
