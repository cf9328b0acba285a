import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from storyqa_agent.utils.exceptions import StepTimeoutError, TransportError

DEFAULT_CONTENT_TYPE = "application/json"


class ApiResponse(BaseModel):
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""
    elapsed_ms: float = 0.0
    url: str = ""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def content_type(self) -> str:
        return self.header("content-type") or ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class ApiClient(ABC):
    """HTTP capability: one request in, status, headers, body and latency out."""

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        content_type: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse: ...

    async def close(self) -> None:
        return None


class HttpxApiClient(ApiClient):
    def __init__(
        self,
        base_url: str = "",
        default_headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = dict(default_headers or {})
        if auth_token:
            headers.setdefault("Authorization", f"Bearer {auth_token}")
        self.base_url = base_url or ""
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_config(cls, api_config: Optional[Dict[str, Any]], transport=None) -> "HttpxApiClient":
        api_config = api_config or {}
        return cls(
            base_url=api_config.get("base_url") or "",
            default_headers=api_config.get("default_headers") or {},
            auth_token=api_config.get("auth_token"),
            timeout=float(api_config.get("timeout", 30)),
            transport=transport,
        )

    async def request(self, method, url, headers=None, body=None, content_type=None, timeout=None) -> ApiResponse:
        method = method.upper()
        request_headers = dict(headers or {})
        kwargs: Dict[str, Any] = {}

        if body is not None and body != "":
            request_headers.setdefault("Content-Type", content_type or DEFAULT_CONTENT_TYPE)
            if isinstance(body, (dict, list)):
                kwargs["content"] = json.dumps(body).encode("utf-8")
            else:
                kwargs["content"] = str(body).encode("utf-8")

        logging.debug(f"HTTP {method} {url}")
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method, url, headers=request_headers, timeout=timeout or self.timeout, **kwargs
            )
        except httpx.TimeoutException as e:
            raise StepTimeoutError(f"{method} {url} timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        elapsed_ms = (time.perf_counter() - started) * 1000

        return ApiResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            elapsed_ms=elapsed_ms,
            url=str(response.url),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
