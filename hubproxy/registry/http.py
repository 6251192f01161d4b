import hashlib
import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from hubproxy.cache.models import DEFAULT_TTLS, TTLStrategy
from hubproxy.cache.smart_cache import SmartCache
from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.exceptions import (
    InvalidResponse,
    NetworkError,
    NotFound,
    RateLimited,
    UpstreamError,
    redact,
)
from hubproxy.registry.models import HubConfig
from hubproxy.registry.rate_limit import RateLimiter

logger = configure_module_logging("http")

USER_AGENT = "hubproxy/0.1.0"
ISSUED_TOKEN_LIMIT = 500


class HubHttp:
    """Shared async HTTP session that turns upstream failures into HubError types"""

    def __init__(
        self,
        config: HubConfig,
        limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.limiter = limiter
        self._client = self._create_client(transport)
        # Issued tokens only need scrubbing while they can still be in use
        self.issued_tokens = SmartCache(
            max_size=ISSUED_TOKEN_LIMIT,
            default_ttl=DEFAULT_TTLS[TTLStrategy.BEARER_TOKENS],
            ttl_overrides=config.ttl_overrides,
            clock=clock,
        )

    def _create_client(
        self, transport: Optional[httpx.AsyncBaseTransport]
    ) -> httpx.AsyncClient:
        """Create configured httpx client"""
        return httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=self.config.timeout,
            follow_redirects=True,
            transport=transport,
        )

    def remember_secret(self, secret: Optional[str]) -> None:
        """Register a token so it gets scrubbed from error messages until it expires"""
        if not secret:
            return
        self.issued_tokens.cleanup()
        key = hashlib.sha256(secret.encode()).hexdigest()
        self.issued_tokens.set(
            key, secret, self.issued_tokens.resolve_ttl(TTLStrategy.BEARER_TOKENS)
        )

    def secrets(self) -> List[str]:
        """The configured credential plus every issued token still live"""
        live = self.issued_tokens.values()
        if self.config.credential is not None:
            live.insert(0, self.config.credential.get_secret_value())
        return live

    def redact(self, message: str) -> str:
        return redact(message, self.secrets())

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        auth: Optional[Tuple[str, str]] = None,
        expect_json: bool = True,
        limited: bool = True,
    ) -> Any:
        """
        Perform one upstream request.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Extra request headers
            params: Query parameters
            json_body: JSON request body
            auth: Basic auth pair
            expect_json: Parse the body as JSON, otherwise return text
            limited: Count the request against the Docker Hub quota

        Returns:
            Parsed JSON body, response text, or None for an empty body

        Raises:
            NotFound: HTTP 404
            RateLimited: HTTP 429 or local quota exhausted
            UpstreamError: Any other HTTP error status
            NetworkError: Transport failure
            InvalidResponse: Body is not valid JSON
        """
        if self.limiter is None or not limited:
            return await self._send(method, url, headers, params, json_body, auth, expect_json)

        async with self.limiter.slot():
            return await self._send(method, url, headers, params, json_body, auth, expect_json)

    async def _send(self, method, url, headers, params, json_body, auth, expect_json) -> Any:
        logger.debug(f"{method} {url} params={params}")
        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                auth=auth,
            )
        except httpx.HTTPError as e:
            logger.error(f"Request failed {method} {url}: {type(e).__name__}")
            raise NetworkError(self.redact(f"{method} {url} failed: {e}")) from e

        if response.status_code >= 400:
            detail = self.redact(_error_detail(response))
            logger.debug(f"{method} {url} -> {response.status_code}: {detail}")
            if response.status_code == 404:
                raise NotFound(detail)
            if response.status_code == 429:
                if self.limiter is not None:
                    self.limiter.record_rate_limited()
                raise RateLimited(detail)
            raise UpstreamError(response.status_code, detail)

        if not expect_json:
            return response.text
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponse(f"Invalid JSON from {url}: {e}") from e

    async def close(self) -> None:
        """Close the underlying client"""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _error_detail(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error body."""
    try:
        body = response.json()
    except (ValueError, json.JSONDecodeError):
        return response.text[:200] or response.reason_phrase

    if isinstance(body, dict):
        if body.get("detail"):
            return str(body["detail"])
        if body.get("message"):
            return str(body["message"])
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("message", errors[0]))
    return str(body)[:200]
