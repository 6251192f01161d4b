"""
Credential exchange for Docker Hub

Docker Hub never accepts the configured credential directly on API calls.
The distribution API wants a short-lived OAuth2 bearer token scoped to one
repository, and the metadata API wants a JWT from the login endpoint. Both
exchanges report failure through TokenResult instead of raising.
"""

import hashlib
from typing import Any, Dict, Optional

from hubproxy.cache.models import TTLStrategy
from hubproxy.cache.smart_cache import SmartCache
from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.exceptions import HubError, InvalidResponse
from hubproxy.registry.http import HubHttp
from hubproxy.registry.models import HubConfig, TokenKind, TokenResult

logger = configure_module_logging("auth")

ANONYMOUS = "anonymous"


class CredentialExchanger:
    """Turns the configured credential into short-lived tokens"""

    def __init__(
        self,
        config: HubConfig,
        http: HubHttp,
        cache: Optional[SmartCache] = None,
    ):
        self.config = config
        self._http = http
        self._cache = cache

    @property
    def has_credential(self) -> bool:
        return self.config.has_credential

    def _secret(self) -> str:
        return self.config.credential.get_secret_value()

    def _fingerprint(self) -> str:
        if not self.has_credential:
            return ANONYMOUS
        return hashlib.sha256(self._secret().encode()).hexdigest()[:16]

    def _cache_key(self, operation: str, scope: str, fingerprint: Optional[str] = None) -> str:
        return SmartCache.generate_key(
            operation, {"credential": fingerprint or self._fingerprint(), "scope": scope}
        )

    def _cached_token(self, key: str) -> Optional[str]:
        if self._cache is None:
            return None
        return self._cache.peek(key)

    def _store_token(self, key: str, token: str) -> None:
        self._http.remember_secret(token)
        if self._cache is not None:
            self._cache.set(key, token, self._cache.resolve_ttl(TTLStrategy.BEARER_TOKENS))

    async def get_registry_token(self, scope: str) -> TokenResult:
        """
        Exchange the credential for a registry bearer token.

        Tries HTTP basic auth first, then presents the credential as a
        bearer token, the form personal access tokens sometimes need.

        Args:
            scope: Token scope (e.g., "repository:library/nginx:pull")

        Returns:
            TokenResult with the token, or with an error description
        """
        if not self.has_credential:
            return TokenResult(error="No credential configured")

        key = self._cache_key("registry_token", scope)
        cached = self._cached_token(key)
        if cached:
            logger.debug(f"Using cached registry token for {scope}")
            return TokenResult(token=cached)

        params = {"service": self.config.auth_service, "scope": scope}
        try:
            body = await self._http.request(
                "GET",
                self.config.auth_url,
                params=params,
                auth=(self.config.username, self._secret()),
            )
        except HubError as e:
            logger.debug(f"Basic auth exchange rejected for {scope}: {e}")
            try:
                body = await self._http.request(
                    "GET",
                    self.config.auth_url,
                    params=params,
                    headers={"Authorization": f"Bearer {self._secret()}"},
                )
            except HubError as second:
                logger.warning(f"Registry token exchange failed for {scope}")
                return TokenResult(error=f"Registry token exchange failed: {second}")

        token = _token_from(body)
        if not token:
            return TokenResult(error="Registry token response did not contain a token")

        self._store_token(key, token)
        logger.info(f"Obtained registry token for {scope}")
        return TokenResult(token=token)

    async def get_anonymous_registry_token(self, scope: str) -> str:
        """
        Get a pull token without credentials.

        Raises:
            HubError: The token endpoint refused or returned garbage
        """
        key = self._cache_key("registry_token", scope, fingerprint=ANONYMOUS)
        cached = self._cached_token(key)
        if cached:
            return cached

        body = await self._http.request(
            "GET",
            self.config.auth_url,
            params={"service": self.config.auth_service, "scope": scope},
        )
        token = _token_from(body)
        if not token:
            raise InvalidResponse(f"Anonymous token response for {scope} did not contain a token")

        self._store_token(key, token)
        return token

    async def get_hub_token(self) -> TokenResult:
        """Log in to the metadata API and return its JWT."""
        if not self.has_credential:
            return TokenResult(error="No credential configured")

        key = self._cache_key("hub_token", "hub")
        cached = self._cached_token(key)
        if cached:
            logger.debug("Using cached hub token")
            return TokenResult(token=cached)

        try:
            body = await self._http.request(
                "POST",
                f"{self.config.hub_url}/users/login/",
                json_body={"username": self.config.username, "password": self._secret()},
            )
        except HubError as e:
            logger.warning("Hub login failed")
            return TokenResult(error=f"Hub login failed: {e}")

        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            return TokenResult(error="Hub login response did not contain a token")

        self._store_token(key, token)
        logger.info("Obtained hub session token")
        return TokenResult(token=token)

    async def token_for(self, kind: TokenKind, scope: str) -> TokenResult:
        if kind == TokenKind.REGISTRY:
            return await self.get_registry_token(scope)
        return await self.get_hub_token()

    @staticmethod
    def authorization_header(kind: TokenKind, token: str) -> str:
        if kind == TokenKind.REGISTRY:
            return f"Bearer {token}"
        return f"JWT {token}"


def _token_from(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    data: Dict[str, Any] = body
    return data.get("token") or data.get("access_token")
