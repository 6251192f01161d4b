"""Wiring of the cache, HTTP session, token exchange and API client."""

import time
from typing import Callable, Optional

import httpx

from hubproxy.cache.cached_api import CachedHubAPI
from hubproxy.cache.smart_cache import SmartCache
from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.auth import CredentialExchanger
from hubproxy.registry.client import DockerHubClient
from hubproxy.registry.fallback import FallbackExecutor
from hubproxy.registry.http import HubHttp
from hubproxy.registry.models import HubConfig
from hubproxy.registry.rate_limit import RateLimiter

logger = configure_module_logging("context")


class HubContext:
    """Owns one cache and one HTTP session for the lifetime of a server or test"""

    def __init__(
        self,
        config: HubConfig,
        cache: SmartCache,
        limiter: RateLimiter,
        http: HubHttp,
        exchanger: CredentialExchanger,
        client: DockerHubClient,
    ):
        self.config = config
        self.cache = cache
        self.limiter = limiter
        self.http = http
        self.exchanger = exchanger
        self.client = client
        self.api = CachedHubAPI(client, cache)

    @classmethod
    def create(
        cls,
        config: Optional[HubConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "HubContext":
        """
        Build every service from configuration

        Args:
            config: Settings, read from the environment when omitted
            transport: httpx transport override, used by tests to fake Docker Hub
            clock: Time source shared by the cache and the rate limiter
        """
        config = config or HubConfig.from_env()

        cache = SmartCache(
            max_size=config.cache_max_size,
            default_ttl=config.cache_default_ttl,
            cleanup_interval=config.cache_cleanup_interval,
            ttl_overrides=config.ttl_overrides,
            clock=clock,
        )
        limiter = RateLimiter(
            max_requests_per_hour=config.max_requests_per_hour,
            max_concurrent_requests=config.max_concurrent_requests,
            clock=clock,
        )
        if "max_requests_per_hour" not in config.model_fields_set:
            limiter.update_limits(authenticated=config.has_credential)
        http = HubHttp(config, limiter=limiter, transport=transport, clock=clock)
        exchanger = CredentialExchanger(config, http, cache=cache)
        executor = FallbackExecutor(exchanger, escalate_on_not_found=config.escalate_on_not_found)
        client = DockerHubClient(config, http, exchanger, executor)

        logger.info(
            f"Hub context ready (credential={'yes' if config.has_credential else 'no'}, "
            f"cache_max_size={config.cache_max_size})"
        )
        return cls(config, cache, limiter, http, exchanger, client)

    def redact(self, message: str) -> str:
        return self.http.redact(message)

    async def start(self) -> None:
        """Start background cache maintenance"""
        self.cache.start()

    async def aclose(self) -> None:
        await self.cache.stop()
        await self.http.close()
        logger.info("Hub context closed")

    async def __aenter__(self) -> "HubContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
