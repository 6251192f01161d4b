"""
Cached facade over DockerHubClient

Only static and semi-static data goes through the cache. Pull and star
counts, repository listings and deletions always hit upstream.
"""

import json
import re
from typing import Any, Dict, List, Optional

from hubproxy.cache.models import CacheStats, PreloadReport, TTLStrategy
from hubproxy.cache.smart_cache import SmartCache
from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.client import DockerHubClient
from hubproxy.registry.models import DeleteTagResult, ImageLayers, Page

logger = configure_module_logging("cached_api")

POPULAR_IMAGES = [
    ("library", "nginx"),
    ("library", "alpine"),
    ("library", "node"),
    ("library", "python"),
    ("library", "ubuntu"),
]
DEFAULT_TAG_PAGE_SIZE = 100


class CachedHubAPI:
    """Docker Hub operations with per-operation cache lifetimes"""

    def __init__(self, client: DockerHubClient, cache: SmartCache):
        self.client = client
        self.cache = cache

    async def get_image_details(self, namespace: str, repository: str) -> Dict[str, Any]:
        key = SmartCache.generate_key(
            "image_details", {"namespace": namespace, "repository": repository}
        )
        return await self.cache.get(
            key,
            lambda: self.client.get_repository(namespace, repository),
            TTLStrategy.IMAGE_METADATA,
        )

    async def list_tags(
        self,
        namespace: str,
        repository: str,
        page: int = 1,
        page_size: int = DEFAULT_TAG_PAGE_SIZE,
    ) -> Page:
        key = SmartCache.generate_key(
            "list_tags",
            {"namespace": namespace, "repository": repository, "page": page, "page_size": page_size},
        )
        fetch = _bind(self._tag_page, namespace, repository, page, page_size)
        return Page.model_validate(await self.cache.get(key, fetch, TTLStrategy.TAGS))

    async def get_tag_details(self, namespace: str, repository: str, tag: str) -> Dict[str, Any]:
        key = SmartCache.generate_key(
            "tag_details", {"namespace": namespace, "repository": repository, "tag": tag}
        )
        return await self.cache.get(
            key,
            lambda: self.client.get_tag(namespace, repository, tag),
            TTLStrategy.TAGS,
        )

    async def get_manifest(self, namespace: str, repository: str, tag: str) -> Dict[str, Any]:
        key = SmartCache.generate_key(
            "manifest", {"namespace": namespace, "repository": repository, "tag": tag}
        )
        return await self.cache.get(
            key,
            lambda: self.client.get_manifest(namespace, repository, tag),
            TTLStrategy.MANIFEST,
        )

    async def get_image_layers(self, namespace: str, repository: str, tag: str) -> ImageLayers:
        key = SmartCache.generate_key(
            "image_layers", {"namespace": namespace, "repository": repository, "tag": tag}
        )

        async def fetch() -> Dict[str, Any]:
            layers = await self.client.get_image_layers(namespace, repository, tag)
            return layers.model_dump()

        return ImageLayers.model_validate(await self.cache.get(key, fetch, TTLStrategy.LAYERS))

    async def get_image_config(
        self, namespace: str, repository: str, tag: str
    ) -> Optional[Dict[str, Any]]:
        key = SmartCache.generate_key(
            "image_config", {"namespace": namespace, "repository": repository, "tag": tag}
        )
        return await self.cache.get(
            key,
            lambda: self.client.get_image_config(namespace, repository, tag),
            TTLStrategy.IMAGE_METADATA,
        )

    async def search_images(
        self, query: str, page: int = 1, page_size: int = 25, search_mode: str = "all"
    ) -> Dict[str, Any]:
        key = SmartCache.generate_key(
            "search_images",
            {"query": query, "page": page, "page_size": page_size, "search_mode": search_mode},
        )
        return await self.cache.get(
            key,
            lambda: self.client.search(query, page, page_size, search_mode),
            TTLStrategy.SEARCH_RESULTS,
        )

    async def get_vulnerabilities(
        self, namespace: str, repository: str, tag: str
    ) -> Optional[Any]:
        key = SmartCache.generate_key(
            "vulnerabilities", {"namespace": namespace, "repository": repository, "tag": tag}
        )
        return await self.cache.get(
            key,
            lambda: self.client.get_vulnerabilities(namespace, repository, tag),
            TTLStrategy.VULNERABILITIES,
        )

    async def get_dockerfile(self, namespace: str, repository: str, tag: str) -> Optional[str]:
        key = SmartCache.generate_key(
            "dockerfile", {"namespace": namespace, "repository": repository, "tag": tag}
        )
        return await self.cache.get(
            key,
            lambda: self.client.fetch_dockerfile(namespace, repository, tag),
            TTLStrategy.DOCKERFILE,
        )

    # Never cached

    async def get_stats(self, namespace: str, repository: str) -> Dict[str, int]:
        details = await self.client.get_repository(namespace, repository)
        return {
            "pull_count": details.get("pull_count") or 0,
            "star_count": details.get("star_count") or 0,
        }

    async def list_repositories(
        self, username: str, page: int = 1, page_size: int = 100
    ) -> Page:
        return await self.client.list_repositories(username, page, page_size)

    async def delete_tag(self, namespace: str, repository: str, tag: str) -> DeleteTagResult:
        result = await self.client.delete_tag(namespace, repository, tag)
        if result.success:
            self.invalidate_repository(namespace, repository)
        return result

    # Cache management

    def invalidate_repository(self, namespace: str, repository: str) -> int:
        """Drop every cached entry for one repository"""
        pattern = (
            re.escape(f'"namespace": {json.dumps(namespace)}')
            + ".*"
            + re.escape(f'"repository": {json.dumps(repository)}')
        )
        return self.cache.invalidate_pattern(pattern)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def cache_info(self) -> Dict[str, Any]:
        return self.cache.info()

    def clear_cache(self) -> None:
        self.cache.clear()

    async def preload_popular_images(self) -> PreloadReport:
        """Warm details and the first tag page of well-known official images"""
        items: List[Any] = []
        for namespace, repository in POPULAR_IMAGES:
            items.append(
                (
                    SmartCache.generate_key(
                        "image_details", {"namespace": namespace, "repository": repository}
                    ),
                    _bind(self.client.get_repository, namespace, repository),
                    TTLStrategy.IMAGE_METADATA,
                )
            )
            items.append(
                (
                    SmartCache.generate_key(
                        "list_tags",
                        {
                            "namespace": namespace,
                            "repository": repository,
                            "page": 1,
                            "page_size": DEFAULT_TAG_PAGE_SIZE,
                        },
                    ),
                    _bind(self._tag_page, namespace, repository, 1, DEFAULT_TAG_PAGE_SIZE),
                    TTLStrategy.TAGS,
                )
            )
        return await self.cache.preload(items)

    async def _tag_page(
        self, namespace: str, repository: str, page: int, page_size: int
    ) -> Dict[str, Any]:
        result = await self.client.list_tags(namespace, repository, page, page_size)
        return result.model_dump()


def _bind(fn, *args):
    """Zero-argument coroutine function calling fn(*args)"""

    async def call():
        return await fn(*args)

    return call
