from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.auth import CredentialExchanger
from hubproxy.registry.exceptions import AuthenticationFailed, HubError, InvalidResponse
from hubproxy.registry.fallback import FallbackExecutor
from hubproxy.registry.http import HubHttp
from hubproxy.registry.models import (
    DeleteTagResult,
    HubConfig,
    ImageLayers,
    ImageRef,
    LayerInfo,
    Page,
    TokenKind,
)

logger = configure_module_logging("client")

INDEX_MEDIA_TYPES = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
)
IMAGE_MEDIA_TYPES = (
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
)
ALL_MEDIA_TYPES = ", ".join(INDEX_MEDIA_TYPES + IMAGE_MEDIA_TYPES)

DEFAULT_PLATFORM = ("amd64", "linux")
PRIVATE_SEARCH_MAX_PAGES = 10
SEARCH_MODES = ("all", "public_only", "private_only")


class DockerHubClient:
    """Docker Hub metadata and distribution API client with auth fallback"""

    def __init__(
        self,
        config: HubConfig,
        http: HubHttp,
        exchanger: CredentialExchanger,
        executor: Optional[FallbackExecutor] = None,
    ):
        self.config = config
        self.http = http
        self.exchanger = exchanger
        self.executor = executor or FallbackExecutor(
            exchanger, escalate_on_not_found=config.escalate_on_not_found
        )

    # Metadata API

    async def _hub_get(
        self, path: str, scope: str, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        url = f"{self.config.hub_url}{path}"

        async def attempt(headers: Optional[Dict[str, str]]) -> Any:
            return await self.http.request("GET", url, headers=headers, params=params)

        return await self.executor.execute(attempt, scope, TokenKind.HUB)

    async def get_repository(self, namespace: str, repository: str) -> Dict[str, Any]:
        """
        Get repository metadata

        Args:
            namespace: Repository owner (e.g., "library")
            repository: Repository name (e.g., "nginx")

        Returns:
            Repository metadata as returned by Docker Hub
        """
        ref = ImageRef(namespace=namespace, repository=repository)
        return await self._hub_get(f"/repositories/{ref.repo}", ref.scope)

    async def list_tags(
        self, namespace: str, repository: str, page: int = 1, page_size: int = 100
    ) -> Page:
        """List one page of tags for a repository"""
        ref = ImageRef(namespace=namespace, repository=repository)
        body = await self._hub_get(
            f"/repositories/{ref.repo}/tags",
            ref.scope,
            params={"page": page, "page_size": page_size},
        )
        return _page(body, page)

    async def get_tag(self, namespace: str, repository: str, tag: str) -> Dict[str, Any]:
        ref = ImageRef(namespace=namespace, repository=repository, tag=tag)
        return await self._hub_get(f"/repositories/{ref.repo}/tags/{tag}", ref.scope)

    async def get_tag_images(
        self, namespace: str, repository: str, tag: str
    ) -> List[Dict[str, Any]]:
        """Per-platform image records of a tag, including scan results when present"""
        ref = ImageRef(namespace=namespace, repository=repository, tag=tag)
        body = await self._hub_get(f"/repositories/{ref.repo}/tags/{tag}/images", ref.scope)
        if isinstance(body, dict):
            return body.get("results") or []
        return body or []

    async def get_vulnerabilities(
        self, namespace: str, repository: str, tag: str
    ) -> Optional[Any]:
        """First vulnerability report found among the tag's images, or None"""
        for image in await self.get_tag_images(namespace, repository, tag):
            scan = image.get("scan_results") or {}
            if scan.get("vulnerabilities"):
                return scan["vulnerabilities"]
        return None

    async def list_repositories(
        self, username: str, page: int = 1, page_size: int = 100
    ) -> Page:
        """List one page of a user's or organization's repositories"""
        body = await self._hub_get(
            f"/repositories/{username}/",
            f"repository:{username}/*:pull",
            params={"page": page, "page_size": page_size},
        )
        return _page(body, page)

    async def search_public(self, query: str, page: int = 1, page_size: int = 25) -> Page:
        body = await self._hub_get(
            "/search/repositories",
            "search",
            params={"query": query, "page": page, "page_size": page_size},
        )
        return _page(body, page)

    async def search(
        self,
        query: str,
        page: int = 1,
        page_size: int = 25,
        search_mode: str = "all",
    ) -> Dict[str, Any]:
        """
        Search public repositories and, when a credential and username are
        configured, the user's own repositories.

        Private matches are ranked by relevance and listed ahead of public
        results; a repository found by both searches is listed once.

        Args:
            query: Search text
            page: Public results page
            page_size: Maximum number of merged results
            search_mode: "all", "public_only" or "private_only"

        Returns:
            Dict with count, results, private_matches, public_matches, search_mode
        """
        if search_mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode: {search_mode}")

        public = Page(page=page)
        if search_mode != "private_only":
            public = await self.search_public(query, page, page_size)

        private: List[Dict[str, Any]] = []
        if search_mode != "public_only":
            if self.exchanger.has_credential and self.config.username:
                try:
                    private = await self.search_private(query)
                except HubError as e:
                    if search_mode == "private_only":
                        raise
                    logger.warning(f"Private repository search failed: {self.http.redact(str(e))}")
            elif search_mode == "private_only":
                raise AuthenticationFailed(
                    "Private search requires DOCKERHUB_USERNAME and DOCKERHUB_TOKEN"
                )

        combined = merge_search_results(private, public.results)
        return {
            "count": min(len(private) + public.count, len(combined)),
            "results": combined[:page_size],
            "private_matches": len(private),
            "public_matches": public.count,
            "search_mode": search_mode,
        }

    async def search_private(self, query: str) -> List[Dict[str, Any]]:
        """Match query against the configured user's repositories"""
        result = await self.exchanger.get_hub_token()
        if not result.ok:
            raise AuthenticationFailed(f"Private search login failed: {result.error}")

        username = self.config.username
        headers = {"Authorization": self.exchanger.authorization_header(TokenKind.HUB, result.token)}
        needle = query.lower()
        matches: List[Dict[str, Any]] = []

        page = 1
        while page <= PRIVATE_SEARCH_MAX_PAGES:
            body = await self.http.request(
                "GET",
                f"{self.config.hub_url}/repositories/{username}/",
                headers=headers,
                params={"page": page, "page_size": 100},
            )
            listing = _page(body, page)
            for repo in listing.results:
                name = (repo.get("name") or "").lower()
                description = (repo.get("description") or "").lower()
                if needle in name or needle in description:
                    matches.append(
                        {
                            **repo,
                            "is_private": repo.get("is_private", True),
                            "repo_owner": username,
                            "search_score": search_score(repo, query),
                        }
                    )
            if not listing.has_next:
                break
            page += 1

        matches.sort(key=lambda r: r["search_score"], reverse=True)
        logger.debug(f"Private search for {query!r} matched {len(matches)} repositories")
        return matches

    async def delete_tag(self, namespace: str, repository: str, tag: str) -> DeleteTagResult:
        """
        Delete a tag. Requires a credential with write access.

        Raises:
            HubError: Upstream refused the deletion
        """
        ref = ImageRef(namespace=namespace, repository=repository, tag=tag)
        if not self.exchanger.has_credential:
            return DeleteTagResult(
                success=False,
                message="A credential is required for tag deletion",
            )

        url = f"{self.config.hub_url}/repositories/{ref.repo}/tags/{tag}/"

        async def attempt(headers: Optional[Dict[str, str]]) -> Any:
            return await self.http.request("DELETE", url, headers=headers, expect_json=False)

        await self.executor.execute(attempt, f"repository:{ref.repo}:delete", TokenKind.HUB)
        logger.info(f"Deleted tag {ref}")
        return DeleteTagResult(success=True, message=f"Tag {tag} deleted successfully.")

    # Distribution API

    async def _registry_call(
        self, ref: ImageRef, operation: Callable[[Dict[str, str]], Awaitable[Any]]
    ) -> Any:
        """Run a multi-request registry operation under one token"""

        async def attempt(headers: Optional[Dict[str, str]]) -> Any:
            if headers is None:
                token = await self.exchanger.get_anonymous_registry_token(ref.scope)
                headers = {
                    "Authorization": self.exchanger.authorization_header(TokenKind.REGISTRY, token)
                }
            return await operation(headers)

        return await self.executor.execute(attempt, ref.scope, TokenKind.REGISTRY)

    async def _fetch_manifest(
        self, ref: ImageRef, reference: str, headers: Dict[str, str], accept: str
    ) -> Dict[str, Any]:
        body = await self.http.request(
            "GET",
            f"{self.config.registry_url}/{ref.repo}/manifests/{reference}",
            headers={**headers, "Accept": accept},
        )
        if not isinstance(body, dict):
            raise InvalidResponse(f"Manifest for {ref.repo}@{reference} is not a JSON object")
        return body

    async def _resolve_image_manifest(
        self, ref: ImageRef, headers: Dict[str, str]
    ) -> Tuple[Dict[str, Any], Optional[str]]:
        """Fetch the tag's manifest, following an index to one platform"""
        manifest = await self._fetch_manifest(ref, ref.tag, headers, ALL_MEDIA_TYPES)
        entry = select_platform(manifest)
        if entry is None:
            return manifest, None

        logger.debug(f"Resolving index {ref} to {entry.get('digest')}")
        resolved = await self._fetch_manifest(
            ref, entry["digest"], headers, ", ".join(IMAGE_MEDIA_TYPES)
        )
        platform = entry.get("platform") or {}
        label = "/".join(p for p in (platform.get("os"), platform.get("architecture")) if p)
        return resolved, label or None

    async def get_manifest(self, namespace: str, repository: str, tag: str) -> Dict[str, Any]:
        """
        Get the raw manifest (or index) document for a tag

        Returns:
            Manifest as served by the registry, unmodified
        """
        ref = ImageRef(namespace=namespace, repository=repository, tag=tag)

        async def operation(headers: Dict[str, str]) -> Dict[str, Any]:
            return await self._fetch_manifest(ref, tag, headers, ALL_MEDIA_TYPES)

        return await self._registry_call(ref, operation)

    async def get_image_layers(self, namespace: str, repository: str, tag: str) -> ImageLayers:
        """Layers and total compressed size of the tag's single-platform image"""
        ref = ImageRef(namespace=namespace, repository=repository, tag=tag)

        async def operation(headers: Dict[str, str]) -> ImageLayers:
            manifest, platform = await self._resolve_image_manifest(ref, headers)
            layers = [
                LayerInfo(
                    digest=layer.get("digest") or "",
                    size=layer.get("size") or 0,
                    media_type=layer.get("mediaType"),
                )
                for layer in manifest.get("layers") or []
            ]
            return ImageLayers(
                layers=layers,
                total_size=sum(layer.size for layer in layers),
                platform=platform,
            )

        return await self._registry_call(ref, operation)

    async def get_image_config(
        self, namespace: str, repository: str, tag: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get the image configuration blob (history, rootfs, created date)

        Returns:
            Config document, or None when the manifest names no config
        """
        ref = ImageRef(namespace=namespace, repository=repository, tag=tag)

        async def operation(headers: Dict[str, str]) -> Optional[Dict[str, Any]]:
            manifest, _ = await self._resolve_image_manifest(ref, headers)
            digest = (manifest.get("config") or {}).get("digest")
            if not digest:
                logger.debug(f"No config digest found for {ref}")
                return None
            # blob storage answers with a redirect to a CDN
            return await self.http.request(
                "GET",
                f"{self.config.registry_url}/{ref.repo}/blobs/{digest}",
                headers=headers,
            )

        return await self._registry_call(ref, operation)

    # Source repository

    async def fetch_dockerfile(
        self, namespace: str, repository: str, tag: str
    ) -> Optional[str]:
        """Look for the Dockerfile in the repository's linked GitHub source"""
        details = await self.get_repository(namespace, repository)
        source = details.get("source_url") or details.get("github_repo") or ""
        if "github.com" not in source:
            return None

        repo_path = source.split("github.com/", 1)[1].strip("/")
        if repo_path.endswith(".git"):
            repo_path = repo_path[: -len(".git")]

        for url in dockerfile_candidates(self.config.raw_content_url, repo_path, tag):
            try:
                text = await self.http.request("GET", url, expect_json=False, limited=False)
            except HubError as e:
                logger.debug(f"No Dockerfile at {url}: {e}")
                continue
            if text:
                return text
        return None

    async def aclose(self) -> None:
        await self.http.close()


def _page(body: Any, page: int) -> Page:
    if not isinstance(body, dict):
        raise InvalidResponse("Expected a paginated JSON object")
    results = body.get("results") or []
    return Page(
        count=body.get("count", len(results)) or 0,
        page=page,
        has_next=bool(body.get("next")),
        results=results,
    )


def select_platform(manifest: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Pick the entry of an image index to resolve.

    Returns:
        The linux/amd64 entry, else the first entry, or None when the
        document is not an index
    """
    entries = manifest.get("manifests")
    if manifest.get("mediaType") not in INDEX_MEDIA_TYPES and not isinstance(entries, list):
        return None
    if not entries:
        return None

    arch, os_name = DEFAULT_PLATFORM
    for entry in entries:
        platform = entry.get("platform") or {}
        if platform.get("architecture") == arch and platform.get("os") == os_name:
            return entry
    return entries[0]


def dockerfile_candidates(raw_base: str, repo_path: str, tag: str) -> List[str]:
    return [
        f"{raw_base}/{repo_path}/main/Dockerfile",
        f"{raw_base}/{repo_path}/master/Dockerfile",
        f"{raw_base}/{repo_path}/main/{tag}/Dockerfile",
        f"{raw_base}/{repo_path}/master/{tag}/Dockerfile",
        f"{raw_base}/{repo_path}/Dockerfile",
    ]


def search_score(repo: Dict[str, Any], query: str, now: Optional[datetime] = None) -> int:
    """Relevance of a repository to a search query"""
    needle = query.lower()
    name = (repo.get("name") or "").lower()
    score = 0

    if name == needle:
        score += 100
    elif name.startswith(needle):
        score += 50
    elif needle in name:
        score += 25

    if needle in (repo.get("description") or "").lower():
        score += 10

    updated = _parse_timestamp(repo.get("last_updated"))
    if updated is not None:
        now = now or datetime.now(timezone.utc)
        if (now - updated).days < 30:
            score += 5

    if (repo.get("pull_count") or 0) > 1000:
        score += 3
    if (repo.get("star_count") or 0) > 10:
        score += 2
    return score


def merge_search_results(
    private: List[Dict[str, Any]], public: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Private results first, then public ones not already listed"""
    seen = set()
    combined = []
    for repo in private + public:
        key = f"{repo.get('repo_owner') or repo.get('user')}/{repo.get('name') or repo.get('repo_name')}"
        if key in seen:
            continue
        seen.add(key)
        combined.append(repo)
    return combined


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
