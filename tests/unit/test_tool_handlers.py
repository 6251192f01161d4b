"""Tests for the individual Docker Hub tools."""

import httpx
import pytest

from hubproxy.tools.catalog import run_tool
from tests.fixtures import sample_data as data
from tests.fixtures.fake_hub import REGISTRY

pytestmark = pytest.mark.unit

NGINX = {"namespace": "library", "repository": "nginx"}
NGINX_LATEST = {**NGINX, "tag": "latest"}


class TestRepositoryTools:
    """Tests for repository-level tools."""

    @pytest.mark.asyncio
    async def test_search_images(self, ctx):
        result = await run_tool(ctx, "docker_search_images", {"query": "nginx"})

        assert not result.is_error
        assert result.summary == "Found 2 repositories matching 'nginx'"
        assert result.data["results"]["count"] == 2
        assert result.data["results"]["search_mode"] == "all"

    @pytest.mark.asyncio
    async def test_search_images_mentions_private_matches(self, authed_ctx):
        result = await run_tool(authed_ctx, "docker_search_images", {"query": "nginx"})
        assert "(1 private)" in result.summary

    @pytest.mark.asyncio
    async def test_get_image_details(self, ctx):
        result = await run_tool(ctx, "docker_get_image_details", NGINX)

        assert "library/nginx" in result.summary
        assert result.data["details"] == data.NGINX_REPOSITORY

    @pytest.mark.asyncio
    async def test_list_tags(self, ctx):
        result = await run_tool(ctx, "docker_list_tags", {**NGINX, "page_size": 3})

        assert result.data == {"tags": ["latest", "1.27", "alpine"], "count": 3, "page": 1, "has_next": True}
        assert result.summary == "Found 3 tags for library/nginx (3 total)"

    @pytest.mark.asyncio
    async def test_get_tag_details(self, ctx):
        result = await run_tool(ctx, "docker_get_tag_details", NGINX_LATEST)
        assert result.data["tag_details"]["digest"] == data.NGINX_INDEX_DIGEST

    @pytest.mark.asyncio
    async def test_get_stats(self, ctx):
        result = await run_tool(ctx, "docker_get_stats", NGINX)

        assert result.data == {"pull_count": 1000000000, "star_count": 20412}
        assert result.summary == "Stats for library/nginx: 1000000000 pulls, 20412 stars."

    @pytest.mark.asyncio
    async def test_list_repositories_anonymous_sees_public_only(self, ctx):
        result = await run_tool(ctx, "docker_list_repositories", {"username": "alice"})

        assert [r["name"] for r in result.data["repositories"]] == ["nginx-proxy"]
        assert result.summary == "Found 1 repositories for user alice"

    @pytest.mark.asyncio
    async def test_delete_tag_without_credential(self, ctx, fake_hub):
        result = await run_tool(
            ctx, "docker_delete_tag", {"namespace": "alice", "repository": "secret-app", "tag": "v1.2.0"}
        )

        assert result.is_error is True
        assert result.data["success"] is False
        assert fake_hub.requests == []


class TestImageTools:
    """Tests for manifest, layer and config based tools."""

    @pytest.mark.asyncio
    async def test_get_manifest(self, ctx):
        result = await run_tool(ctx, "docker_get_manifest", NGINX)

        assert result.data["manifest"] == data.NGINX_INDEX
        assert result.summary == "Manifest for library/nginx:latest"

    @pytest.mark.asyncio
    async def test_analyze_layers(self, ctx):
        result = await run_tool(ctx, "docker_analyze_layers", NGINX_LATEST)

        assert len(result.data["layers"]) == 3
        assert result.data["total_size"] == data.NGINX_TOTAL_SIZE
        assert result.summary.startswith(f"Found 3 layers, total size: {data.NGINX_TOTAL_SIZE} bytes")
        assert "MB" in result.summary

    @pytest.mark.asyncio
    async def test_estimate_pull_size(self, ctx):
        result = await run_tool(ctx, "docker_estimate_pull_size", NGINX_LATEST)

        assert result.data["total_size"] == data.NGINX_TOTAL_SIZE
        assert "67.67 MB" in result.summary

    @pytest.mark.asyncio
    async def test_compare_images(self, ctx):
        result = await run_tool(
            ctx,
            "docker_compare_images",
            {"image1": NGINX_LATEST, "image2": {"namespace": "library", "repository": "httpd"}},
        )

        comparison = result.data["comparison"]
        assert comparison["shared_layers"] == 1
        assert comparison["unique_to_image1"] == 2
        assert comparison["unique_to_image2"] == 1
        assert comparison["image1"]["name"] == "library/nginx:latest"
        assert comparison["image2"]["layer_count"] == 2
        assert comparison["size_difference"] == abs(data.NGINX_TOTAL_SIZE - (29126484 + 25000000))

    @pytest.mark.asyncio
    async def test_compare_images_both_missing_reports_first(self, ctx, fake_hub):
        fake_hub.route(
            "GET",
            f"{REGISTRY}/library/httpd/manifests/broken",
            lambda request: httpx.Response(503, json={"message": "service unavailable"}),
        )

        result = await run_tool(
            ctx,
            "docker_compare_images",
            {
                "image1": {**NGINX, "tag": "0.0.0-nope"},
                "image2": {"namespace": "library", "repository": "httpd", "tag": "broken"},
            },
        )

        assert result.is_error is True
        assert "HTTP 404" in result.data["comparison"]["error"]
        assert "503" not in result.summary
        assert len(fake_hub.calls("GET", f"{REGISTRY}/library/httpd/manifests/broken")) == 1

    @pytest.mark.asyncio
    async def test_get_dockerfile(self, ctx):
        result = await run_tool(ctx, "docker_get_dockerfile", NGINX_LATEST)

        assert result.data["dockerfile"] == data.NGINX_DOCKERFILE
        assert result.summary == "Dockerfile found for library/nginx:latest"

    @pytest.mark.asyncio
    async def test_get_dockerfile_not_found(self, ctx):
        result = await run_tool(ctx, "docker_get_dockerfile", {"namespace": "library", "repository": "httpd"})

        assert not result.is_error
        assert result.data == {"dockerfile": None}

    @pytest.mark.asyncio
    async def test_get_vulnerabilities(self, ctx):
        result = await run_tool(ctx, "docker_get_vulnerabilities", NGINX_LATEST)
        assert result.data["vulnerabilities"]["high"] == 2

    @pytest.mark.asyncio
    async def test_get_image_history(self, ctx):
        result = await run_tool(ctx, "docker_get_image_history", NGINX_LATEST)

        assert result.data["history"] == data.NGINX_CONFIG["history"]
        assert result.summary == "Found 3 history entries for library/nginx:latest"

    @pytest.mark.asyncio
    async def test_track_base_updates(self, ctx):
        result = await run_tool(ctx, "docker_track_base_updates", NGINX_LATEST)

        assert result.data == {
            "base_image": "debian:trixie-slim",
            "is_up_to_date": True,
            "latest_base_tag": "trixie-slim",
        }

    @pytest.mark.asyncio
    async def test_private_image_tool_needs_credential(self, ctx):
        result = await run_tool(
            ctx, "docker_analyze_layers", {"namespace": "alice", "repository": "secret-app"}
        )

        assert result.is_error is True
        assert "Credential required" in result.summary
        assert result.data == {"layers": [], "total_size": 0}


class TestCacheInfoTool:
    """Tests for docker_cache_info."""

    @pytest.mark.asyncio
    async def test_stats_after_cached_call(self, ctx):
        await run_tool(ctx, "docker_get_image_details", NGINX)
        await run_tool(ctx, "docker_get_image_details", NGINX)

        result = await run_tool(ctx, "docker_cache_info", {"action": "stats"})

        stats = result.data["cache"]["stats"]
        assert stats["cache_hits"] == 1
        assert stats["hit_rate"] == 50.0
        assert result.data["cache"]["rate_limit"]["health"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_info_is_default(self, ctx):
        result = await run_tool(ctx, "docker_cache_info", {})

        assert "info" in result.data["cache"]
        assert result.summary == "Cache information retrieved"

    @pytest.mark.asyncio
    async def test_clear(self, ctx):
        await run_tool(ctx, "docker_get_image_details", NGINX)

        result = await run_tool(ctx, "docker_cache_info", {"action": "clear"})

        assert result.data["cache"]["cleared"] is True
        assert len(ctx.cache) == 0
