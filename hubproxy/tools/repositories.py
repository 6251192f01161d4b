"""Repository-level tools: search, metadata, tags, stats, listing and deletion."""

from typing import Literal

from pydantic import BaseModel, Field

from hubproxy.cache.cached_api import DEFAULT_TAG_PAGE_SIZE
from hubproxy.context import HubContext
from hubproxy.registry.models import ImageRef
from hubproxy.tools.base import ToolResult, ToolSpec


class RepositoryInput(BaseModel):
    namespace: str = Field(..., min_length=1, description="Repository owner, 'library' for official images")
    repository: str = Field(..., min_length=1, description="Repository name")

    @property
    def repo(self) -> str:
        return f"{self.namespace}/{self.repository}"


class ImageInput(RepositoryInput):
    tag: str = Field("latest", min_length=1, description="Image tag")

    def ref(self) -> ImageRef:
        return ImageRef(namespace=self.namespace, repository=self.repository, tag=self.tag)


class SearchImagesInput(BaseModel):
    query: str = Field(..., min_length=1)
    page: int = Field(1, ge=1)
    page_size: int = Field(25, ge=1, le=100)
    search_mode: Literal["all", "public_only", "private_only"] = "all"


class ListTagsInput(RepositoryInput):
    page: int = Field(1, ge=1)
    page_size: int = Field(DEFAULT_TAG_PAGE_SIZE, ge=1, le=100)


class ListRepositoriesInput(BaseModel):
    username: str = Field(..., min_length=1, description="Docker Hub user or organization")
    page: int = Field(1, ge=1)
    page_size: int = Field(100, ge=1, le=100)


async def search_images(ctx: HubContext, args: SearchImagesInput) -> ToolResult:
    results = await ctx.api.search_images(args.query, args.page, args.page_size, args.search_mode)
    summary = f"Found {results['count']} repositories matching '{args.query}'"
    if results["private_matches"]:
        summary += f" ({results['private_matches']} private)"
    return ToolResult(summary=summary, data={"results": results})


async def get_image_details(ctx: HubContext, args: RepositoryInput) -> ToolResult:
    details = await ctx.api.get_image_details(args.namespace, args.repository)
    return ToolResult(summary=f"Details for {args.repo}", data={"details": details})


async def list_tags(ctx: HubContext, args: ListTagsInput) -> ToolResult:
    page = await ctx.api.list_tags(args.namespace, args.repository, args.page, args.page_size)
    tags = [t.get("name") for t in page.results if t.get("name")]
    return ToolResult(
        summary=f"Found {len(tags)} tags for {args.repo} ({page.count} total)",
        data={"tags": tags, "count": page.count, "page": page.page, "has_next": page.has_next},
    )


async def get_tag_details(ctx: HubContext, args: ImageInput) -> ToolResult:
    details = await ctx.api.get_tag_details(args.namespace, args.repository, args.tag)
    return ToolResult(
        summary=f"Details for tag {args.tag} of {args.repo}",
        data={"tag_details": details},
    )


async def get_stats(ctx: HubContext, args: RepositoryInput) -> ToolResult:
    stats = await ctx.api.get_stats(args.namespace, args.repository)
    return ToolResult(
        summary=f"Stats for {args.repo}: {stats['pull_count']} pulls, {stats['star_count']} stars.",
        data=stats,
    )


async def list_repositories(ctx: HubContext, args: ListRepositoriesInput) -> ToolResult:
    page = await ctx.api.list_repositories(args.username, args.page, args.page_size)
    return ToolResult(
        summary=f"Found {len(page.results)} repositories for user {args.username}",
        data={
            "repositories": page.results,
            "count": page.count,
            "page": page.page,
            "has_next": page.has_next,
        },
    )


async def delete_tag(ctx: HubContext, args: ImageInput) -> ToolResult:
    result = await ctx.api.delete_tag(args.namespace, args.repository, args.tag)
    if not result.success:
        return ToolResult(
            summary=f"Failed to delete tag {args.tag} from {args.repo}: {result.message}",
            data=result.model_dump(),
            is_error=True,
        )
    return ToolResult(summary=result.message, data=result.model_dump())


TOOLS = [
    ToolSpec(
        name="docker_search_images",
        description="Search Docker Hub for images, including your own private repositories when a credential is configured.",
        input_model=SearchImagesInput,
        handler=search_images,
        failure=lambda a: f"Search failed for query: {a.query}",
        error_data=lambda msg: {"results": {"count": 0, "results": [], "error": msg}},
    ),
    ToolSpec(
        name="docker_get_image_details",
        description="Get detailed information about a Docker Hub repository.",
        input_model=RepositoryInput,
        handler=get_image_details,
        failure=lambda a: f"Failed to get details for {a.repo}",
        error_data=lambda msg: {"details": None, "error": msg},
    ),
    ToolSpec(
        name="docker_list_tags",
        description="List tags of a Docker Hub repository, one page at a time.",
        input_model=ListTagsInput,
        handler=list_tags,
        failure=lambda a: f"Failed to list tags for {a.repo}",
        error_data=lambda msg: {"tags": [], "count": 0, "page": 1, "has_next": False},
    ),
    ToolSpec(
        name="docker_get_tag_details",
        description="Get details (size, digest, platforms, last update) for one tag.",
        input_model=ImageInput,
        handler=get_tag_details,
        failure=lambda a: f"Failed to get details for tag {a.tag} of {a.repo}",
        error_data=lambda msg: {"tag_details": None},
    ),
    ToolSpec(
        name="docker_get_stats",
        description="Get download statistics and star count for a Docker Hub repository.",
        input_model=RepositoryInput,
        handler=get_stats,
        failure=lambda a: "Failed to retrieve stats",
        error_data=lambda msg: {"pull_count": 0, "star_count": 0},
    ),
    ToolSpec(
        name="docker_list_repositories",
        description="List repositories of a Docker Hub user or organization.",
        input_model=ListRepositoriesInput,
        handler=list_repositories,
        failure=lambda a: f"Failed to list repositories for {a.username}",
        error_data=lambda msg: {"repositories": [], "count": 0, "page": 1, "has_next": False},
    ),
    ToolSpec(
        name="docker_delete_tag",
        description="Delete a tag from a Docker Hub repository. Requires a credential with write access.",
        input_model=ImageInput,
        handler=delete_tag,
        failure=lambda a: f"Failed to delete tag {a.tag} from {a.repo}",
        error_data=lambda msg: {"success": False, "message": msg},
    ),
]
