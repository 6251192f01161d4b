"""Image-level tools built on manifests, layers and the image config."""

import asyncio
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from hubproxy.context import HubContext
from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.exceptions import HubError
from hubproxy.registry.models import BaseImageUpdate, ImageLayers
from hubproxy.tools.base import ToolResult, ToolSpec
from hubproxy.tools.repositories import ImageInput

logger = configure_module_logging("tools.images")

FROM_INSTRUCTION = re.compile(r"FROM\s+(\S+)")

# Substrings of build steps that reveal the distribution an image starts from
DISTRO_HINTS = (
    ("debian.sh", "debian:trixie-slim"),
    ("ubuntu", "ubuntu:latest"),
    ("alpine", "alpine:latest"),
    ("centos", "centos:latest"),
)
ROOTFS_HINTS = (
    ("debian", "debian:latest"),
    ("ubuntu", "ubuntu:latest"),
    ("alpine", "alpine:latest"),
)


class CompareImagesInput(BaseModel):
    image1: ImageInput
    image2: ImageInput


def _megabytes(size: int) -> str:
    return f"{size / (1024 * 1024):.2f}"


def _layer_dicts(layers: ImageLayers):
    return [{"digest": layer.digest, "size": layer.size} for layer in layers.layers]


def detect_base_image(config: Dict[str, Any]) -> Optional[str]:
    """
    Guess the image a build started from.

    Looks for the first FROM instruction in the build history, then for
    well-known distribution build scripts, then for distribution names
    anywhere in the config.

    Returns:
        Image reference such as "node:20-alpine", or None
    """
    for entry in config.get("history") or []:
        created_by = entry.get("created_by") or ""
        match = FROM_INSTRUCTION.search(created_by)
        if match:
            return match.group(1)
        lowered = created_by.lower()
        for hint, image in DISTRO_HINTS:
            if hint in lowered:
                return image

    if (config.get("rootfs") or {}).get("diff_ids"):
        dumped = json.dumps(config).lower()
        for hint, image in ROOTFS_HINTS:
            if hint in dumped:
                return image
    return None


def split_image_reference(reference: str) -> Optional[Tuple[str, str, str]]:
    """
    Split "name[:tag]" or "owner/name[:tag]" into namespace, repository, tag.

    Returns:
        None for references naming another registry host or pinned by digest
    """
    if "@" in reference:
        return None
    parts = reference.split("/")
    if len(parts) > 2:
        return None
    name, _, tag = parts[-1].partition(":")
    namespace = parts[0] if len(parts) == 2 else "library"
    return namespace, name, tag or "latest"


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # Docker timestamps may carry nanoseconds
    value = re.sub(r"(\.\d{6})\d+", r"\1", value.replace("Z", "+00:00"))
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


async def check_base_image(ctx: HubContext, config: Dict[str, Any]) -> BaseImageUpdate:
    """Detect the base image and compare its last push with the image build date."""
    base_image = detect_base_image(config)
    if not base_image or base_image == "scratch":
        return BaseImageUpdate(base_image=base_image)

    parsed = split_image_reference(base_image)
    if parsed is None:
        return BaseImageUpdate(base_image=base_image)
    namespace, repository, tag = parsed

    try:
        base_tag = await ctx.api.get_tag_details(namespace, repository, tag)
    except HubError as e:
        logger.info(f"Could not look up base image {base_image}: {ctx.redact(str(e))}")
        return BaseImageUpdate(base_image=base_image)

    base_updated = _parse_time(base_tag.get("last_updated"))
    built = _parse_time(config.get("created"))
    if base_updated is None or built is None:
        return BaseImageUpdate(base_image=base_image, latest_base_tag=tag)

    return BaseImageUpdate(
        base_image=base_image,
        is_up_to_date=built >= base_updated,
        latest_base_tag=tag,
    )


async def get_manifest(ctx: HubContext, args: ImageInput) -> ToolResult:
    manifest = await ctx.api.get_manifest(args.namespace, args.repository, args.tag)
    return ToolResult(summary=f"Manifest for {args.ref()}", data={"manifest": manifest})


async def analyze_layers(ctx: HubContext, args: ImageInput) -> ToolResult:
    layers = await ctx.api.get_image_layers(args.namespace, args.repository, args.tag)
    count = len(layers.layers)
    return ToolResult(
        summary=(
            f"Found {count} layers, total size: {layers.total_size} bytes "
            f"({_megabytes(layers.total_size)} MB) for {args.ref()}"
        ),
        data={"layers": _layer_dicts(layers), "total_size": layers.total_size},
    )


async def compare_images(ctx: HubContext, args: CompareImagesInput) -> ToolResult:
    first, second = args.image1, args.image2
    results = await asyncio.gather(
        ctx.api.get_image_layers(first.namespace, first.repository, first.tag),
        ctx.api.get_image_layers(second.namespace, second.repository, second.tag),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    layers1, layers2 = results

    digests1 = {layer.digest for layer in layers1.layers}
    digests2 = {layer.digest for layer in layers2.layers}
    shared = digests1 & digests2

    comparison = {
        "image1": {
            "name": str(first.ref()),
            "total_size": layers1.total_size,
            "layer_count": len(layers1.layers),
            "layers": _layer_dicts(layers1),
        },
        "image2": {
            "name": str(second.ref()),
            "total_size": layers2.total_size,
            "layer_count": len(layers2.layers),
            "layers": _layer_dicts(layers2),
        },
        "shared_layers": len(shared),
        "unique_to_image1": len(digests1 - shared),
        "unique_to_image2": len(digests2 - shared),
        "size_difference": abs(layers1.total_size - layers2.total_size),
    }
    return ToolResult(
        summary=(
            f"Compared images. Shared layers: {comparison['shared_layers']}, "
            f"Unique to image1: {comparison['unique_to_image1']}, "
            f"Unique to image2: {comparison['unique_to_image2']}"
        ),
        data={"comparison": comparison},
    )


async def get_dockerfile(ctx: HubContext, args: ImageInput) -> ToolResult:
    dockerfile = await ctx.api.get_dockerfile(args.namespace, args.repository, args.tag)
    if dockerfile is None:
        return ToolResult(summary=f"Dockerfile not found for {args.ref()}", data={"dockerfile": None})
    return ToolResult(summary=f"Dockerfile found for {args.ref()}", data={"dockerfile": dockerfile})


async def get_vulnerabilities(ctx: HubContext, args: ImageInput) -> ToolResult:
    report = await ctx.api.get_vulnerabilities(args.namespace, args.repository, args.tag)
    if report is None:
        summary = f"No vulnerability scan results for {args.ref()}"
    else:
        summary = f"Vulnerability scan results for {args.ref()}"
    return ToolResult(summary=summary, data={"vulnerabilities": report})


async def get_image_history(ctx: HubContext, args: ImageInput) -> ToolResult:
    config = await ctx.api.get_image_config(args.namespace, args.repository, args.tag)
    if config is None:
        return ToolResult(summary=f"No config digest found for {args.ref()}", data={"history": []})
    history = config.get("history") or []
    return ToolResult(
        summary=f"Found {len(history)} history entries for {args.ref()}",
        data={"history": history},
    )


async def track_base_updates(ctx: HubContext, args: ImageInput) -> ToolResult:
    config = await ctx.api.get_image_config(args.namespace, args.repository, args.tag)
    if config is None:
        update = BaseImageUpdate()
        return ToolResult(summary=f"No config digest found for {args.ref()}", data=update.model_dump())

    update = await check_base_image(ctx, config)
    if update.base_image is None:
        summary = f"Could not determine base image for {args.ref()}"
    elif update.is_up_to_date is None:
        summary = f"Base image {update.base_image} detected; update status unknown"
    elif update.is_up_to_date:
        summary = f"{args.ref()} is built on the current {update.base_image}"
    else:
        summary = f"Base image {update.base_image} has been updated since {args.ref()} was built"
    return ToolResult(summary=summary, data=update.model_dump())


async def estimate_pull_size(ctx: HubContext, args: ImageInput) -> ToolResult:
    layers = await ctx.api.get_image_layers(args.namespace, args.repository, args.tag)
    return ToolResult(
        summary=(
            f"Estimated pull size for {args.ref()}: {_megabytes(layers.total_size)} MB "
            f"({len(layers.layers)} layers)"
        ),
        data={"total_size": layers.total_size, "layers": _layer_dicts(layers)},
    )


def _comparison_error(message: str) -> Dict[str, Any]:
    return {
        "comparison": {
            "image1": None,
            "image2": None,
            "shared_layers": 0,
            "unique_to_image1": 0,
            "unique_to_image2": 0,
            "size_difference": 0,
            "error": message,
        }
    }


TOOLS = [
    ToolSpec(
        name="docker_get_manifest",
        description="Get the raw manifest (or multi-platform index) of an image tag.",
        input_model=ImageInput,
        handler=get_manifest,
        failure=lambda a: "Failed to retrieve manifest",
        error_data=lambda msg: {"manifest": None},
    ),
    ToolSpec(
        name="docker_analyze_layers",
        description="List the layers of an image tag with their sizes.",
        input_model=ImageInput,
        handler=analyze_layers,
        failure=lambda a: "Failed to analyze layers",
        error_data=lambda msg: {"layers": [], "total_size": 0},
    ),
    ToolSpec(
        name="docker_compare_images",
        description="Compare two images by shared and unique layers and size.",
        input_model=CompareImagesInput,
        handler=compare_images,
        failure=lambda a: "Failed to compare images",
        error_data=_comparison_error,
    ),
    ToolSpec(
        name="docker_get_dockerfile",
        description="Find the Dockerfile of an image in its linked GitHub source repository.",
        input_model=ImageInput,
        handler=get_dockerfile,
        failure=lambda a: "Failed to retrieve Dockerfile",
        error_data=lambda msg: {"dockerfile": None},
    ),
    ToolSpec(
        name="docker_get_vulnerabilities",
        description="Get security scan results for an image tag, when Docker Hub has them.",
        input_model=ImageInput,
        handler=get_vulnerabilities,
        failure=lambda a: f"Failed to fetch vulnerabilities for {a.ref()}",
        error_data=lambda msg: {"vulnerabilities": None},
    ),
    ToolSpec(
        name="docker_get_image_history",
        description="Get the build history of an image tag from its config.",
        input_model=ImageInput,
        handler=get_image_history,
        failure=lambda a: "Failed to retrieve image history",
        error_data=lambda msg: {"history": []},
    ),
    ToolSpec(
        name="docker_track_base_updates",
        description="Detect an image's base image and whether it was built on the base's latest push.",
        input_model=ImageInput,
        handler=track_base_updates,
        failure=lambda a: "Failed to check base image updates",
        error_data=lambda msg: BaseImageUpdate().model_dump(),
    ),
    ToolSpec(
        name="docker_estimate_pull_size",
        description="Estimate the download size of an image tag.",
        input_model=ImageInput,
        handler=estimate_pull_size,
        failure=lambda a: f"Failed to estimate pull size for {a.ref()}",
        error_data=lambda msg: {"total_size": 0, "layers": []},
    ),
]
