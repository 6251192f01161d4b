"""Diagnostic CLI for hubproxy.

Provides commands for checking connectivity, credentials and tools.

Usage:
    python -m hubproxy.cli_diagnose health
    python -m hubproxy.cli_diagnose check-auth --scope repository:library/nginx:pull
    python -m hubproxy.cli_diagnose run-tool docker_list_tags '{"namespace": "library", "repository": "nginx"}'
    python -m hubproxy.cli_diagnose preload
"""

import argparse
import asyncio
import json
import sys

import httpx

from hubproxy.context import HubContext
from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.exceptions import HubError
from hubproxy.registry.models import HubConfig
from hubproxy.tools.catalog import ToolError, run_tool

logger = configure_module_logging("cli_diagnose")

DEFAULT_SCOPE = "repository:library/alpine:pull"


def check_endpoint(url: str, timeout: float = 5.0) -> bool:
    """Check that an upstream endpoint answers at all."""
    try:
        response = httpx.get(url, timeout=timeout)
        return response.status_code < 500
    except httpx.HTTPError as e:
        logger.debug(f"Endpoint check failed for {url}: {e}")
        return False


def check_server_health(port: int) -> bool:
    """Check if a local tool server is running and responding."""
    try:
        response = httpx.get(f"http://localhost:{port}/health", timeout=5.0)
        return response.status_code == 200
    except httpx.HTTPError as e:
        logger.debug(f"Tool server health check failed: {e}")
        return False


def cmd_health(port: int) -> int:
    """Check upstream reachability and configuration."""
    config = HubConfig.from_env()

    print("\n" + "=" * 70)
    print("HUBPROXY HEALTH CHECK")
    print("=" * 70)

    print("\n[Configuration]")
    print(f"  Username:   {config.username or '(not set)'}")
    print(f"  Credential: {'configured' if config.has_credential else 'not configured'}")
    print(f"  Escalate on 404: {config.escalate_on_not_found}")

    print("\n[Upstream]")
    endpoints = {
        "metadata API": f"{config.hub_url}/repositories/library/alpine",
        "distribution API": f"{config.registry_url}/",
        "token service": f"{config.auth_url}?service={config.auth_service}",
    }
    all_ok = True
    for name, url in endpoints.items():
        ok = check_endpoint(url)
        all_ok = all_ok and ok
        status = "✓ REACHABLE" if ok else "✗ UNREACHABLE"
        print(f"  {name}: {status}")

    print("\n[Tool server]")
    server_ok = check_server_health(port)
    print(f"  localhost:{port}: {'✓ RESPONDING' if server_ok else '- not running'}")

    print("\n" + "=" * 70)
    if all_ok:
        print("✓ Docker Hub is reachable")
        print("=" * 70 + "\n")
        return 0
    print("✗ Some upstream endpoints are unreachable. See details above.")
    print("=" * 70 + "\n")
    return 1


async def _check_auth(scope: str) -> int:
    async with HubContext.create() as ctx:
        print("\n" + "=" * 70)
        print("CREDENTIAL EXCHANGE")
        print("=" * 70)

        try:
            await ctx.exchanger.get_anonymous_registry_token(scope)
            print(f"\n  Anonymous registry token ({scope}): ✓")
        except HubError as e:
            print(f"\n  Anonymous registry token ({scope}): ✗ {ctx.redact(str(e))}")

        if not ctx.exchanger.has_credential:
            print("\n  No credential configured (set DOCKERHUB_USERNAME and DOCKERHUB_TOKEN)")
            print("=" * 70 + "\n")
            return 1

        registry = await ctx.exchanger.get_registry_token(scope)
        hub = await ctx.exchanger.get_hub_token()
        print(f"  Registry token ({scope}): {'✓' if registry.ok else '✗ ' + str(registry.error)}")
        print(f"  Hub session token: {'✓' if hub.ok else '✗ ' + str(hub.error)}")
        print("=" * 70 + "\n")
        return 0 if registry.ok and hub.ok else 1


def cmd_check_auth(scope: str) -> int:
    """Exchange the configured credential for both token types."""
    return asyncio.run(_check_auth(scope))


async def _run_tool(name: str, arguments: dict) -> int:
    async with HubContext.create() as ctx:
        try:
            result = await run_tool(ctx, name, arguments)
        except ToolError as e:
            print(f"✗ {e}")
            return 1
        print(result.summary)
        print(json.dumps(result.data, indent=2, default=str))
        return 1 if result.is_error else 0


def cmd_run_tool(name: str, raw_arguments: str) -> int:
    """Run one tool and print its result."""
    try:
        arguments = json.loads(raw_arguments)
    except json.JSONDecodeError as e:
        print(f"✗ Arguments are not valid JSON: {e}")
        return 1
    return asyncio.run(_run_tool(name, arguments))


async def _preload() -> int:
    async with HubContext.create() as ctx:
        report = await ctx.api.preload_popular_images()
        print(f"\nPreloaded {len(report.successful)}/{report.total} entries")
        for key, error in report.failed.items():
            print(f"  ✗ {key}: {ctx.redact(error)}")
        return 0 if not report.failed else 1


def cmd_preload() -> int:
    """Warm the cache with popular official images."""
    return asyncio.run(_preload())


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="hubproxy diagnostics - check connectivity, credentials and tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m hubproxy.cli_diagnose health
  python -m hubproxy.cli_diagnose check-auth
  python -m hubproxy.cli_diagnose run-tool docker_get_stats '{"namespace": "library", "repository": "nginx"}'
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Diagnostic command")

    health = subparsers.add_parser("health", help="Check upstream reachability")
    health.add_argument("--port", type=int, default=8100, help="Local tool server port")

    check_auth = subparsers.add_parser("check-auth", help="Test credential exchange")
    check_auth.add_argument("--scope", default=DEFAULT_SCOPE, help="Registry token scope")

    tool = subparsers.add_parser("run-tool", help="Run a single tool")
    tool.add_argument("name", help="Tool name, e.g. docker_list_tags")
    tool.add_argument("arguments", nargs="?", default="{}", help="Tool arguments as JSON")

    subparsers.add_parser("preload", help="Preload popular images into a fresh cache")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "health":
        return cmd_health(args.port)
    elif args.command == "check-auth":
        return cmd_check_auth(args.scope)
    elif args.command == "run-tool":
        return cmd_run_tool(args.name, args.arguments)
    elif args.command == "preload":
        return cmd_preload()
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
