"""hubproxy - Docker Hub tools for AI assistants.

Main entry point.

Usage:
  python main.py mcp                       # MCP over stdio
  python main.py serve --port 8100         # JSON-RPC over HTTP
  python main.py serve --preload           # warm the cache on startup
"""

import argparse
import asyncio
import sys

from hubproxy.logging_config import setup_all_logging
from hubproxy.registry.models import HubConfig
from hubproxy.context import HubContext


def main():
    parser = argparse.ArgumentParser(
        description="hubproxy - Docker Hub tool server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  DOCKERHUB_USERNAME   Docker Hub user for private repositories
  DOCKERHUB_TOKEN      Personal access token (never logged)
  HUBPROXY_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR
        """,
    )
    subparsers = parser.add_subparsers(dest="transport", help="How to serve the tools")

    subparsers.add_parser("mcp", help="Serve MCP over stdio")

    serve = subparsers.add_parser("serve", help="Serve JSON-RPC over HTTP")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve.add_argument("--port", type=int, default=8100, help="Port (default: 8100)")
    serve.add_argument(
        "--preload", action="store_true", help="Preload popular images into the cache"
    )

    args = parser.parse_args()

    if not args.transport:
        parser.print_help()
        return 1

    setup_all_logging(include_console=True)
    ctx = HubContext.create(HubConfig.from_env())

    if args.transport == "mcp":
        from hubproxy.tools.mcp_server import HubMCPServer

        asyncio.run(HubMCPServer(ctx).start())
    else:
        from hubproxy.tools.server import HubToolServer

        HubToolServer(ctx, port=args.port, preload=args.preload).run(host=args.host)
    return 0


if __name__ == "__main__":
    sys.exit(main())
