"""Run one of the MCP tool servers.

Usage:
    abb-mcp n8n                                 # stdio, for MCP client configs
    abb-mcp google --transport http --port 8104 # streamable HTTP at /mcp
"""
from __future__ import annotations

import argparse
import logging
import sys
from importlib import import_module

import uvicorn

from abb_automation.config import Settings, configure_logging
from abb_automation.errors import AutomationError
from abb_automation.mcp.protocol import RegistryServer, create_http_app

logger = logging.getLogger(__name__)

# server name -> (module, default HTTP port)
SERVERS = {
    "n8n": ("abb_automation.mcp.n8n_server", 8101),
    "clickup": ("abb_automation.mcp.clickup_server", 8102),
    "canva": ("abb_automation.mcp.canva_server", 8103),
    "google": ("abb_automation.mcp.google_workspace_server", 8104),
}


def build_server(server: str, settings: Settings | None = None, **server_settings) -> RegistryServer:
    module_name, _ = SERVERS[server]
    return import_module(module_name).create_server(settings=settings, **server_settings)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Serve an MCP tool server")
    parser.add_argument("server", choices=sorted(SERVERS))
    parser.add_argument("--transport", choices=("stdio", "http"), default="stdio")
    parser.add_argument("--host", default="127.0.0.1", help="HTTP transport only")
    parser.add_argument("--port", type=int, default=None,
                        help="HTTP transport only; defaults to the server's own port")
    args = parser.parse_args(argv)
    # stdout carries the protocol on stdio; logging goes to stderr
    configure_logging()

    port = args.port or SERVERS[args.server][1]
    try:
        if args.transport == "stdio":
            server = build_server(args.server, Settings.from_env())
        else:
            server = build_server(args.server, Settings.from_env(), host=args.host, port=port)
    except AutomationError as exc:
        logger.error("Cannot start %s server: %s", args.server, exc)
        sys.exit(1)

    if args.transport == "stdio":
        logger.info("Serving %s MCP tools on stdio", args.server)
        server.run("stdio")
    else:
        logger.info("Serving %s MCP tools on http://%s:%d/mcp", args.server, args.host, port)
        uvicorn.run(create_http_app(server), host=args.host, port=port)


if __name__ == "__main__":
    main()
