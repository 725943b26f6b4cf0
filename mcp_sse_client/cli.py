"""Command-line front end for testing MCP servers over SSE"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .client import MCPClient
from .config import ClientConfig, load_config
from .errors import MCPClientError


def _print_json(label: Optional[str], value) -> None:
    text = json.dumps(value, indent=2, ensure_ascii=False)
    print(f"{label}: {text}" if label else text, flush=True)


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_config(args: argparse.Namespace) -> ClientConfig:
    """Flags override the config file, which replaces the environment"""
    config = load_config(args.config) if args.config else ClientConfig.from_env()
    if args.url:
        config.base_url = args.url
    if args.timeout is not None:
        if args.timeout <= 0:
            raise ValueError(f"Timeout must be positive: {args.timeout}")
        config.timeout = args.timeout
    return config


async def _wait_for_interrupt() -> None:
    await asyncio.Event().wait()


async def _cmd_connect(args: argparse.Namespace, config: ClientConfig) -> int:
    print(f"Connecting to {config.base_url}...", flush=True)

    client = MCPClient.from_config(
        config,
        on_connected=lambda: print("✓ Connected", flush=True),
        on_disconnected=lambda: print("✗ Disconnected", flush=True),
        on_error=lambda error: print(f"Error: {error}", file=sys.stderr, flush=True),
        on_message=lambda message: _print_json("Message", message),
    )

    try:
        await client.connect()

        print("\nInitializing...", flush=True)
        init_result = await client.initialize(config.client_name, config.client_version)
        _print_json("Init result", init_result)

        print("\nListing tools...", flush=True)
        tools = await client.list_tools()
        _print_json("Tools", tools)

        print("\nPress Ctrl+C to exit...", flush=True)
        await _wait_for_interrupt()
        return 0
    finally:
        print("\nDisconnecting...", flush=True)
        await client.disconnect()


async def _cmd_tools(args: argparse.Namespace, config: ClientConfig) -> int:
    client = MCPClient.from_config(config)
    try:
        await client.connect()
        await client.initialize(config.client_name, config.client_version)
        _print_json(None, await client.list_tools())
        return 0
    finally:
        await client.disconnect()


async def _cmd_call(args: argparse.Namespace, config: ClientConfig) -> int:
    try:
        arguments = json.loads(args.args)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid --args JSON: {e}")
    if not isinstance(arguments, dict):
        raise ValueError("--args must be a JSON object")

    client = MCPClient.from_config(config)
    try:
        await client.connect()
        await client.initialize(config.client_name, config.client_version)
        _print_json(None, await client.call_tool(args.name, arguments))
        return 0
    finally:
        await client.disconnect()


COMMANDS = {
    "connect": _cmd_connect,
    "tools": _cmd_tools,
    "call": _cmd_call,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-sse-client",
        description="MCP SSE Client - CLI tool for testing MCP servers",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to JSON configuration file with 'base_url', 'timeout', "
             "'client_name' and 'client_version' fields. "
             "If omitted, MCP_SSE_URL and MCP_SSE_TIMEOUT are read from the environment.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the session endpoint and for each reply (default: 30)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log to stderr (-v for info, -vv for debug)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    url_help = "MCP server URL (default: from config or https://api.metaid.io/mcp-service)"

    connect = subparsers.add_parser("connect", help="Connect to MCP server")
    connect.add_argument("-u", "--url", type=str, default=None, help=url_help)

    tools = subparsers.add_parser("tools", help="List available tools")
    tools.add_argument("-u", "--url", type=str, default=None, help=url_help)

    call = subparsers.add_parser("call", help="Call a tool")
    call.add_argument("-u", "--url", type=str, default=None, help=url_help)
    call.add_argument("-n", "--name", type=str, required=True, help="Tool name")
    call.add_argument(
        "-a", "--args",
        type=str,
        default="{}",
        help="Tool arguments as JSON (default: {})",
    )

    return parser


async def run(args: argparse.Namespace) -> int:
    """Run the selected subcommand and return the process exit status"""
    try:
        config = _resolve_config(args)
        return await COMMANDS[args.command](args, config)
    except (MCPClientError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr, flush=True)
        return 1


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        code = 0

    sys.exit(code)


if __name__ == "__main__":
    main()
