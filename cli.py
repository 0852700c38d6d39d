#!/usr/bin/env python3
"""
CLI Mode for portfolio-mcp

Command-line access to the same tools the MCP server exposes. Useful for
cron jobs (deployment health checks), seeding a fresh store and quick
lookups without an MCP client.

Usage:
  python cli.py                                    # Portfolio summary
  python cli.py --format json                      # JSON output
  python cli.py --list-tools                       # List registered tools
  python cli.py --call-tool get_company --tool-args '{"slug": "dtiq"}'
  python cli.py --check-deployment my-cool-app     # Probe a deployment
  python cli.py --seed                             # Load seed_data.yaml
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from portfolio_mcp.context import ToolContext, build_context
from portfolio_mcp.env_config import Settings
from portfolio_mcp.errors import ToolError
from portfolio_mcp.handlers import build_registry
from portfolio_mcp.registry import ToolRegistry
from portfolio_mcp.seed import seed

logger = logging.getLogger("portfolio-mcp-cli")

STATUS_SYMBOLS = {
    "healthy": "✓",
    "degraded": "⚠",
    "down": "✗",
    "not_configured": "-",
    "unknown": "?",
}


class PortfolioCLI:
    """CLI interface for portfolio-mcp."""

    def __init__(self, args, ctx: ToolContext, registry: Optional[ToolRegistry] = None):
        self.args = args
        self.ctx = ctx
        self.registry = registry or build_registry()

    async def run(self) -> int:
        """Run the requested command and return the exit code."""
        if self.args.list_tools:
            return self.list_tools()
        if self.args.seed:
            return await self.run_seed()
        if self.args.check_deployment:
            return await self.check_deployment(self.args.check_deployment)
        if self.args.call_tool:
            return await self.call_tool(self.args.call_tool, self.args.tool_args)
        return await self.summary()

    def output(self, payload: Any, text_lines: List[str]):
        if self.args.format == "json":
            print(json.dumps(payload, indent=2, default=str))
        else:
            print("\n".join(text_lines))

    def list_tools(self) -> int:
        descriptors = self.registry.descriptors()
        self.output(
            {"tools": descriptors},
            [f"{d['name']:<30} {d['description']}" for d in descriptors],
        )
        return 0

    async def call_tool(self, name: str, raw_args: Optional[str]) -> int:
        tool_args: Dict[str, Any] = {}
        if raw_args:
            try:
                tool_args = json.loads(raw_args)
            except json.JSONDecodeError as e:
                print(f"✗ Invalid JSON in --tool-args: {e}")
                return 1

        start_time = time.time()
        try:
            result = await self.registry.invoke(self.ctx, name, tool_args)
        except ToolError as e:
            print(f"✗ {name} failed ({e.code}): {e}")
            return 1
        execution_time_ms = int((time.time() - start_time) * 1000)

        self.output(
            {
                "tool": name,
                "result": result,
                "execution_time_ms": execution_time_ms,
                "timestamp": datetime.now().isoformat(),
            },
            [
                f"Tool: {name}",
                f"Execution time: {execution_time_ms}ms",
                "",
                "Result:",
                json.dumps(result, indent=2, default=str),
            ],
        )
        return 0

    async def check_deployment(self, slug: str) -> int:
        """Probe a deployment; exit 1 when any configured component is not healthy."""
        try:
            result = await self.registry.invoke(self.ctx, "check_deployment_health", {"slug": slug})
        except ToolError as e:
            print(f"✗ Health check failed: {e}")
            return 1

        lines = [
            "=" * 80,
            f"Deployment Health - {result['slug']} ({result['checked_at']})",
            "=" * 80,
        ]
        for component_type, component in result["components"].items():
            status = component["status"]
            line = f"  {STATUS_SYMBOLS.get(status, '?')} {component_type:<12} {status}"
            if component.get("response_time_ms") is not None:
                line += f" ({component['response_time_ms']}ms)"
            if component.get("error_message"):
                line += f" - {component['error_message']}"
            lines.append(line)
        self.output(result, lines)

        unhealthy = [
            c for c in result["components"].values()
            if c["status"] not in ("healthy", "not_configured")
        ]
        return 1 if unhealthy else 0

    async def run_seed(self) -> int:
        try:
            counts = await seed(self.ctx.store)
        except ToolError as e:
            print(f"✗ Seeding failed: {e}")
            return 1
        self.output(counts, [f"✓ Seeded {count} {table}" for table, count in counts.items()])
        return 0

    async def summary(self) -> int:
        try:
            rows = await self.registry.invoke(self.ctx, "get_portfolio_summary", {})
        except ToolError as e:
            print(f"✗ Could not load portfolio: {e}")
            return 1

        lines = [
            "=" * 80,
            f"Portfolio Summary - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "=" * 80,
        ]
        for row in rows:
            lines.append(
                f"  {row['name']:<24} {row['status']:<10} {row['progress']:>3}%  ({row['milestones']} milestones)"
            )
        self.output(rows, lines)
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command-line access to the portfolio tracker tools"
    )
    parser.add_argument(
        "--format",
        choices=["json", "text"],
        default="text",
        help="Output format (default: text)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show info-level logs"
    )
    parser.add_argument(
        "--list-tools",
        action="store_true",
        help="List registered tools"
    )
    parser.add_argument(
        "--call-tool",
        metavar="TOOL_NAME",
        help="Call a tool by name"
    )
    parser.add_argument(
        "--tool-args",
        metavar="JSON",
        help="JSON arguments for the tool (e.g., '{\"slug\": \"dtiq\"}')"
    )
    parser.add_argument(
        "--check-deployment",
        metavar="SLUG",
        help="Run a health check on a deployment"
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed the store with the initial portfolio dataset"
    )
    return parser


async def main_async(argv: Optional[List[str]] = None) -> int:
    """Main async entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    registry = build_registry()
    if args.list_tools:
        return PortfolioCLI(args, ctx=None, registry=registry).list_tools()

    ctx = build_context(Settings.from_env())
    try:
        return await PortfolioCLI(args, ctx, registry).run()
    finally:
        await ctx.aclose()


def main():
    """Main entry point."""
    # Only show warnings/errors in CLI mode
    logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')
    try:
        exit_code = asyncio.run(main_async())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except ToolError as e:
        print(f"✗ {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
