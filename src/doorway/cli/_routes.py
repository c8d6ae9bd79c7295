"""``doorway routes``: list the mount table.

Builds the pipeline (plugins included) and prints every entry of both
surfaces in precedence order, followed by plugin sources that failed.
"""

import argparse
import asyncio
import sys

from doorway.cli import build_config
from doorway.cli._resolve import resolve_collaborators
from doorway.errors import ConfigurationError
from doorway.pipeline import RoutingPipeline
from doorway.routing.entry import Surface


def _print_table(title: str, rows: list[tuple[str, str]]) -> None:
    print(title)
    if not rows:
        print("  (none)")
        return
    width = max(max(len(prefix) for prefix, _ in rows), 6)
    for prefix, name in rows:
        print(f"  {prefix:<{width}}  {name}")


async def _describe(pipeline: RoutingPipeline) -> None:
    await pipeline.start()
    try:
        _print_table("HTTP", pipeline.describe(Surface.HTTP))
        _print_table("WebSocket", pipeline.describe(Surface.WS))
        failed = [d for d in pipeline.plugins.descriptors if not d.loaded]
        if failed:
            print("Failed plugins")
            for descriptor in failed:
                print(f"  {descriptor.identifier}  {descriptor.source}: {descriptor.load_result.reason}")
    finally:
        await pipeline.shutdown()


def run_routes(args: argparse.Namespace) -> None:
    """Print the mount table for the configuration given by *args*."""
    try:
        config = build_config(args)
        collaborators = resolve_collaborators(args.collaborators)
    except (ConfigurationError, ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    asyncio.run(_describe(RoutingPipeline(config, collaborators)))
