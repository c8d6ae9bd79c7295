"""``doorway serve``: run the pipeline under pounce."""

import argparse
import sys

from doorway.cli import build_config
from doorway.cli._resolve import resolve_collaborators
from doorway.errors import ConfigurationError
from doorway.pipeline import RoutingPipeline


def serve(args: argparse.Namespace) -> None:
    """Build the configuration and pipeline, then serve until interrupted.

    Plugins load during lifespan startup, before the first connection.
    """
    try:
        config = build_config(args)
        collaborators = resolve_collaborators(args.collaborators)
    except (ConfigurationError, ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    from doorway.server.serve import run_server

    run_server(RoutingPipeline(config, collaborators), config)
