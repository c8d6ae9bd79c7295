"""Doorway CLI: serve the pipeline, inspect its mount table.

Entry point registered as ``doorway`` in ``pyproject.toml``::

    [project.scripts]
    doorway = "doorway.cli:main"
"""

import argparse
import logging
import sys

from doorway.config import AuthType, ServerConfig


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--collaborators",
        default=None,
        help="Import string for the mounted sub-apps (e.g. myshell:collaborators)",
    )
    parser.add_argument("--host", default=None, help="Bind host address")
    parser.add_argument("--port", type=int, default=None, help="Bind port number")
    parser.add_argument(
        "--auth",
        choices=[a.value for a in AuthType],
        default=None,
        help="Authentication mode (default: password)",
    )
    parser.add_argument("--cert", default=None, help="TLS certificate; enables the HTTPS redirect")
    parser.add_argument("--cert-key", default=None, help="TLS private key")
    parser.add_argument("--local-dir", default=None, help="Directory served at /local")
    parser.add_argument("--data-dir", default=None, help="Where the heartbeat file is kept")
    parser.add_argument("--template-dir", default=None, help="Templates searched before the packaged ones")
    parser.add_argument(
        "--heartbeat-interval",
        type=float,
        default=None,
        help="Seconds between heartbeat file writes (default: 60)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Logging level (default: info)",
    )
    parser.add_argument("--debug", action="store_true", help="Reload templates on change")


def build_config(args: argparse.Namespace) -> ServerConfig:
    """A ``ServerConfig`` from the environment, overridden by CLI flags."""
    overrides: dict[str, object] = {
        "host": args.host,
        "port": args.port,
        "auth": args.auth,
        "cert": args.cert,
        "cert_key": args.cert_key,
        "local_directory": args.local_dir,
        "data_dir": args.data_dir,
        "template_dir": args.template_dir,
        "heartbeat_interval": args.heartbeat_interval,
    }
    explicit = {key: value for key, value in overrides.items() if value is not None}
    return ServerConfig.from_env(
        **explicit,
        debug=args.debug,
        log_level=args.log_level,
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``doorway`` command."""
    parser = argparse.ArgumentParser(
        prog="doorway",
        description="Doorway: the front-door request pipeline of a remote development server.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- doorway serve ----------------------------------------------------
    serve_parser = subparsers.add_parser("serve", help="Serve the pipeline")
    _add_config_arguments(serve_parser)

    # -- doorway routes ---------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List the mount table in precedence order")
    _add_config_arguments(routes_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        from doorway.cli._serve import serve

        serve(args)
    elif args.command == "routes":
        from doorway.cli._routes import run_routes

        run_routes(args)
