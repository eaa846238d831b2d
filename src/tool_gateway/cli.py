"""
Command-line entry point for tool-gateway.

    tool-gateway serve --manifest examples/manifest.json
    tool-gateway list-tools --manifest examples/manifest.json
    tool-gateway sign-envelope --initiator user:alice --roles ops,admin --trace-id trace-X
    tool-gateway project-history history.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from . import __version__
from .config import Settings, load_env
from .envelope import CallerContext, sign_envelope
from .errors import ConfigError, ManifestError
from .logging import configure_logging
from .manifest import ToolManifest
from .progress import DEFAULT_ACTIVITY_TYPE, decode_history, project_progress
from .runtime import GatewayRuntime

EXIT_CONFIG_ERROR = 2


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _load_settings(args: argparse.Namespace) -> Settings:
    load_env(args.env_file)
    try:
        if args.config:
            return Settings.from_file(args.config)
        return Settings.from_env()
    except (ValueError, FileNotFoundError) as e:
        raise ConfigError(str(e)) from e


def _manifest_path(args: argparse.Namespace, settings: Settings) -> Path:
    path = getattr(args, "manifest", None) or settings.manifest_path
    if path is None:
        raise ConfigError("No manifest configured (set GATEWAY_MANIFEST_PATH or pass --manifest)")
    return Path(path)


async def _serve(settings: Settings, manifest_path: Path) -> int:
    runtime = GatewayRuntime.from_settings(settings, manifest_path=manifest_path)
    async with runtime:
        await runtime.serve_stdio()
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    return asyncio.run(_serve(settings, _manifest_path(args, settings)))


def cmd_list_tools(args: argparse.Namespace, settings: Settings) -> int:
    manifest = ToolManifest.from_file(_manifest_path(args, settings))
    _print_json(
        {
            "tools": [tool.to_mcp_tool() for tool in manifest.list_tools()],
            "manifest": manifest.info(),
        }
    )
    return 0


def cmd_sign_envelope(args: argparse.Namespace, settings: Settings) -> int:
    secret = settings.envelope.secret
    if not secret:
        raise ConfigError("GATEWAY_ENVELOPE_SECRET must be set to sign envelopes")

    roles = [r.strip() for r in (args.roles or "").split(",") if r.strip()]
    context = CallerContext(
        initiator_id=args.initiator,
        roles=frozenset(roles),
        token_ref=args.token_ref,
        app_id=args.app_id,
        environment=args.environment,
        cost_center=args.cost_center,
        data_classification=args.data_classification,
        trace_id=args.trace_id,
    )
    _print_json(sign_envelope(context, secret).to_dict())
    return 0


def cmd_project_history(args: argparse.Namespace, settings: Settings) -> int:
    path = Path(args.path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"error: could not read history {path}: {e}", file=sys.stderr)
        return 1

    activity_type = args.activity_type or settings.workflow.progress_activity_type
    events = decode_history(raw)
    _print_json(project_progress(events, activity_type).to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tool-gateway",
        description="Manifest-backed tool invocation gateway (JSON-RPC over stdio)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="YAML or TOML settings file (default: GATEWAY_* environment)")
    parser.add_argument("--env-file", help="Path to a .env file (default: search from the working directory)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Serve JSON-RPC over stdin/stdout until EOF")
    serve.add_argument("--manifest", help="Tool manifest (JSON or YAML)")
    serve.set_defaults(func=cmd_serve)

    list_tools = subparsers.add_parser("list-tools", help="Print the tool catalog as JSON")
    list_tools.add_argument("--manifest", help="Tool manifest (JSON or YAML)")
    list_tools.set_defaults(func=cmd_list_tools)

    sign = subparsers.add_parser("sign-envelope", help="Print a signed call envelope")
    sign.add_argument("--initiator", required=True, help="Initiator id")
    sign.add_argument("--roles", default="", help="Comma-separated roles")
    sign.add_argument("--trace-id", help="Trace id to propagate")
    sign.add_argument("--app-id")
    sign.add_argument("--environment")
    sign.add_argument("--cost-center")
    sign.add_argument("--token-ref")
    sign.add_argument(
        "--data-classification",
        choices=["PUBLIC", "INTERNAL", "CONFIDENTIAL", "RESTRICTED"],
    )
    sign.set_defaults(func=cmd_sign_envelope)

    history = subparsers.add_parser("project-history", help="Project step progress from a saved engine history")
    history.add_argument("path", help="History JSON file ({\"events\": [...]} or a list)")
    history.add_argument("--activity-type", help=f"Capability activity type (default: {DEFAULT_ACTIVITY_TYPE})")
    history.set_defaults(func=cmd_project_history)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args)
        configure_logging(settings.logging.level, json_output=settings.logging.format == "json")
        return args.func(args, settings)
    except (ConfigError, ManifestError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
