"""Command-line front end.

Usage:
    filedeck [options] run <toolname> [params] [--json]
    filedeck [options] serve
    filedeck [options] help

Options:
    -q, --quiet       Warnings and errors only
    -v, --verbose     Detailed output
    -d, --debug       Everything
    --no-color        Plain log output
    --temp-dir PATH   Directory for nested-archive extraction
    --config PATH     User config file (default ~/.config/filedeck/config.yaml)
    --json            Print the full response envelope (run)

``params`` is parsed as JSON when it starts with '{' or '['.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, cast

from filedeck.bridge import StdioBridge
from filedeck.commands import CommandRegistry
from filedeck.core.config import ConfigResolver
from filedeck.core.diagnostics import install_jsonl_sink, utc_timestamp
from filedeck.core.errors import ConfigError
from filedeck.core.logging import apply_logging_policy, get_logger, set_colors
from filedeck.ops.dispatcher import FileOperationDispatcher

log = get_logger(__name__)

USAGE = "Usage: filedeck [options] run <toolname> [params] [--json] | serve | help"


def _ensure_dict(root: dict[str, Any], key: str) -> dict[str, Any]:
    val = root.get(key)
    if isinstance(val, dict):
        return cast(dict[str, Any], val)
    new: dict[str, Any] = {}
    root[key] = new
    return new


def parse_argv(argv: list[str]) -> tuple[dict[str, Any], list[str], dict[str, Any]]:
    """Split argv into (cli_args for ConfigResolver, positionals, flags)."""
    cli_args: dict[str, Any] = {}
    positionals: list[str] = []
    flags: dict[str, Any] = {"json": False, "config": None}

    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in ("-q", "--quiet"):
            _ensure_dict(cli_args, "logging")["level"] = "quiet"
        elif arg in ("-v", "--verbose"):
            _ensure_dict(cli_args, "logging")["level"] = "verbose"
        elif arg in ("-d", "--debug"):
            _ensure_dict(cli_args, "logging")["level"] = "debug"
        elif arg == "--no-color":
            _ensure_dict(cli_args, "logging")["color"] = False
        elif arg == "--json":
            flags["json"] = True
        elif arg == "--temp-dir" and i + 1 < len(argv):
            _ensure_dict(cli_args, "file_ops")["temp_dir"] = argv[i + 1]
            i += 1
        elif arg == "--config" and i + 1 < len(argv):
            flags["config"] = argv[i + 1]
            i += 1
        else:
            positionals.append(arg)
        i += 1

    return cli_args, positionals, flags


def parse_params(text: str) -> Any:
    """JSON when it looks like JSON, otherwise a ``{"text": ...}`` mapping."""
    text = text.strip()
    if not text:
        return {}
    if text.startswith(("{", "[")):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
    return {"text": text}


def build_registry(resolver: ConfigResolver) -> CommandRegistry:
    return CommandRegistry(FileOperationDispatcher.from_resolver(resolver))


def _configure(resolver: ConfigResolver) -> None:
    apply_logging_policy(resolver.resolve_logging_policy())
    set_colors(resolver.resolve_bool("logging.color", True))
    install_jsonl_sink(resolver=resolver)


def _print_result(response: dict[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(response, ensure_ascii=False, default=str))
        return
    if not response["success"]:
        print(f"Error: {response['error']}", file=sys.stderr)
        return
    data = response["data"]
    if isinstance(data, dict) and "result" in data:
        data = data["result"]
    if isinstance(data, dict | list):
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    else:
        print(data)


async def run_tool(
    registry: CommandRegistry, toolname: str, params: Any, *, as_json: bool
) -> int:
    response = await registry.run(toolname, params)
    _print_result(response, as_json=as_json)
    return 0 if response["success"] else 1


def main(argv: list[str] | None = None) -> int:
    cli_args, positionals, flags = parse_argv(list(sys.argv[1:] if argv is None else argv))

    resolver = ConfigResolver(
        cli_args=cli_args,
        user_config_path=Path(flags["config"]).expanduser() if flags["config"] else None,
    )
    try:
        _configure(resolver)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    command = positionals[0] if positionals else "help"

    if command == "serve":
        bridge = StdioBridge(build_registry(resolver))
        try:
            asyncio.run(bridge.serve())
        except KeyboardInterrupt:
            return 130
        return 0

    if command == "help":
        return asyncio.run(run_tool(build_registry(resolver), "help", {}, as_json=flags["json"]))

    if command == "run":
        if len(positionals) < 2:
            if flags["json"]:
                print(
                    json.dumps(
                        {
                            "success": False,
                            "error": USAGE,
                            "toolname": "none",
                            "timestamp": utc_timestamp(),
                        }
                    )
                )
            else:
                print(USAGE, file=sys.stderr)
            return 1
        toolname = positionals[1]
        params = parse_params(" ".join(positionals[2:]))
        return asyncio.run(
            run_tool(build_registry(resolver), toolname, params, as_json=flags["json"])
        )

    print(f"Unknown command: {command}\n{USAGE}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
