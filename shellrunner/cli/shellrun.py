from __future__ import annotations

import argparse
import json
import sys
import uuid
from pathlib import Path

from shellrunner.core.config import load_config_file
from shellrunner.core.errors import ShellRunnerError
from shellrunner.core.runner import LocalShellRunner
from shellrunner.core.runtime_context import RuntimeContext, current_os
from shellrunner.trace.replay import Replay
from shellrunner.ui import StreamUi


def _format_cli_error(e: Exception) -> str:
    """
    Print-friendly error formatting for CLI commands.
    - Always includes code/message (via __str__) for a ShellRunnerError
    - Includes the structured `data` payload when present
    """
    if isinstance(e, ShellRunnerError) and isinstance(e.data, dict) and e.data:
        return str(e) + "\n" + json.dumps(e.data, ensure_ascii=False, indent=2)
    return str(e)


def cmd_run(args: argparse.Namespace) -> int:
    runtime_os = args.runtime_os or current_os()
    config = load_config_file(Path(args.config), runtime_os=runtime_os)
    ctx = RuntimeContext(
        run_id=args.run_id or f"run_{uuid.uuid4().hex[:12]}",
        build_name=args.build_name,
        builder_type=args.builder_type,
        runtime_os=runtime_os,
        trace_path=Path(args.trace),
    )
    runner = LocalShellRunner()
    # Script output goes to stderr to keep JSON stdout stable.
    result = runner.run(ctx, StreamUi(out=sys.stderr, err=sys.stderr), config)
    out = runner.secret_filter.redact_obj(result.to_dict())
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    config = load_config_file(Path(args.config), runtime_os=args.runtime_os or current_os())
    print(json.dumps(config.to_dict(), ensure_ascii=False, indent=2))
    return 0


def cmd_show_trace(args: argparse.Namespace) -> int:
    events = Replay(Path(args.trace)).select(event_type=args.event_type, run_id=args.run_id, tail=args.tail)
    for e in events:
        if args.pretty:
            print(json.dumps(e, ensure_ascii=False, indent=2))
        else:
            print(json.dumps(e, ensure_ascii=False))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="shellrun", description="Run local shell scripts from a YAML config")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run the scripts described by a config file")
    p_run.add_argument("--config", required=True, help="Path to the run config (YAML)")
    p_run.add_argument("--build-name", default="", help="Exported to scripts as PACKER_BUILD_NAME")
    p_run.add_argument("--builder-type", default="", help="Exported to scripts as PACKER_BUILDER_TYPE")
    p_run.add_argument("--run-id", help="Run identifier recorded in the trace (default: random)")
    p_run.add_argument("--trace", default="trace.jsonl", help="Trace output path (jsonl)")
    p_run.add_argument("--runtime-os", help="Override the detected runtime OS (e.g. linux, windows)")
    p_run.set_defaults(func=cmd_run)

    p_check = sub.add_parser("check-config", help="Validate a config file and print it with defaults applied")
    p_check.add_argument("--config", required=True, help="Path to the run config (YAML)")
    p_check.add_argument("--runtime-os", help="Apply the defaults of this OS instead of the detected one")
    p_check.set_defaults(func=cmd_check_config)

    p_show_trace = sub.add_parser("show-trace", help="Show trace events from a JSONL file")
    p_show_trace.add_argument("--trace", required=True, help="Trace path (jsonl)")
    p_show_trace.add_argument("--event-type", help="Filter by event_type")
    p_show_trace.add_argument("--run-id", help="Filter by run_id")
    p_show_trace.add_argument("--tail", type=int, help="Show only last N events")
    p_show_trace.add_argument("--pretty", action="store_true", help="Pretty-print each event as JSON")
    p_show_trace.set_defaults(func=cmd_show_trace)

    ns = parser.parse_args(argv)
    try:
        return int(ns.func(ns))
    except ShellRunnerError as e:
        print(_format_cli_error(e), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
