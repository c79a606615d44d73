# ==============================
# CLI Entrypoint
# ==============================
"""
CLI for agentloop.

Supported commands:
  agentloop run --prompt "hello"
  agentloop run --prompt "hello" --max-steps 3 --run-id r1 --parent-run-id p1 --tag prod --tag user:42
  agentloop run --messages-file transcript.json
  agentloop show-config
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from agentloop.agents.extensions import load_extensions
from agentloop.config.loader import load_settings
from agentloop.contracts.errors import AgentLoopError
from agentloop.contracts.message_schema import Message
from agentloop.logging.logger import bootstrap_logger
from agentloop.orchestrator.engine import ToolLoopAgent
from agentloop.orchestrator.run_context import RunContext
from agentloop.tools.builtin import builtin_tools


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _print_error(exc: Exception) -> int:
    _print_json({"ok": False, "error": {"type": type(exc).__name__, "message": str(exc)}})
    return 1


def _load_messages(path: str) -> List[Message]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Invalid messages file: {exc}") from exc
    if not isinstance(raw, list):
        raise SystemExit("Messages file must contain a JSON list.")
    return [Message.model_validate(m) for m in raw]


def cmd_run(agent: ToolLoopAgent, *, prompt: Optional[str], messages_file: Optional[str], ctx: RunContext) -> int:
    if prompt and messages_file:
        raise SystemExit("Provide only one of --prompt or --messages-file.")
    if not prompt and not messages_file:
        raise SystemExit("Provide --prompt or --messages-file.")
    try:
        if messages_file:
            result = agent.execute_with_messages(_load_messages(messages_file), ctx=ctx)
        else:
            result = agent.execute(prompt or "", ctx=ctx)
    except AgentLoopError as exc:
        return _print_error(exc)
    _print_json({"ok": True, "data": result.model_dump(mode="json")})
    return 0


def cmd_show_config(settings: Any) -> int:
    _print_json(settings.model_dump(mode="json"))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="agentloop")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_run = sub.add_parser("run")
    ap_run.add_argument("--prompt", default=None)
    ap_run.add_argument("--messages-file", help="Path to a JSON list of messages", default=None)
    ap_run.add_argument("--max-steps", type=int, default=None)
    ap_run.add_argument("--run-id", default=None)
    ap_run.add_argument("--parent-run-id", default=None)
    ap_run.add_argument("--tag", action="append", default=[], help="Repeatable run tag")

    sub.add_parser("show-config")

    args = ap.parse_args(argv)

    settings, _ = load_settings()
    # logs go to stderr so stdout stays machine-readable
    bootstrap_logger(settings, stream=sys.stderr)

    if args.cmd == "show-config":
        return cmd_show_config(settings)
    if args.cmd == "run":
        if args.max_steps is not None and args.max_steps < 1:
            raise SystemExit("--max-steps must be >= 1")
        try:
            agent = ToolLoopAgent.from_settings(settings, tools=builtin_tools())
            load_extensions(agent, settings.agent.extensions)
        except AgentLoopError as exc:
            return _print_error(exc)
        if args.max_steps is not None:
            agent.set_max_steps(args.max_steps)
        ctx = RunContext(run_id=args.run_id, parent_run_id=args.parent_run_id, tags=list(args.tag))
        return cmd_run(agent, prompt=args.prompt, messages_file=args.messages_file, ctx=ctx)

    raise SystemExit("Unknown command")


if __name__ == "__main__":
    raise SystemExit(main())
