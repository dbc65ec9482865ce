"""Command line entry point: run a task end to end, list tools, or serve the API."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from agent_pipeline.config.settings import get_settings
from agent_pipeline.errors import AgentPipelineError
from agent_pipeline.orchestrator import build_orchestrator
from agent_pipeline.state.models import ExecutionMode

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="agent-pipeline",
        description="Run planner, architect, coder, tester, and reviewer over a task.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Create a task, execute it, and print the report.")
    run.add_argument("title", help="Short task title.")
    run.add_argument("description", help="Natural-language description of the work.")
    run.add_argument(
        "--project",
        type=Path,
        default=Path("."),
        help="Project root the tools are confined to (default: current directory).",
    )
    run.add_argument(
        "--tech",
        action="append",
        default=[],
        help="Technology in the stack. Repeat for several.",
    )
    run.add_argument(
        "--mode",
        choices=[mode.value for mode in ExecutionMode],
        default=None,
        help="Execution mode (default: AGENT_PIPELINE_DEFAULT_EXECUTION_MODE).",
    )
    run.add_argument(
        "--json",
        action="store_true",
        help="Print the final task as JSON instead of the markdown report.",
    )

    tools = commands.add_parser("tools", help="List the tools available to workers.")
    tools.add_argument("--project", type=Path, default=Path("."))

    serve = commands.add_parser("serve", help="Serve the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run("agent_pipeline.api.main:app", host=args.host, port=args.port)
        return 0

    orchestrator = build_orchestrator(settings, project_root=args.project.resolve())

    if args.command == "tools":
        for spec in orchestrator.gateway.list_tools():
            roles = ", ".join(sorted(spec.allowed_roles)) if spec.allowed_roles else "all roles"
            print(f"{spec.name} [{spec.category}] {spec.description} ({roles})")
        return 0

    task = orchestrator.store.create_task(
        title=args.title,
        description=args.description,
        project_path=str(args.project.resolve()),
        tech_stack=args.tech,
    )
    try:
        task = orchestrator.execute_task(task.id, mode=args.mode)
    except AgentPipelineError as exc:
        logger.error("cli event=run_failed task_id=%s error=%s", task.id, exc)
        print(orchestrator.export_execution_report(task.id))
        return 1

    if args.json:
        print(json.dumps(task.model_dump(mode="json"), indent=2))
    else:
        print(orchestrator.export_execution_report(task.id))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
