"""
Main CLI interface for E2E Runner.

Runs stored scenarios against the configured automation agent, lists and
shows saved executions, validates configuration, and asks the suggestion
service for new scenarios.
"""

import argparse
import asyncio
import json
import shlex
import sys
import uuid
from pathlib import Path
from typing import Optional, List

from . import __version__
from .core.config import Config
from .core.exceptions import E2ERunnerError, ValidationError
from .core.logging_config import setup_logging
from .engine import ExecutionEngine
from .execution.models import RunOptions, RunResult, Viewport
from .generation.suggestions import SuggestionRequest, create_suggestion_service
from .notifications.events import (
    CompletedEvent,
    ErrorEvent,
    ExecutionEvent,
    ProgressEvent,
    StartedEvent,
)
from .storage.filesystem import JsonFileExecutionStore, JsonFileScenarioStore

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_PERSISTED = 2


def _load_config(args: argparse.Namespace) -> Config:
    config = Config.from_env()
    if getattr(args, "agent_command", None):
        config.agent_command = shlex.split(args.agent_command)
    if not getattr(args, "verbose", False) and config.log_level == "INFO":
        config.log_level = "WARNING"
    return config


def _scenario_store(args: argparse.Namespace, config: Config) -> JsonFileScenarioStore:
    return JsonFileScenarioStore(
        Path(args.scenarios_dir) if args.scenarios_dir else config.get_scenarios_dir()
    )


def _execution_store(args: argparse.Namespace, config: Config) -> JsonFileExecutionStore:
    return JsonFileExecutionStore(
        Path(args.executions_dir) if args.executions_dir else config.get_executions_dir()
    )


def print_event(event: ExecutionEvent) -> None:
    """Print one execution event as a progress line."""
    if isinstance(event, StartedEvent):
        print(f"▶️  Started '{event.scenario_name}' ({event.execution_id})")
    elif isinstance(event, ProgressEvent):
        print(f"   ✅ [{event.index}/{event.total}] {event.description} ({event.percentage}%)")
    elif isinstance(event, ErrorEvent):
        print(f"   ❌ {event.message}")
    elif isinstance(event, CompletedEvent):
        icon = "✅" if event.success else "❌"
        print(
            f"{icon} Execution {event.execution.status.value} in {event.duration:.2f}s"
        )


def exit_code_for(result: RunResult) -> int:
    if not result.persisted:
        return EXIT_NOT_PERSISTED
    return EXIT_OK if result.execution.is_success else EXIT_FAILED


async def _run(engine: ExecutionEngine, scenario_id: str, options: RunOptions) -> RunResult:
    subscription = engine.subscribe_callback(print_event)
    try:
        return await engine.run_scenario(scenario_id, options)
    finally:
        engine.unsubscribe(subscription)


def cmd_run(args: argparse.Namespace) -> int:
    """Run a stored scenario."""
    try:
        config = _load_config(args)
        config.validate()
        setup_logging(config, uuid.uuid4().hex[:16])
        config.ensure_directories()

        options = RunOptions(
            headless=not args.headed,
            timeout=args.timeout or config.default_action_timeout,
            retries=args.retries,
            agent_name=args.browser,
            viewport=Viewport.parse(args.viewport),
        )
        engine = ExecutionEngine(
            config,
            _scenario_store(args, config),
            _execution_store(args, config),
        )

        print(f"🚀 Running scenario {args.scenario_id}...")
        result = asyncio.run(_run(engine, args.scenario_id, options))

        execution = result.execution
        if execution.screenshots:
            print(f"📸 Screenshots: {len(execution.screenshots)}")
            if args.verbose:
                for path in execution.screenshots:
                    print(f"   • {path}")
        if not result.persisted:
            print(f"⚠️  Execution was not saved: {result.persistence_error}")
        if args.verbose:
            print(f"📊 Summary: {json.dumps(execution.to_summary(), indent=2)}")
        return exit_code_for(result)

    except KeyboardInterrupt:
        print("⚠️  Interrupted")
        return 130
    except E2ERunnerError as e:
        print(f"❌ {e.message}")
        return EXIT_FAILED
    except ValueError as e:
        print(f"❌ Invalid option: {e}")
        return EXIT_FAILED


def cmd_scenarios(args: argparse.Namespace) -> int:
    """List stored scenarios."""
    config = _load_config(args)
    store = _scenario_store(args, config)
    scenarios = store.list()

    if not scenarios:
        print(f"ℹ️  No scenarios found in {store.directory}")
        return EXIT_OK

    print(f"📋 {len(scenarios)} scenario(s) in {store.directory}")
    for scenario in scenarios:
        print(f"   • {scenario.id}  {scenario.name}  ({len(scenario.actions)} actions)")
        if args.verbose and scenario.description:
            print(f"       {scenario.description}")
    return EXIT_OK


def cmd_executions(args: argparse.Namespace) -> int:
    """List saved executions, newest first."""
    config = _load_config(args)
    store = _execution_store(args, config)
    executions = store.list(limit=args.limit)

    if not executions:
        print(f"ℹ️  No executions found in {store.directory}")
        return EXIT_OK

    for execution in executions:
        icon = {"completed": "✅", "failed": "❌", "cancelled": "⏹️ "}.get(
            execution.status.value, "•"
        )
        duration = f"{execution.duration:.2f}s" if execution.duration is not None else "-"
        print(
            f"{icon} {execution.id}  {execution.scenario_name}  "
            f"{execution.status.value}  {duration}  {execution.started_at.isoformat()}"
        )
    return EXIT_OK


def cmd_show(args: argparse.Namespace) -> int:
    """Print one saved execution as JSON."""
    config = _load_config(args)
    try:
        execution = _execution_store(args, config).get(args.execution_id)
    except E2ERunnerError as e:
        print(f"❌ {e.message}")
        return EXIT_FAILED

    print(json.dumps(execution.model_dump(mode="json"), indent=2, ensure_ascii=False))
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate configuration."""
    config = _load_config(args)
    print("🔍 Validating configuration...")
    try:
        config.validate()
    except ValidationError as e:
        print("❌ Configuration validation failed:")
        for violation in e.violations:
            print(f"   • {violation}")
        return EXIT_FAILED

    if config.uses_scripted_agent:
        print("⚠️  No automation agent configured; the scripted agent will be used")
    if not config.openai_api_key:
        print("ℹ️  OPENAI_API_KEY not set; suggestions are disabled")
    print("✅ Configuration is valid")
    if args.verbose:
        print(json.dumps(config.to_dict(), indent=2))
    return EXIT_OK


def cmd_suggest(args: argparse.Namespace) -> int:
    """Generate a scenario proposal and optionally save it."""
    config = _load_config(args)
    store = _scenario_store(args, config)
    request = SuggestionRequest(
        target_url=args.url,
        description=args.description,
        requirements=args.requirement or [],
        existing_scenarios=[s.name for s in store.list()],
    )

    try:
        service = create_suggestion_service(config)
        print("🤖 Generating scenario...")
        generated = asyncio.run(service.suggest(request))
    except E2ERunnerError as e:
        print(f"❌ {e.message}")
        return EXIT_FAILED

    scenario = generated.scenario
    print(f"✅ {scenario.name} (confidence {generated.confidence}%)")
    for index, action in enumerate(scenario.actions, 1):
        print(f"   {index}. [{action.kind}] {action.label}")
    print(f"💡 {generated.reasoning}")

    if args.save:
        try:
            path = store.save(scenario)
        except E2ERunnerError as e:
            print(f"❌ {e.message}")
            return EXIT_FAILED
        print(f"💾 Saved as {scenario.id} ({path})")
    return EXIT_OK


def cmd_analyze(args: argparse.Namespace) -> int:
    """Ask the suggestion service to analyze a saved execution."""
    config = _load_config(args)
    try:
        execution = _execution_store(args, config).get(args.execution_id)
        service = create_suggestion_service(config)
        print("🔎 Analyzing execution...")
        analysis = asyncio.run(service.analyze(execution))
    except E2ERunnerError as e:
        print(f"❌ {e.message}")
        return EXIT_FAILED

    print(analysis)
    return EXIT_OK


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--scenarios-dir",
        help="Directory of scenario files (default: <data dir>/scenarios)"
    )
    common.add_argument(
        "--executions-dir",
        help="Directory of execution records (default: <data dir>/executions)"
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser = argparse.ArgumentParser(
        prog="e2e-runner",
        description="E2E Runner - browser end-to-end scenario execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  e2e-runner run login-flow --headed
  e2e-runner scenarios
  e2e-runner executions --limit 10
  e2e-runner show 3f1c2a9e-...
  e2e-runner validate
        """
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run a stored scenario"
    )
    run_parser.add_argument("scenario_id", help="Id of the scenario to run")
    run_parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window"
    )
    run_parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Per-action timeout in milliseconds"
    )
    run_parser.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Accepted for compatibility; failed actions are not re-run"
    )
    run_parser.add_argument(
        "--browser",
        default="chromium",
        help="Browser the agent should drive"
    )
    run_parser.add_argument(
        "--viewport",
        default="1920x1080",
        help="Viewport size as WIDTHxHEIGHT"
    )
    run_parser.add_argument(
        "--agent-command",
        help="Command line of the automation agent"
    )
    run_parser.set_defaults(func=cmd_run)

    # Scenarios command
    scenarios_parser = subparsers.add_parser(
        "scenarios",
        parents=[common],
        help="List stored scenarios"
    )
    scenarios_parser.set_defaults(func=cmd_scenarios)

    # Executions command
    executions_parser = subparsers.add_parser(
        "executions",
        parents=[common],
        help="List saved executions"
    )
    executions_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of executions to list"
    )
    executions_parser.set_defaults(func=cmd_executions)

    # Show command
    show_parser = subparsers.add_parser(
        "show",
        parents=[common],
        help="Show a saved execution"
    )
    show_parser.add_argument("execution_id", help="Execution id")
    show_parser.set_defaults(func=cmd_show)

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate configuration"
    )
    validate_parser.set_defaults(func=cmd_validate)

    # Suggest command
    suggest_parser = subparsers.add_parser(
        "suggest",
        parents=[common],
        help="Generate a scenario proposal"
    )
    suggest_parser.add_argument("--url", required=True, help="Target page URL")
    suggest_parser.add_argument(
        "--description", required=True, help="What the test should cover"
    )
    suggest_parser.add_argument(
        "--requirement",
        action="append",
        help="Requirement the test must cover (repeatable)"
    )
    suggest_parser.add_argument(
        "--save",
        action="store_true",
        help="Save the proposal to the scenarios directory"
    )
    suggest_parser.set_defaults(func=cmd_suggest)

    # Analyze command
    analyze_parser = subparsers.add_parser(
        "analyze",
        parents=[common],
        help="Analyze a saved execution"
    )
    analyze_parser.add_argument("execution_id", help="Execution id")
    analyze_parser.set_defaults(func=cmd_analyze)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return EXIT_FAILED

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
