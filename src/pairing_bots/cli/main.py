"""
Main CLI application for pairing-bots.

Runs a pairing session (or both execution strategies side by side) and
manages the configuration file.
"""

import asyncio
import importlib
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import click
import yaml
from pydantic import BaseModel, ValidationError

from pairing_bots.lib.config import (
    ConfigurationError,
    ConfigurationManager,
    DEFAULT_CONFIG_PATH,
    PairDefaultsConfig,
    PairingBotsConfig,
    initialize_config,
    write_default_config,
)
from pairing_bots.lib.errors import PairingBotsError
from pairing_bots.lib.logging_config import setup_logging
from pairing_bots.lib.metrics import PairMetrics
from pairing_bots.lib.observability import initialize_telemetry, shutdown_telemetry
from pairing_bots.models.pair_config import (
    SYSTEM_ACTOR,
    AgentId,
    AlternateEachRound,
    EventStreamMode,
    EveryNCallsPause,
    ExecutionMode,
    NoPause,
    PairAgentConfig,
    StickyUntilSignoff,
    ThinkingLevel,
    WorkspaceMode,
)
from pairing_bots.models.run_result import PairRunResult
from pairing_bots.services.base_model_runtime import RuntimeFactory
from pairing_bots.services.model_worker import create_workers
from pairing_bots.services.pair_orchestrator import PairOrchestrator
from pairing_bots.services.scripted_runtime import load_replay_script, replay_runtime_factory
from pairing_bots.services.session_observer import SessionObserver
from pairing_bots.services.workspace_session import prepare_workspace_session


logger = logging.getLogger("pairing_bots.cli")

THINKING_CHOICES = [level.value for level in ThinkingLevel]


class RunAborted(Exception):
    """A run failed after its error was reported to the user."""
    pass


class RunOptions(BaseModel):
    """Per-invocation options of the ``run`` command."""
    task: str
    output: Optional[str] = None
    log_file: Optional[str] = None
    event_log_file: Optional[str] = None
    disable_event_stream: bool = False
    event_stream_mode: EventStreamMode = EventStreamMode.COMPACT
    workspace_mode: WorkspaceMode = WorkspaceMode.DIRECT
    keep_workspace: bool = False
    compare_strategies: bool = False


def _absolute(path: Optional[str]) -> Optional[str]:
    return str(Path(path).expanduser().resolve()) if path else None


def print_section(title: str, body: str) -> None:
    click.echo(f"\n=== {title} ===")
    click.echo(body)


def build_pair_config(
    defaults: PairDefaultsConfig,
    cwd: str,
    max_rounds: Optional[int] = None,
    driver_start: Optional[str] = None,
    execution_mode: Optional[str] = None,
    turn_policy: Optional[str] = None,
    max_consecutive_rounds: Optional[int] = None,
    max_consecutive_checkpoints: Optional[int] = None,
    pause_mode: Optional[str] = None,
    edits_per_pause: Optional[int] = None,
    model_a_provider: Optional[str] = None,
    model_a_id: Optional[str] = None,
    model_a_thinking: Optional[str] = None,
    model_b_provider: Optional[str] = None,
    model_b_id: Optional[str] = None,
    model_b_thinking: Optional[str] = None,
) -> PairAgentConfig:
    """Apply command-line overrides on top of the configured pairing defaults.

    Cap options switch an alternating policy to the sticky one, and
    ``edits_per_pause`` switches ``none`` to count-based pausing.
    """
    overrides: Dict[str, Any] = {}
    if max_rounds is not None:
        overrides["max_rounds"] = max_rounds
    if driver_start is not None:
        overrides["driver_starts_as"] = AgentId(driver_start)
    if execution_mode is not None:
        overrides["execution_mode"] = ExecutionMode(execution_mode)

    policy = defaults.turn_policy
    if turn_policy == AlternateEachRound().mode:
        policy = AlternateEachRound()
    elif turn_policy == StickyUntilSignoff().mode and not isinstance(policy, StickyUntilSignoff):
        policy = StickyUntilSignoff()
    if max_consecutive_rounds is not None or max_consecutive_checkpoints is not None:
        if not isinstance(policy, StickyUntilSignoff):
            policy = StickyUntilSignoff()
        caps = {}
        if max_consecutive_rounds is not None:
            caps["max_consecutive_rounds"] = max_consecutive_rounds
        if max_consecutive_checkpoints is not None:
            caps["max_consecutive_checkpoints"] = max_consecutive_checkpoints
        policy = StickyUntilSignoff(**{**policy.model_dump(), **caps})
    overrides["turn_policy"] = policy

    pause = defaults.pause_strategy
    if pause_mode == NoPause().mode:
        pause = NoPause()
    elif pause_mode == EveryNCallsPause().mode and not isinstance(pause, EveryNCallsPause):
        pause = EveryNCallsPause()
    if edits_per_pause is not None:
        if not isinstance(pause, EveryNCallsPause):
            pause = EveryNCallsPause()
        pause = EveryNCallsPause(**{**pause.model_dump(), "edits_per_pause": edits_per_pause})
    overrides["pause_strategy"] = pause

    for key, spec, provider, model_id, thinking in (
        ("model_a", defaults.model_a, model_a_provider, model_a_id, model_a_thinking),
        ("model_b", defaults.model_b, model_b_provider, model_b_id, model_b_thinking),
    ):
        values = spec.model_dump()
        if provider is not None:
            values["provider"] = provider
        if model_id is not None:
            values["model_id"] = model_id
        if thinking is not None:
            values["thinking_level"] = thinking
        overrides[key] = values

    return defaults.to_pair_config(_absolute(cwd), **overrides)


def load_runtime_factory(spec: str) -> RuntimeFactory:
    """Import a runtime factory from a ``module:callable`` path."""
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Runtime factory must look like 'module:callable', got: {spec}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import runtime module {module_name}: {e}")
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ConfigurationError(f"Runtime factory {spec} is not callable")
    return factory


def resolve_runtime_factory(
    config: PairingBotsConfig,
    runtime: Optional[str] = None,
    replay_script: Optional[str] = None,
) -> RuntimeFactory:
    runtime = runtime or config.runtime.factory
    replay_script = replay_script or config.runtime.replay_script
    if runtime and replay_script:
        raise ConfigurationError("Use either a runtime factory or a replay script, not both")
    if runtime:
        return load_runtime_factory(runtime)
    if replay_script:
        return replay_runtime_factory(load_replay_script(replay_script))
    raise ConfigurationError("No model runtime configured. Pass --runtime module:callable or --replay-script PATH")


def _observer_paths(options: RunOptions, label: Optional[str]) -> Dict[str, Optional[str]]:
    log_file, event_log_file = options.log_file, options.event_log_file
    if label:
        if log_file:
            log_file = str(Path(log_file).with_suffix(f".{label}.json"))
        if event_log_file:
            event_log_file = str(Path(event_log_file).with_suffix(f".{label}.jsonl"))
    return {"log_file": log_file, "event_log_file": event_log_file}


def _print_run_configuration(pair: PairAgentConfig, base_cwd: str, options: RunOptions,
                             observer: SessionObserver) -> None:
    policy = pair.turn_policy
    cap = (
        f"Safety cap: {policy.max_consecutive_rounds} rounds or {policy.max_consecutive_checkpoints} checkpoints"
        if isinstance(policy, StickyUntilSignoff) else "Safety cap: n/a"
    )
    print_section("Run Configuration", "\n".join([
        f"Task: {options.task}",
        f"Execution mode: {pair.execution_mode.value}",
        f"Base CWD: {base_cwd}",
        f"Runtime CWD: {pair.cwd}",
        f"Workspace mode: {options.workspace_mode.value}",
        f"Keep workspace: {options.keep_workspace}",
        f"Max rounds: {pair.max_rounds}",
        f"Driver starts: {pair.driver_starts_as.value}",
        f"Turn policy: {policy.mode}",
        cap,
        f"Pause policy: {pair.pause_strategy.mode}",
        f"Log file: {observer.log_file}",
        f"Event stream: {observer.event_log_file or 'disabled'}",
        f"Event stream mode: {options.event_stream_mode.value}",
        f"Model A: {pair.model_a.label()}",
        f"Model B: {pair.model_b.label()}",
    ]))


def print_run_result(result: PairRunResult) -> None:
    print_section("Agreed Plan", result.agreed_plan)

    for r in result.rounds:
        feedback = r.navigator_review.public_feedback if r.navigator_review.has_feedback else "NONE"
        decision = (
            f"Driver decision: {r.driver_decision.decision.value} ({r.driver_decision.justification})"
            if r.driver_decision else "Driver decision: n/a"
        )
        print_section(f"Round {r.round} ({r.driver.value} driver, {r.navigator.value} navigator)", "\n".join([
            f"Pause triggered: {r.pause_triggered}",
            f"Checkpoint count in round: {r.checkpoint_count}",
            f"Driver status: {r.driver_report.status.value}",
            f"Edit/write calls (successful): {r.edit_write_call_count}",
            f"Estimated written bytes: {r.estimated_written_bytes}",
            f"Driver summary: {r.driver_report.summary}",
            f"Navigator feedback: {feedback}",
            f"Navigator recommendation: {r.navigator_review.driver_recommendation.value}",
            decision,
        ]))

    print_section("Final Joint Review", "\n".join([
        f"Verdict: {result.final_review.joint_verdict.value}",
        f"Rationale: {result.final_review.rationale}",
        f"Next steps: {result.final_review.next_steps}",
    ]))

    summary = result.summary
    lines = [
        f"Total checkpoints: {summary.checkpoint_count}",
        f"Total driver swaps: {summary.swap_count}",
        f"Total estimated written bytes: {summary.total_estimated_written_bytes}",
    ]
    for agent_id in (AgentId.A, AgentId.B):
        c = summary.contributions[agent_id]
        lines.append(
            f"Model {agent_id.value} rough code share: {c.rough_code_share_percent}% "
            f"({c.estimated_written_bytes} bytes, {c.edit_write_call_count} edit/write calls)"
        )
    print_section("Run Summary", "\n".join(lines))

    obs = result.observability
    if obs is not None:
        print_section("Observability", "\n".join([
            f"Log file: {obs.log_file}",
            f"Event stream: {obs.event_stream_file or 'disabled'}",
            f"Event stream mode: {obs.event_stream_mode.value}",
            f"Event stream write error: {obs.event_stream_write_error or 'NONE'}",
            f"Log write error: {obs.log_write_error or 'NONE'}",
            f"Events: {obs.event_count}",
            f"Prompts: {obs.prompt_count}",
            f"Tool executions: {obs.tool_execution_count}",
            f"Tool execution errors: {obs.tool_execution_error_count}",
            f"Duration: {obs.duration_ms} ms",
        ]))


def print_comparison(results: Dict[str, PairRunResult]) -> None:
    rows = [("Strategy", "Verdict", "Rounds", "Swaps", "Checkpoints", "Bytes", "Prompts", "Duration ms")]
    for mode, result in results.items():
        obs = result.observability
        rows.append((
            mode,
            result.final_review.joint_verdict.value,
            str(len(result.rounds)),
            str(result.summary.swap_count),
            str(result.summary.checkpoint_count),
            str(result.summary.total_estimated_written_bytes),
            str(obs.prompt_count) if obs else "-",
            str(obs.duration_ms) if obs else "-",
        ))
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    print_section("Strategy Comparison", "\n".join(
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip() for row in rows
    ))


async def _write_output(path: str, data: Any) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, 'w') as f:
        await f.write(json.dumps(data, indent=2, default=str))


async def _run_once(
    pair: PairAgentConfig,
    options: RunOptions,
    runtime_factory: RuntimeFactory,
    metrics: PairMetrics,
    workspace_mode: WorkspaceMode,
    label: Optional[str] = None,
) -> PairRunResult:
    base_cwd = pair.cwd
    workspace = prepare_workspace_session(base_cwd, workspace_mode, options.keep_workspace)
    pair = pair.model_copy(update={"cwd": workspace.runtime_cwd})

    observer = SessionObserver(
        cwd=base_cwd,
        disable_event_stream=options.disable_event_stream,
        event_stream_mode=options.event_stream_mode,
        **_observer_paths(options, label),
    )
    observer.record("session", "cli_start", actor=SYSTEM_ACTOR, details={
        "task_length": len(options.task),
        "max_rounds": pair.max_rounds,
        "execution_mode": pair.execution_mode.value,
        "turn_policy": pair.turn_policy.mode,
        "pause_policy": pair.pause_strategy.mode,
        "base_cwd": base_cwd,
        "runtime_cwd": pair.cwd,
        "workspace_mode": workspace.mode.value,
        "keep_workspace": options.keep_workspace,
    })
    _print_run_configuration(pair, base_cwd, options.model_copy(update={"workspace_mode": workspace.mode}), observer)

    try:
        workers = create_workers(pair, runtime_factory)
        orchestrator = PairOrchestrator(pair, workers, observer=observer, metrics=metrics)
        result = await orchestrator.run(options.task)
        print_run_result(result)
        return result
    except Exception as e:
        message = str(e) or e.__class__.__name__
        logger.error(f"Run failed: {message}")
        click.echo(f"\nError: {message}", err=True)
        if not observer.flushed:
            observer.record("session", "cli_error", actor=SYSTEM_ACTOR, details={"message": message})
            await observer.flush("failed", message)
        click.echo(f"Observability log: {observer.log_file}", err=True)
        if observer.event_log_file:
            click.echo(f"Observability event stream: {observer.event_log_file}", err=True)
        raise RunAborted(message) from e
    finally:
        try:
            print_section("Workspace", workspace.describe_cleanup(workspace.cleanup()))
        except PairingBotsError as e:
            print_section("Workspace", f"Cleanup error: {e}")


async def _run_impl(pair: PairAgentConfig, options: RunOptions, runtime_factory: RuntimeFactory) -> None:
    metrics = PairMetrics()

    if not options.compare_strategies:
        result = await _run_once(pair, options, runtime_factory, metrics, options.workspace_mode)
        if options.output:
            await _write_output(options.output, result.model_dump(mode="json"))
            click.echo(f"\nWrote run artifact: {options.output}")
        return

    results: Dict[str, PairRunResult] = {}
    for mode in ExecutionMode:
        click.echo(f"\n##### Strategy: {mode.value} #####")
        results[mode.value] = await _run_once(
            pair.model_copy(update={"execution_mode": mode}),
            options,
            runtime_factory,
            metrics,
            WorkspaceMode.EPHEMERAL_COPY,
            label=mode.value,
        )
    print_comparison(results)
    if options.output:
        await _write_output(options.output, {mode: r.model_dump(mode="json") for mode, r in results.items()})
        click.echo(f"\nWrote comparison artifact: {options.output}")


def _load_configuration(ctx) -> PairingBotsConfig:
    config = initialize_config(ctx.obj.get('config_path')).get_config()
    if ctx.obj.get('debug'):
        config = config.model_copy(update={
            "debug": True,
            "logging": config.logging.model_copy(update={"level": "DEBUG"}),
        })
    return config


# CLI Commands

@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config, debug):
    """Pairing Bots: two models pair-programming as driver and navigator."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['debug'] = debug


@cli.command()
@click.option('--task', '-t', required=True, help='Task description for the pair')
@click.option('--cwd', default='.', type=click.Path(file_okay=False), help='Working directory for both workers')
@click.option('--max-rounds', type=click.IntRange(min=1), help='Maximum implementation rounds')
@click.option('--driver-start', type=click.Choice([a.value for a in AgentId]), help='Driver of the first round')
@click.option('--execution-mode', type=click.Choice([m.value for m in ExecutionMode]), help='Session strategy')
@click.option('--turn-policy', type=click.Choice([AlternateEachRound().mode, StickyUntilSignoff().mode]),
              help='Driver persistence policy')
@click.option('--max-consecutive-rounds', type=click.IntRange(min=1), help='Sticky policy round cap')
@click.option('--max-consecutive-checkpoints', type=click.IntRange(min=1), help='Sticky policy checkpoint cap')
@click.option('--pause-mode', type=click.Choice([NoPause().mode, EveryNCallsPause().mode]), help='Checkpoint cadence')
@click.option('--edits-per-pause', type=click.IntRange(min=1), help='Counted tool calls between checkpoints')
@click.option('--model-a-provider', help='Provider for model A')
@click.option('--model-a-id', help='Model identifier for model A')
@click.option('--model-a-thinking', type=click.Choice(THINKING_CHOICES), help='Reasoning effort for model A')
@click.option('--model-b-provider', help='Provider for model B')
@click.option('--model-b-id', help='Model identifier for model B')
@click.option('--model-b-thinking', type=click.Choice(THINKING_CHOICES), help='Reasoning effort for model B')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the run artifact as JSON')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Final JSON observability log')
@click.option('--event-log-file', type=click.Path(dir_okay=False), help='JSONL event stream')
@click.option('--no-event-stream', is_flag=True, help='Disable the JSONL event stream')
@click.option('--event-stream-mode', type=click.Choice([m.value for m in EventStreamMode]), help='Event stream verbosity')
@click.option('--workspace-mode', type=click.Choice([m.value for m in WorkspaceMode]), help='Direct or ephemeral copy')
@click.option('--keep-workspace', is_flag=True, help='Keep the ephemeral copy after the run')
@click.option('--compare-strategies', is_flag=True, help='Run both execution modes and compare')
@click.option('--runtime', help="Runtime factory as 'module:callable'")
@click.option('--replay-script', type=click.Path(exists=True, dir_okay=False), help='YAML/JSON replay script')
@click.pass_context
def run(ctx, task, cwd, runtime, replay_script, output, log_file, event_log_file, no_event_stream,
        event_stream_mode, workspace_mode, keep_workspace, compare_strategies, **pair_options):
    """Run a pairing session on TASK."""
    task = task.strip()
    if not task:
        click.echo("Error: --task cannot be empty", err=True)
        sys.exit(1)

    telemetry_started = False
    try:
        config = _load_configuration(ctx)
        setup_logging(config.logging.model_dump())
        if config.observability.enabled:
            initialize_telemetry(config.observability.model_dump())
            telemetry_started = True

        run_defaults = config.run
        options = RunOptions(
            task=task,
            output=_absolute(output or run_defaults.output),
            log_file=_absolute(log_file or run_defaults.log_file),
            event_log_file=_absolute(event_log_file or run_defaults.event_log_file),
            disable_event_stream=no_event_stream or run_defaults.disable_event_stream,
            event_stream_mode=event_stream_mode or run_defaults.event_stream_mode,
            workspace_mode=workspace_mode or run_defaults.workspace_mode,
            keep_workspace=keep_workspace or run_defaults.keep_workspace,
            compare_strategies=compare_strategies or run_defaults.compare_strategies,
        )
        pair = build_pair_config(config.pair, cwd, **pair_options)
        runtime_factory = resolve_runtime_factory(config, runtime, _absolute(replay_script))

        asyncio.run(_run_impl(pair, options, runtime_factory))

    except RunAborted:
        sys.exit(1)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except (PairingBotsError, ValidationError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        if telemetry_started:
            shutdown_telemetry()


@cli.command()
@click.pass_context
def validate(ctx):
    """Validate the pairing-bots configuration."""
    try:
        config_manager = ConfigurationManager(ctx.obj.get('config_path'))
        config = config_manager.load_config()
        warnings = config_manager.validate_config()

        click.echo("Configuration validation completed successfully!")
        click.echo(f"Configuration file: {config.config_file_path or 'none (defaults)'}")
        click.echo(f"Model A: {config.pair.model_a.label()}")
        click.echo(f"Model B: {config.pair.model_b.label()}")
        click.echo(f"Execution mode: {config.pair.execution_mode.value}")
        click.echo(f"Turn policy: {config.pair.turn_policy.mode}")
        click.echo(f"Pause policy: {config.pair.pause_strategy.mode}")

        if warnings:
            click.echo("\nWarnings:")
            for warning in warnings:
                click.echo(f"  - {warning}")
        else:
            click.echo("\nNo warnings found.")

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


@cli.command('init-config')
@click.option('--path', 'path', default=DEFAULT_CONFIG_PATH, show_default=True, help='Where to write the file')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
def init_config(path, force):
    """Write the default configuration file."""
    target = Path(path).expanduser()
    if target.exists() and not force:
        click.echo(f"Configuration already exists: {target} (use --force to overwrite)", err=True)
        sys.exit(1)
    try:
        written = write_default_config(str(target))
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Configuration written to: {written}")


@cli.command('show-config')
@click.pass_context
def show_config(ctx):
    """Print the effective configuration as YAML."""
    try:
        config = _load_configuration(ctx)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    data: Dict[str, Any] = config.model_dump(mode="json", exclude={"config_file_path"})
    click.echo(yaml.safe_dump(data, default_flow_style=False, indent=2, sort_keys=False))


if __name__ == '__main__':
    cli()
