"""Quorum CLI: Typer + Rich terminal interface.

Commands: classify, route, feedback, policies, stats, providers, rules,
consensus, experiments.
All output is Rich-powered with color-coded panels and tables.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quorum import __version__
from quorum.classifier import TaskClassifier
from quorum.errors import ConfigError, NoProviderAvailable
from quorum.events import EngineEvent, EngineEventEmitter, EventType
from quorum.keys import key_status, load_keys_env
from quorum.providers.registry import load_providers, load_rules
from quorum.routing.rules import RuleSelector
from quorum.schemas.consensus import ConsensusResult
from quorum.schemas.experiment import ExperimentStatus
from quorum.schemas.routing import RouteConstraints
from quorum.schemas.task import ClassificationHints, Complexity, TaskDomain
from quorum.service import QuorumService

# Load API keys from ~/.quorum/keys.env and .env on startup
load_keys_env()

console = Console()

# Set by the app callback; None means the bundled config directory
_state: dict[str, Any] = {"config_dir": None}

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="quorum",
    help="Adaptive task routing and multi-participant consensus.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

experiments_app = typer.Typer(
    name="experiments",
    help="Inspect routing A/B experiments.",
    no_args_is_help=True,
)
app.add_typer(experiments_app, name="experiments")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"quorum {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log routing and consensus internals.",
    ),
    config_dir: Path = typer.Option(
        None, "--config-dir",
        help="Directory holding providers/rules/committee/defaults TOML files",
    ),
) -> None:
    """Quorum: adaptive task routing and multi-participant consensus."""
    _state["config_dir"] = config_dir
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
            force=True,
        )


# ── Helpers ──────────────────────────────────────────────────────

def _config_path(name: str) -> Path | None:
    config_dir = _state["config_dir"]
    return config_dir / name if config_dir else None


def _load_registry():
    """Load the provider registry, exit on error."""
    try:
        return load_providers(_config_path("providers.toml"))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading providers:[/red] {e}")
        raise typer.Exit(1) from None


def _load_rules(providers):
    """Load the rule table, exit on error."""
    try:
        return load_rules(_config_path("rules.toml"), providers)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading rules:[/red] {e}")
        raise typer.Exit(1) from None


def _with_service(
    action: Callable[[QuorumService], Awaitable[Any]],
    *,
    rng: random.Random | None = None,
    emitter: EngineEventEmitter | None = None,
) -> Any:
    """Build the service from config, run ``action`` on it, then close it."""

    async def _run():
        service = await QuorumService.create(_state["config_dir"], rng=rng, emitter=emitter)
        try:
            return await action(service)
        finally:
            await service.close()

    try:
        return asyncio.run(_run())
    except (FileNotFoundError, ConfigError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _parse_domain(value: str | None) -> TaskDomain | None:
    if value is None:
        return None
    try:
        return TaskDomain(value)
    except ValueError:
        console.print(f"[red]Invalid domain:[/red] '{value}'")
        console.print(f"[dim]Valid: {', '.join(d.value for d in TaskDomain)}[/dim]")
        raise typer.Exit(1) from None


def _parse_complexity(value: str | None) -> Complexity | None:
    if value is None:
        return None
    try:
        return Complexity(value)
    except ValueError:
        console.print(f"[red]Invalid complexity:[/red] '{value}'")
        raise typer.Exit(1) from None


def _confidence_style(confidence: float) -> str:
    if confidence >= 0.7:
        return "green"
    if confidence >= 0.4:
        return "yellow"
    return "red"


# ── quorum classify ──────────────────────────────────────────────

@app.command()
def classify(
    task: str = typer.Argument(..., help="Task text to classify"),
    domain: str = typer.Option(None, "--domain", "-d", help="Domain hint"),
    complexity: str = typer.Option(None, "--complexity", help="Complexity override"),
) -> None:
    """Show the task profile the classifier assigns to a task."""
    hints = ClassificationHints(
        domain=_parse_domain(domain),
        complexity=_parse_complexity(complexity),
    )
    profile = TaskClassifier().classify(task, hints)

    table = Table(title="Task Profile", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Domain", profile.domain.value)
    table.add_row("Complexity", profile.complexity.value)
    table.add_row(
        "Capabilities",
        ", ".join(sorted(profile.required_capabilities)) or "none",
    )
    table.add_row("Target Cost", f"${profile.target_cost:.4f}")
    table.add_row("Target Quality", f"{profile.target_quality:.2f}")
    table.add_row("Target Latency", f"{profile.target_latency_ms:,} ms")
    table.add_row(
        "High Stakes",
        "[bold red]yes[/bold red]" if profile.high_stakes else "no",
    )
    table.add_row("Keywords", ", ".join(profile.matched_keywords) or "[dim]none[/dim]")

    console.print(table)


# ── quorum route ─────────────────────────────────────────────────

@app.command()
def route(
    task: str = typer.Argument(..., help="Task text to route"),
    domain: str = typer.Option(None, "--domain", "-d", help="Domain hint"),
    exclude: list[str] = typer.Option(
        None, "--exclude", "-x",
        help="Provider ids that must not be chosen",
    ),
    prefer: list[str] = typer.Option(
        None, "--prefer", "-p",
        help="Provider ids that receive the preference bonus",
    ),
    max_cost: float = typer.Option(None, "--max-cost", help="Cost ceiling in USD"),
    experiment: str = typer.Option(
        None, "--experiment", "-e",
        help="Experiment id whose variant shapes this decision",
    ),
    seed: int = typer.Option(None, "--seed", help="Seed the exploration RNG"),
) -> None:
    """Show which provider a task would be routed to, and why."""
    hints = ClassificationHints(domain=_parse_domain(domain))
    constraints = RouteConstraints(
        excluded_providers=frozenset(exclude or []),
        preferred_providers=tuple(prefer or []),
        max_cost=max_cost,
    )
    rng = random.Random(seed) if seed is not None else None

    decision = _with_service(
        lambda svc: svc.select_route(task, hints, constraints, experiment),
        rng=rng,
    )

    style = _confidence_style(decision.confidence)
    lines = [
        f"[bold]Provider:[/bold]   [cyan]{decision.provider}[/cyan]",
        f"[bold]Capability:[/bold] {decision.capability}",
        f"[bold]Domain:[/bold]     {decision.domain.value}",
        f"[bold]Confidence:[/bold] [{style}]{decision.confidence:.2f}[/{style}]",
    ]
    if decision.rule_name:
        lines.append(f"[bold]Rule:[/bold]       {decision.rule_name}")
    if decision.variant_id:
        lines.append(f"[bold]Variant:[/bold]    {decision.variant_id}")
    lines.append("")
    lines.append(f"[dim]{decision.justification}[/dim]")

    title = "Routing Decision"
    if decision.is_default:
        title += " [yellow](default)[/yellow]"
    elif decision.exploratory:
        title += " [magenta](exploratory)[/magenta]"
    console.print(Panel("\n".join(lines), title=title, border_style="blue"))

    if decision.alternatives:
        table = Table(title="Alternatives")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Provider", style="cyan")
        table.add_column("Capability")
        table.add_column("Score", justify="right")
        for i, alt in enumerate(decision.alternatives, 1):
            table.add_row(str(i), alt.provider, alt.capability, f"{alt.score:.3f}")
        console.print(table)


# ── quorum feedback ──────────────────────────────────────────────

# Ratings such as -0.5 must reach the positional argument, not the option parser
@app.command(context_settings={"ignore_unknown_options": True})
def feedback(
    provider: str = typer.Argument(..., help="Provider id that handled the task"),
    domain: str = typer.Argument(..., help="Task domain"),
    rating: float = typer.Argument(..., help="Outcome rating in [-1, 1]"),
    helpful: bool = typer.Option(
        True, "--helpful/--not-helpful",
        help="Whether the outcome was helpful",
    ),
    notes: str = typer.Option("", "--notes", help="Free-text notes"),
    latency_ms: float = typer.Option(None, "--latency-ms", help="Observed latency"),
    cost: float = typer.Option(None, "--cost", help="Observed cost in USD"),
) -> None:
    """Record an outcome and show the updated policy record."""
    task_domain = _parse_domain(domain)
    metadata: dict[str, Any] = {"notes": notes}
    if latency_ms is not None:
        metadata["latency_ms"] = latency_ms
    if cost is not None:
        metadata["cost"] = cost

    async def _record(svc: QuorumService):
        feedback_id = await svc.record_feedback(
            provider, task_domain, rating, helpful, metadata,
        )
        return feedback_id, svc.policy.get(provider, task_domain)

    feedback_id, state = _with_service(_record)

    console.print(f"[green]Feedback recorded:[/green] {feedback_id}")
    if state is not None:
        console.print(
            f"[dim]{state.provider}/{state.domain.value}: "
            f"score {state.score:.3f}, success {state.success_rate:.0%}, "
            f"samples {state.sample_count}, confidence {state.confidence:.2f}[/dim]"
        )


# ── quorum policies ──────────────────────────────────────────────

@app.command()
def policies(
    domain: str = typer.Option(None, "--domain", "-d", help="Filter by domain"),
) -> None:
    """Show the learned routing policy."""
    task_domain = _parse_domain(domain)

    async def _states(svc: QuorumService):
        if task_domain is not None:
            return svc.policy.states_for(task_domain)
        return svc.policy.all_states()

    states = _with_service(_states)

    if not states:
        console.print("[dim]No policy records yet.[/dim]")
        return

    table = Table(title=f"Routing Policy ({len(states)} records)")
    table.add_column("Provider", style="cyan")
    table.add_column("Domain")
    table.add_column("Score", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Samples", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Avg Latency", justify="right")
    table.add_column("Avg Cost", justify="right")

    for s in sorted(states, key=lambda s: (s.domain.value, -s.score, s.provider)):
        style = _confidence_style(s.confidence)
        table.add_row(
            s.provider,
            s.domain.value,
            f"{s.score:.3f}",
            f"{s.success_rate:.0%}",
            str(s.sample_count),
            Text(f"{s.confidence:.2f}", style=style),
            f"{s.avg_latency_ms:,.0f} ms" if s.latency_samples else "-",
            f"${s.avg_cost:.4f}" if s.cost_samples else "-",
        )

    console.print(table)


# ── quorum stats ─────────────────────────────────────────────────

@app.command()
def stats(
    history: int = typer.Option(
        10, "--history", "-n", min=0,
        help="Recent routing decisions to list",
    ),
    feedback_limit: int = typer.Option(
        10, "--feedback", "-f", min=0,
        help="Recent feedback entries to list",
    ),
    provider: str = typer.Option(None, "--provider", "-p", help="Filter feedback by provider"),
) -> None:
    """Show routing usage statistics, recent decisions and feedback."""

    async def _collect(svc: QuorumService):
        entries = await svc.list_feedback(provider, limit=feedback_limit)
        return svc.routing_stats(), svc.routing_history(history), entries

    summary, recent, entries = _with_service(_collect)

    if not summary.total_decisions:
        console.print("[dim]No routing decisions recorded yet.[/dim]")
    else:
        console.print(
            f"[bold]{summary.total_decisions}[/bold] decisions  "
            f"avg confidence {summary.avg_confidence:.2f}  "
            f"est. cost ${summary.avg_estimated_cost:.4f}  "
            f"est. latency {summary.avg_estimated_latency_ms:,.0f} ms  "
            f"explored {summary.exploration_rate:.0%}  "
            f"default {summary.default_rate:.0%}"
        )
        table = Table(title="Provider Usage")
        table.add_column("Provider", style="cyan")
        table.add_column("Selections", justify="right")
        table.add_column("Share", justify="right")
        table.add_column("Avg Confidence", justify="right")
        table.add_column("Explored", justify="right")
        table.add_column("Default", justify="right")
        for usage in summary.providers:
            table.add_row(
                usage.provider,
                str(usage.selections),
                f"{usage.selections / summary.total_decisions:.0%}",
                Text(f"{usage.avg_confidence:.2f}", style=_confidence_style(usage.avg_confidence)),
                str(usage.exploratory),
                str(usage.defaults),
            )
        console.print(table)

    if recent:
        table = Table(title="Recent Decisions")
        table.add_column("When", style="dim")
        table.add_column("Domain")
        table.add_column("Provider", style="cyan")
        table.add_column("Rule")
        table.add_column("Confidence", justify="right")
        for d in reversed(recent):
            table.add_row(
                d.decided_at.strftime("%Y-%m-%d %H:%M:%S"),
                d.domain.value,
                d.provider + (" [yellow](explore)[/yellow]" if d.exploratory else ""),
                d.rule_name or "-",
                f"{d.confidence:.2f}",
            )
        console.print(table)

    if entries:
        table = Table(title="Recent Feedback")
        table.add_column("When", style="dim")
        table.add_column("Provider", style="cyan")
        table.add_column("Domain")
        table.add_column("Rating", justify="right")
        table.add_column("Helpful")
        table.add_column("Notes")
        for e in entries:
            table.add_row(
                e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                e.provider,
                e.domain.value,
                f"{e.rating:+.2f}",
                "[green]yes[/green]" if e.helpful else "[red]no[/red]",
                e.notes or "-",
            )
        console.print(table)


# ── quorum providers ─────────────────────────────────────────────

@app.command()
def providers() -> None:
    """Show all registered providers and their API key status."""
    registry = _load_registry()
    keys = key_status(registry)

    table = Table(title="Registered Providers", show_lines=True)
    table.add_column("Id", style="bold cyan", no_wrap=True)
    table.add_column("Display Name")
    table.add_column("Model", style="dim")
    table.add_column("Capabilities")
    table.add_column("Quality", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("Key")

    for pid, cfg in sorted(registry.items()):
        bench = cfg.benchmark
        table.add_row(
            pid,
            cfg.display_name,
            cfg.model,
            ", ".join(cfg.capabilities),
            f"{bench.quality:.2f}",
            f"{bench.success_rate:.2f}",
            f"${bench.cost:.4f}",
            f"{bench.latency_ms:,} ms",
            "[green]set[/green]" if keys[pid] else "[red]not set[/red]",
        )

    console.print(table)
    console.print(f"\n[dim]{len(registry)} providers registered[/dim]")


# ── quorum rules ─────────────────────────────────────────────────

@app.command()
def rules(
    task: str = typer.Argument(None, help="Explain rule selection for this task"),
    domain: str = typer.Option(None, "--domain", "-d", help="Domain hint"),
    exclude: list[str] = typer.Option(
        None, "--exclude", "-x",
        help="Provider ids that must not be chosen",
    ),
) -> None:
    """Show the rule table, or explain which rule a task would match."""
    registry = _load_registry()
    selector = RuleSelector(_load_rules(registry), registry)

    if task is None:
        table = Table(title="Routing Rules")
        table.add_column("Priority", justify="right")
        table.add_column("Name", style="bold")
        table.add_column("Domains")
        table.add_column("Primary", style="cyan")
        table.add_column("Fallbacks", style="dim")
        for rule in selector.rules:
            table.add_row(
                str(rule.priority),
                rule.name,
                ", ".join(rule.domains),
                rule.primary,
                " → ".join(rule.fallbacks) or "-",
            )
        console.print(table)
        return

    profile = TaskClassifier().classify(
        task, ClassificationHints(domain=_parse_domain(domain)),
    )
    constraints = RouteConstraints(excluded_providers=frozenset(exclude or []))
    report = selector.explain(profile, constraints)

    console.print(
        f"[bold]Domain:[/bold] {profile.domain.value}  "
        f"[bold]Complexity:[/bold] {profile.complexity.value}"
    )
    if not report:
        console.print("[yellow]No rule matches this domain.[/yellow]")
        return

    table = Table(title="Rule Evaluation")
    table.add_column("Priority", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Primary", style="cyan")
    table.add_column("Outcome")
    for rule, reason in report:
        outcome = Text(reason, style="green" if reason == "selected" else "dim")
        table.add_row(str(rule.priority), rule.name, rule.primary, outcome)
    console.print(table)


# ── quorum consensus ─────────────────────────────────────────────

@app.command()
def consensus(
    task: str = typer.Argument(..., help="Task to deliberate on"),
    require: list[str] = typer.Option(
        None, "--require", "-r",
        help="Participant ids that must be seated",
    ),
    optional: list[str] = typer.Option(
        None, "--optional", "-o",
        help="Participant ids seated if room remains",
    ),
    expected: str = typer.Option(
        "", "--expected",
        help="Shape of the answer you expect",
    ),
    round_timeout: float = typer.Option(
        None, "--round-timeout", min=0.1,
        help="Per-round deadline in seconds (default from config)",
    ),
) -> None:
    """Run a multi-participant consensus session."""
    console.print(Panel(f"[bold]Consensus:[/bold] {task}", border_style="blue"))
    emitter = EngineEventEmitter()
    emitter.add_listener(
        _print_progress,
        EventType.ROUND_STARTED, EventType.PARTICIPANT_DROPPED, EventType.CONSENSUS_CHECKED,
    )

    async def _consensus(svc: QuorumService):
        with console.status("[bold]Deliberating...[/bold]"):
            return await svc.start_consensus(
                task, require or [], optional or [], expected,
                round_timeout=round_timeout,
            )

    try:
        result = _with_service(_consensus, emitter=emitter)
    except NoProviderAvailable as e:
        console.print(f"[red]Consensus failed:[/red] {e}")
        raise typer.Exit(1) from None

    _display_consensus(result)


def _print_progress(event: EngineEvent) -> None:
    data = event.data
    if event.type == EventType.ROUND_STARTED:
        console.print(f"[dim]Round {data['round']}: {len(data['seats'])} seats[/dim]")
    elif event.type == EventType.PARTICIPANT_DROPPED:
        console.print(
            f"[yellow]  dropped {data['participant_id']}:[/yellow] {data['reason']}"
        )
    else:
        console.print(f"[dim]  consensus score {data['score']:.2f}[/dim]")


def _display_consensus(result: ConsensusResult) -> None:
    """Render rounds, scores and the final answer."""
    table = Table(title="Rounds")
    table.add_column("Round", justify="right")
    table.add_column("Responses", justify="right")
    table.add_column("Dropped", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Consensus")
    for rnd in result.rounds:
        reached = "[green]yes[/green]" if rnd.consensus_reached else "[dim]no[/dim]"
        table.add_row(
            str(rnd.round),
            str(len(rnd.responses)),
            str(len(rnd.failed)),
            f"{rnd.consensus_score:.2f}",
            reached,
        )
    if result.rounds:
        console.print(table)

    if result.consensus_reached:
        header = "[bold green]Consensus reached[/bold green]"
        border = "green"
    elif result.fallback_used:
        header = "[bold yellow]Fallback answer[/bold yellow]"
        border = "yellow"
    else:
        header = "[bold yellow]No consensus[/bold yellow]"
        border = "yellow"

    summary = (
        f"{header}  rounds {result.total_rounds}  "
        f"quality {result.quality_score:.0f}/100  "
        f"cost ${result.total_cost:.4f}  "
        f"{result.duration_seconds:.1f}s"
    )
    if result.abort_reason:
        summary += f"\n[dim]{result.abort_reason}[/dim]"
    console.print(summary)
    console.print(Panel(result.final_answer, title="Final Answer", border_style=border))


# ── quorum experiments ───────────────────────────────────────────

@experiments_app.command("list")
def experiments_list(
    status: str = typer.Option(None, "--status", "-s", help="Filter by status"),
) -> None:
    """Show experiments in creation order."""
    if status is not None:
        try:
            ExperimentStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status:[/red] '{status}'")
            raise typer.Exit(1) from None

    async def _list(svc: QuorumService):
        return svc.list_experiments(status)

    experiments = _with_service(_list)

    if not experiments:
        console.print("[dim]No experiments found.[/dim]")
        return

    table = Table(title=f"Experiments ({len(experiments)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Variants", justify="right")
    table.add_column("Impressions", justify="right")
    table.add_column("Winner")

    status_styles = {
        ExperimentStatus.ACTIVE: "green",
        ExperimentStatus.PAUSED: "yellow",
        ExperimentStatus.COMPLETED: "dim",
    }
    for exp in experiments:
        table.add_row(
            exp.experiment_id,
            exp.name,
            Text(exp.status.value, style=status_styles[exp.status]),
            str(len(exp.variants)),
            str(sum(v.impressions for v in exp.variants)),
            exp.winner_id or "-",
        )

    console.print(table)


@experiments_app.command("show")
def experiments_show(
    experiment_id: str = typer.Argument(..., help="Experiment id"),
) -> None:
    """Show per-variant statistics for one experiment."""

    async def _show(svc: QuorumService):
        return svc.experiments.get(experiment_id), svc.experiments.results(experiment_id)

    try:
        experiment, results = _with_service(_show)
    except KeyError:
        console.print(f"[red]Experiment not found:[/red] '{experiment_id}'")
        raise typer.Exit(1) from None

    console.print(
        f"[bold]{experiment.name}[/bold] [dim]({experiment.status.value})[/dim]"
    )
    if experiment.description:
        console.print(f"[dim]{experiment.description}[/dim]")

    table = Table(title="Variants")
    table.add_column("Variant", style="bold")
    table.add_column("Weight", justify="right")
    table.add_column("Impressions", justify="right")
    table.add_column("Conversions", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Avg Score", justify="right")
    table.add_column("Combined", justify="right", style="bold green")
    for r in results:
        name = r.name
        if r.variant_id == experiment.winner_id:
            name += " [green]★[/green]"
        table.add_row(
            name,
            f"{r.weight:.2f}",
            str(r.impressions),
            str(r.conversions),
            f"{r.conversion_rate:.1%}",
            f"{r.avg_score:.3f}",
            f"{r.combined_score:.3f}",
        )
    console.print(table)
