"""Self-healing support agent: CLI demo runner.

Seeds an in-memory store with demo data plus a simulated migration crisis,
runs one Observe → Reason → Decide → Act cycle and renders live phase panels
in the terminal using Rich. Prints the issues found and every action the
agent took or queued for approval when the cycle completes.

Usage:
    uv run python cli.py

Set AGENT_USE_LLM=true (and OPENROUTER_API_KEY) to classify clusters with an
LLM instead of the deterministic rules.
"""

import asyncio
import random

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from core.config import load_config
from core.context import AgentContext
from core.runtime import Agent
from demo.mock_data import MockDataGenerator
from display.live import LiveDisplay
from reasoning.llm_classifier import classifier_from_config
from schemas.action import RiskLevel
from schemas.result import AgentLoopResult
from store.memory import InMemoryDataStore

console = Console()

DEMO_SEED = 7

_RISK_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


# ── Results tables ────────────────────────────────────────────────────────────

def _print_issues(result: AgentLoopResult) -> None:
    """Render one row per classified issue cluster."""
    if not result.reasoning_results:
        console.print("\n[yellow]No issues identified.[/yellow]")
        return

    table = Table(title="Issues", show_lines=True, border_style="bright_black")
    table.add_column("#",              style="dim",  width=3, justify="right")
    table.add_column("Classification", style="bold", min_width=20)
    table.add_column("Confidence",     width=12,     justify="center")
    table.add_column("Merchants",      width=10,     justify="center")
    table.add_column("Root cause",     style="dim",  min_width=40)

    for i, r in enumerate(result.reasoning_results, 1):
        conf_color = "green" if r.confidence >= 0.8 else "yellow" if r.confidence >= 0.6 else "red"
        table.add_row(
            str(i),
            r.classification.value,
            f"[{conf_color}]{r.confidence:.0%}[/{conf_color}]",
            str(len(r.affected_scope.merchants)),
            r.root_cause_hypothesis,
        )

    console.print()
    console.print(table)


def _print_actions(result: AgentLoopResult) -> None:
    """Render every recommended action next to what happened to it."""
    executions = iter(result.execution_results)

    table = Table(title="Actions", show_lines=True, border_style="bright_black")
    table.add_column("Action",  style="bold", min_width=22)
    table.add_column("Risk",    width=10,     justify="center")
    table.add_column("Outcome", width=18,     justify="center")
    table.add_column("Details", style="dim",  min_width=36)

    for decision in result.decisions:
        for action in decision.recommended_actions:
            execution = next(executions, None)
            risk_color = _RISK_COLORS.get(action.risk_level, "dim")

            if execution is None:
                outcome, detail = "[dim]not run[/dim]", ""
            elif execution.is_pending:
                outcome, detail = "[yellow]pending approval[/yellow]", action.description
            elif execution.success:
                outcome, detail = "[green]executed[/green]", ", ".join(execution.side_effects)
            else:
                outcome, detail = "[red]failed[/red]", execution.error or ""

            table.add_row(
                action.action_type.value,
                f"[{risk_color}]{action.risk_level.value}[/{risk_color}]",
                outcome,
                detail,
            )

    console.print()
    console.print(table)

    summary = result.summary()
    console.print(
        f"\n[bold]{summary.actions_executed}[/bold] executed  "
        f"[bold]{summary.actions_pending}[/bold] pending approval  "
        f"[dim]({summary.duration_ms:.0f}ms)[/dim]\n"
    )


# ── Entry point ───────────────────────────────────────────────────────────────

async def _run() -> None:
    config = load_config()
    store = InMemoryDataStore()
    context = AgentContext.create(store, config)
    agent = Agent(context, classifier=classifier_from_config(config.reasoner))

    generator = MockDataGenerator(store, random.Random(DEMO_SEED))
    counts = await generator.generate()
    affected = await generator.simulate_migration_crisis(counts.merchants)

    console.rule("[bold]Self-Healing Support Agent[/bold]")
    console.print(f"  merchants   [cyan]{len(counts.merchants)} seeded, {len(affected)} in crisis[/cyan]")
    console.print(f"  window      [cyan]{config.observer.signal_window_minutes} minutes[/cyan]")
    console.print(f"  classifier  [cyan]{agent.reasoner.classifier.model_id}[/cyan]")
    console.print()

    display = LiveDisplay()
    event_queue: asyncio.Queue = asyncio.Queue()

    with display.make_live() as live:
        cycle = asyncio.create_task(agent.run_once(event_queue))
        consumer = asyncio.create_task(display.consume(event_queue, live))

        try:
            result = await cycle
        finally:
            await event_queue.put(None)   # sentinel: tell consumer to stop
            await consumer

    console.print(f"\n[dim]{result.observation.summary}[/dim]")
    _print_issues(result)
    _print_actions(result)


def main() -> None:
    load_dotenv()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
