# display.py
# All terminal output for the scene agent command line.
#
# This module owns presentation entirely. The client and CLI never format
# strings for the terminal; they call named functions here.
#
# Colour language:
#   cyan    : routing / requests to the agent service
#   yellow  : waiting on a human decision
#   green   : success / confirmed
#   red     : failures and halts
#   magenta : action execution

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from scene_agent.actions import ActionBase
from scene_agent.models import OperationResult

console = Console()

_RISK_STYLE = {"low": "green", "medium": "yellow", "high": "bold red"}
_STATE_STYLE = {"pending": "dim", "succeeded": "green", "failed": "red"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


def banner(base_url: str, provider: str, model: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Scene Agent[/bold cyan]\n"
            "[dim]Human-approved scene automation[/dim]\n\n"
            f"[dim]Service  :[/dim] [white]{base_url}[/white]\n"
            f"[dim]Provider :[/dim] [white]{provider}[/white]"
            + (f"\n[dim]Model    :[/dim] [white]{model}[/white]" if model else ""),
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_sent(prompt: str, targets: list[str]) -> None:
    console.print()
    console.print(Rule("[cyan]NEW REQUEST[/cyan]", style="cyan"))
    selection = ", ".join(targets) if targets else "(editor selection empty)"
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]\n[dim]Targets: {escape(selection)}[/dim]",
            title=_label("PROMPT", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def operation_result(title: str, result: OperationResult) -> None:
    console.print()
    if result.ok:
        console.print(
            Panel(
                f"[white]{escape(result.message)}[/white]",
                title=_label(f"{title} ✓", "green"),
                border_style="green",
                padding=(0, 2),
            )
        )
    else:
        console.print(
            Panel(
                f"[bold red]{escape(result.message)}[/bold red]\n[dim]{result.error}[/dim]",
                title=_label(f"{title} ✗", "red"),
                border_style="red",
                padding=(0, 2),
            )
        )


def planned_actions(actions: list[ActionBase], summary: str = "") -> None:
    console.print()
    if not actions:
        console.print("[dim]  No executable actions in this plan.[/dim]")
        return

    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Action", style="bold white", width=26)
    table.add_column("Risk", justify="center", width=8)
    table.add_column("Approved", justify="center", width=9)
    table.add_column("State", justify="center", width=10)
    table.add_column("Details", style="dim white")

    for index, action in enumerate(actions):
        table.add_row(
            str(index),
            action.label,
            f"[{_RISK_STYLE[action.risk]}]{action.risk}[/]",
            "[green]yes[/green]" if action.approved else "[red]no[/red]",
            f"[{_STATE_STYLE[action.state]}]{action.state}[/]",
            escape(_mono(action.describe(), 60)),
        )

    console.print(
        Panel(
            table,
            title=_label("PLANNED ACTIONS", "cyan"),
            subtitle=f"[dim]{escape(summary)}[/dim]" if summary else None,
            border_style="cyan",
            padding=(0, 1),
        )
    )


def context_usage(label: str, tooltip: str) -> None:
    if not label:
        return
    console.print(f"[dim]  {escape(label)}[/dim]")
    if tooltip:
        for line in tooltip.splitlines():
            console.print(f"[dim]    {escape(line)}[/dim]")


# ---------------------------------------------------------------------------
# Approval and execution
# ---------------------------------------------------------------------------


def ask_approval(index: int | None, preview: str) -> bool:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(preview)}[/white]",
            title=_label("APPROVAL NEEDED" if index is None else f"APPROVAL NEEDED: ACTION {index}", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )
    return Confirm.ask("[yellow]Approve this action?[/yellow]", console=console, default=False)


def action_outcome(index: int, ok: bool, message: str) -> None:
    mark = "[bold green]✓[/bold green]" if ok else "[bold red]✗[/bold red]"
    console.print(f"  [magenta]Action {index}[/magenta] {mark}  [white]{escape(_mono(message, 140))}[/white]")


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
