"""
cli.py — AlertSleuth command line

Commands:
    alertsleuth new <file>                      summarise + store a JSON alert
    alertsleuth list [--all]                    open alerts (--all adds resolved and merged)
    alertsleuth show <alert-id>                 alert details
    alertsleuth resolve <alert-id> [--conclusion C] [--note N]
    alertsleuth merge <source-id> <target-id>   mark source as a duplicate of target
    alertsleuth unmerge <alert-id>
    alertsleuth histories <alert-id>            past investigations of an alert
    alertsleuth chat <alert-id> [--history-id]  interactive investigation

Global flags: --config PATH, --log-level LEVEL, --no-color.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from alertsleuth import __version__
from alertsleuth.agent.session import ChatSession
from alertsleuth.alerts.service import AlertService
from alertsleuth.alerts.summarizer import AlertSummarizer
from alertsleuth.brain import LLMClientFactory
from alertsleuth.config.settings import Settings, load_settings
from alertsleuth.exceptions import AlertSleuthError
from alertsleuth.observability.logger import get_logger, setup_logging
from alertsleuth.storage.blob import FileStorage
from alertsleuth.storage.models import AlertConclusion
from alertsleuth.storage.repository import JsonFileRepository
from alertsleuth.tools import ToolContext, default_registry

log = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1

_EXIT_WORDS = {"/exit", "/quit", "exit", "quit"}


# ─────────────────────────────────────────────────────────────────────────────
# Wiring
# ─────────────────────────────────────────────────────────────────────────────


def _bootstrap(args, need_llm: bool) -> Settings:
    settings = load_settings(args.config)
    if args.log_level:
        settings.logging.level = args.log_level.upper()
    setup_logging(
        level=settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )
    log.debug("cli.bootstrap", command=args.command, provider=settings.llm.provider)
    if need_llm:
        settings.validate_all()
    return settings


def _repository(settings: Settings) -> JsonFileRepository:
    return JsonFileRepository(settings.data_dir)


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "—"


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────


def cmd_new(args, console: Console) -> int:
    """Read a JSON alert from a file (or - for stdin), summarise and store it."""
    settings = _bootstrap(args, need_llm=True)
    raw = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {args.file}: {e}[/red]")
        return EXIT_ERROR

    service = AlertService(
        _repository(settings),
        AlertSummarizer(LLMClientFactory.from_settings(settings)),
    )
    with console.status("Summarising alert..."):
        alert = service.insert(data)

    console.print(f"[green]✓[/green] Alert created: [bold]{alert.id}[/bold]")
    console.print(f"  {alert.title}")
    return EXIT_OK


def _status(alert) -> str:
    if alert.is_merged:
        return f"[dim]merged to {alert.merged_to}[/dim]"
    if alert.is_resolved:
        return f"[green]{alert.conclusion or 'resolved'}[/green]"
    return "[yellow]open[/yellow]"


def cmd_list(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=False)
    alerts = AlertService(_repository(settings)).list(include_resolved=args.all, include_merged=args.all)

    table = Table(title="Alerts", box=box.SIMPLE_HEAVY)
    table.add_column("ID", style="bold")
    table.add_column("Created")
    table.add_column("Title")
    table.add_column("Status")
    for a in alerts:
        table.add_row(a.id, _fmt_time(a.created_at), a.title, _status(a))
    console.print(table)
    console.print(f"{len(alerts)} alert(s)")
    return EXIT_OK


def cmd_show(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=False)
    alert = _repository(settings).get_alert(args.alert_id)

    lines = [
        f"**ID**: {alert.id}",
        f"**Created**: {_fmt_time(alert.created_at)}",
        "",
        alert.description or "_(no description)_",
    ]
    if alert.attributes:
        lines += ["", "**Attributes**", ""]
        lines += [f"- `{a.key}` ({a.type.value}): {a.value}" for a in alert.attributes]
    if alert.is_resolved:
        lines += [
            "",
            f"**Resolved**: {_fmt_time(alert.resolved_at)} as `{alert.conclusion}`",
        ]
        if alert.note:
            lines.append(f"**Note**: {alert.note}")
    if alert.is_merged:
        lines += ["", f"**Merged to**: {alert.merged_to}"]

    console.print(Panel(Markdown("\n".join(lines)), title=alert.title or alert.id, border_style="cyan"))
    if args.data:
        console.print_json(json.dumps(alert.data, default=str))
    return EXIT_OK


def cmd_resolve(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=False)
    service = AlertService(_repository(settings))
    alert = service.resolve(args.alert_id, AlertConclusion(args.conclusion), args.note or "")
    console.print(f"[green]✓[/green] Alert {alert.id} resolved as [bold]{alert.conclusion}[/bold]")
    return EXIT_OK


def cmd_merge(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=False)
    AlertService(_repository(settings)).merge(args.source_id, args.target_id)
    console.print(f"[green]✓[/green] Alert {args.source_id} merged to [bold]{args.target_id}[/bold]")
    return EXIT_OK


def cmd_unmerge(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=False)
    AlertService(_repository(settings)).unmerge(args.alert_id)
    console.print(f"[green]✓[/green] Alert unmerged: {args.alert_id}")
    return EXIT_OK


def cmd_histories(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=False)
    repo = _repository(settings)
    repo.get_alert(args.alert_id)
    histories = repo.list_histories(alert_id=args.alert_id)

    table = Table(title=f"Investigations of {args.alert_id}", box=box.SIMPLE_HEAVY)
    table.add_column("History ID", style="bold")
    table.add_column("Updated")
    table.add_column("Title")
    for h in histories:
        table.add_row(h.id, _fmt_time(h.updated_at), h.title or "(untitled)")
    console.print(table)
    return EXIT_OK


class _ProgressPrinter:
    """Renders agent progress events on the console."""

    def __init__(self, console: Console, verbose: bool = False):
        self._console = console
        self._verbose = verbose

    def __call__(self, kind: str, data: dict[str, Any]) -> None:
        c = self._console
        if kind == "mode_selected":
            mode = "Plan & Execute" if data["plan_execute"] else "Direct"
            c.print(f"[dim]mode: {mode}[/dim]")
        elif kind == "tool_call":
            args = json.dumps(data["args"], ensure_ascii=False, default=str)
            if not self._verbose and len(args) > 120:
                args = args[:117] + "..."
            c.print(f"  [cyan]⚙ {data['name']}[/cyan] [dim]{args}[/dim]")
        elif kind == "tool_error":
            c.print(f"  [red]✗ {data['name']}: {data['error']}[/red]")
        elif kind == "compressed":
            c.print(
                f"[yellow]history compressed: {data['entries_before']} → "
                f"{data['entries_after']} entries[/yellow]"
            )
        elif kind == "plan_created":
            plan = data["plan"]
            steps = "\n".join(f"{i}. {s.description}" for i, s in enumerate(plan.steps, start=1))
            c.print(Panel(steps, title=f"Plan: {plan.objective}", border_style="blue"))
        elif kind == "step_start":
            c.print(f"\n[bold blue]▶ {data['step'].id}[/bold blue] {data['step'].description}")
        elif kind == "step_done":
            result = data["result"]
            mark = "[green]✓[/green]" if result.success else "[red]✗[/red]"
            c.print(f"  {mark} {len(result.tool_calls)} tool call(s)")
        elif kind == "reflection":
            reflection = data["reflection"]
            for insight in reflection.insights:
                c.print(f"  [magenta]💡 {insight}[/magenta]")
        elif kind == "plan_updated":
            pending = [s.id for s in data["plan"].steps if s.status.value == "pending"]
            c.print(f"  [yellow]plan updated, pending: {', '.join(pending) or 'none'}[/yellow]")


def _repl(session: ChatSession, console: Console) -> None:
    while True:
        try:
            message = console.input("[bold green]> [/bold green]").strip()
        except EOFError:
            break
        if not message:
            continue
        if message.lower() in _EXIT_WORDS:
            break

        try:
            reply = session.send(message)
        except AlertSleuthError as e:
            _print_error(console, e)
            continue
        if reply.text.strip():
            console.print(Panel(Markdown(reply.text), border_style="green"))


def cmd_chat(args, console: Console) -> int:
    settings = _bootstrap(args, need_llm=True)
    repo = _repository(settings)
    storage = FileStorage(settings.data_dir)
    llm = LLMClientFactory.from_settings(settings)

    registry = default_registry()
    registry.init(ToolContext.from_settings(settings, repository=repo))

    session = ChatSession.create(
        repo,
        storage,
        llm,
        registry,
        alert_id=args.alert_id,
        history_id=args.history_id,
        config=settings.agent,
        on_event=_ProgressPrinter(console, verbose=args.verbose),
    )
    console.print(
        Panel(
            f"[bold]{session.alert.title}[/bold]\n"
            f"history: {session.history.id}\n"
            f"tools: {', '.join(registry.enabled_names()) or 'none'}\n\n"
            "[dim]Type /exit to quit.[/dim]",
            title=f"AlertSleuth {__version__}",
            border_style="cyan",
        )
    )

    try:
        _repl(session, console)
    finally:
        registry.close()

    console.print(f"[dim]history saved as {session.history.id}[/dim]")
    return EXIT_OK


# ─────────────────────────────────────────────────────────────────────────────
# Parser + main
# ─────────────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="alertsleuth",
        description="AlertSleuth — investigate security alerts with an LLM agent.",
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show full tool arguments")
    parser.add_argument("--version", action="version", version=f"alertsleuth {__version__}")

    sub = parser.add_subparsers(dest="command", help="Available commands")

    p = sub.add_parser("new", help="Create an alert from a JSON file")
    p.add_argument("file", help="JSON file with the raw alert, or - for stdin")

    p = sub.add_parser("list", help="List alerts")
    p.add_argument("--all", action="store_true", help="Include resolved and merged alerts")

    p = sub.add_parser("show", help="Show one alert")
    p.add_argument("alert_id")
    p.add_argument("--data", action="store_true", help="Also print the raw alert data")

    p = sub.add_parser("resolve", help="Mark an alert as resolved")
    p.add_argument("alert_id")
    p.add_argument(
        "--conclusion",
        default=AlertConclusion.UNAFFECTED.value,
        choices=[c.value for c in AlertConclusion],
        help="Conclusion (default: unaffected)",
    )
    p.add_argument("--note", default="", help="Additional note")

    p = sub.add_parser("merge", help="Mark an alert as a duplicate of another")
    p.add_argument("source_id", help="Alert to merge")
    p.add_argument("target_id", help="Alert it duplicates")

    p = sub.add_parser("unmerge", help="Undo a merge")
    p.add_argument("alert_id")

    p = sub.add_parser("histories", help="List investigations of an alert")
    p.add_argument("alert_id")

    p = sub.add_parser("chat", help="Investigate an alert interactively")
    p.add_argument("alert_id")
    p.add_argument("--history-id", default=None, help="Resume an earlier investigation")

    return parser


_DISPATCH = {
    "new": cmd_new,
    "list": cmd_list,
    "show": cmd_show,
    "resolve": cmd_resolve,
    "merge": cmd_merge,
    "unmerge": cmd_unmerge,
    "histories": cmd_histories,
    "chat": cmd_chat,
}


def _print_error(console: Console, error: BaseException) -> None:
    detail = str(error)
    if error.__cause__ is not None:
        detail += f"\n\n[dim]caused by {type(error.__cause__).__name__}: {error.__cause__}[/dim]"
    console.print(Panel(detail, title=f"[bold]{type(error).__name__}[/bold]", border_style="red"))


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_OK

    console = Console(no_color=args.no_color)
    try:
        return _DISPATCH[args.command](args, console)
    except AlertSleuthError as e:
        _print_error(console, e)
        return EXIT_ERROR
    except KeyboardInterrupt:
        console.print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
