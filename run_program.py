import argparse
import json
import logging
import sys
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

from rich.console import Console, Group
from rich.json import JSON
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from codeloom.core.settings import get_settings
from codeloom.services import ExecutionError, ProgramOutcome, build_runner, program

console = Console(soft_wrap=False)

EVENT_LABELS: Dict[str, str] = {
    "startup": "Starting",
    "cache_check": "Checking cache",
    "cache_hit": "Cache hit",
    "cache_miss": "Cache miss",
    "cache_error": "Cache unreadable",
    "prompt_ready": "Prompt assembled",
    "llm_io": "Model replied",
    "code_extracted": "Code extracted",
    "execution_start": "Executing",
    "execution_end": "Execution done",
    "validated": "Result validated",
    "persisted": "Program cached",
    "persist_failed": "Cache write failed",
    "finished": "Finished",
}


def _trim(text: str, limit: int = 70) -> str:
    text = text.strip()
    return text if len(text) <= limit else f"{text[: limit - 1]}..."


def _detail_for_event(event: str, payload: Dict[str, Any]) -> str:
    if event == "startup":
        return f"model={payload.get('model')} input={_trim(str(payload.get('input_shape', '')), 50)}"
    if event in {"cache_check", "cache_miss"}:
        return str(payload.get("cache_id") or "")
    if event in {"cache_hit", "persisted"}:
        return str(payload.get("version") or "")
    if event in {"cache_error", "persist_failed"}:
        return _trim(str(payload.get("error", "")))
    if event == "prompt_ready":
        return f"{payload.get('chars', 0)} chars"
    if event == "llm_io":
        return f"{payload.get('elapsed_ms', 0)} ms"
    if event == "code_extracted":
        return f"{payload.get('lines', 0)} lines"
    if event == "execution_end":
        return f"{payload.get('strategy')} in {payload.get('duration_ms', 0)} ms"
    return ""


def _format_event(event: str, payload: Dict[str, Any]) -> str:
    label = EVENT_LABELS.get(event, event)
    if event in {"cache_hit", "persisted", "validated"}:
        return f"[green]✔ {label}[/]"
    if event in {"cache_error", "persist_failed"}:
        return f"[yellow]! {label}[/] {_trim(str(payload.get('error', '')), 50)}"
    if event == "llm_io":
        return f"[blue]LLM[/] {payload.get('model')}"
    if event == "finished":
        return "[bold green]Done[/]"
    return f"[dim]{label}[/]"


def _build_progress_panel(state: Dict[str, Any]) -> Panel:
    table = Table.grid(padding=(0, 2))
    table.add_column(justify="right", style="cyan", no_wrap=True)
    table.add_column(justify="left", style="bold white")
    table.add_row("Phase", state.get("phase", "-"))
    table.add_row("Detail", state.get("detail") or "-")
    return Panel(table, title="Progress", border_style="bright_magenta")


def _build_log_panel(logs: Deque[str]) -> Panel:
    if not logs:
        return Panel(Text("Waiting...", style="dim"), title="Events", border_style="grey50")
    body = Text()
    for idx, raw in enumerate(logs):
        if idx:
            body.append("\n")
        body.append_text(Text.from_markup(raw))
    return Panel(body, title="Events", border_style="grey50")


def _render(state: Dict[str, Any], logs: Deque[str]) -> Group:
    return Group(_build_progress_panel(state), _build_log_panel(logs))


def _parse_json_arg(raw: Optional[str], name: str) -> Any:
    if raw is None:
        return None
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON for {name}: {exc}") from exc


def _parse_expect(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    if raw.lstrip().startswith("{") or raw.startswith("@"):
        return _parse_json_arg(raw, "--expect")
    return raw


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Generate and run a program from a natural-language task.")
    parser.add_argument("prompt")
    parser.add_argument("input", nargs="?", default=None, help="JSON input value, or @path to a JSON file")
    parser.add_argument("--model", default="default")
    parser.add_argument("--cache-id", default=None)
    parser.add_argument("--force", action="store_true", help="Regenerate even when a cached program exists")
    parser.add_argument("--expect", default=None, help="Type hint (e.g. 'number', 'string[]') or JSON schema")
    parser.add_argument("--examples", default=None, help='JSON list of {"input": ..., "output": ...}')
    parser.add_argument("--timeout", type=float, default=None, help="Sandbox timeout in seconds")
    parser.add_argument("--full", action="store_true", help="Return the full execution context")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.debug or settings.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s", handlers=[RichHandler(console=console)])

    options: Dict[str, Any] = {}
    if args.force:
        options["force_regenerate"] = True
    if args.timeout is not None:
        options["sandbox_timeout"] = args.timeout
    spec = (
        program(args.prompt)
        .with_model(args.model)
        .with_options(options)
        .with_cache_id(args.cache_id)
        .with_unwrap_result(not args.full)
        .with_examples(_parse_json_arg(args.examples, "--examples") or [])
        .with_expected_shape(_parse_expect(args.expect))
    )
    value = _parse_json_arg(args.input, "input")

    state: Dict[str, Any] = {"phase": "Waiting", "detail": ""}
    event_log: Deque[str] = deque(maxlen=10)
    outcome: Optional[ProgramOutcome] = None
    error: Optional[Exception] = None

    with Live(_render(state, event_log), refresh_per_second=8, console=console) as live:
        def handle_progress(event: str, payload: Dict[str, Any]) -> None:
            state["phase"] = EVENT_LABELS.get(event, event)
            detail = _detail_for_event(event, payload)
            if detail:
                state["detail"] = detail
            event_log.appendleft(_format_event(event, payload))
            live.update(_render(state, event_log))

        runner = build_runner(settings, progress_callback=handle_progress)
        try:
            outcome = runner.run(spec, value)
        except Exception as exc:  # noqa: BLE001
            error = exc
            state["phase"] = "Failed"
            state["detail"] = _trim(str(exc))
            event_log.appendleft(f"[bold red]Error[/] {_trim(str(exc), 60)}")
            live.update(_render(state, event_log))

    if error is not None:
        console.print(Panel(Text(str(error)), title=type(error).__name__, border_style="red"))
        source = getattr(error, "source", "") or spec.last_generated_source
        if source:
            console.print(Panel(Syntax(source, "python"), title="Source", border_style="red"))
        if isinstance(error, ExecutionError) and error.diff:
            console.print(JSON.from_data(error.diff, indent=2))
        raise SystemExit(1)

    summary = Table.grid(padding=(0, 2))
    summary.add_column(style="cyan", justify="right", no_wrap=True)
    summary.add_column(style="bold white")
    summary.add_row("From cache", "yes" if outcome.from_cache else "no")
    summary.add_row("Strategy", str(outcome.strategy or "-"))
    if outcome.version_id:
        summary.add_row("Version", outcome.version_id)
    console.print(Panel(summary, title="Result", border_style="green"))
    console.print(Panel(Syntax(outcome.source, "python"), title="Source", border_style="cyan"))
    for line in outcome.logs:
        console.print(f"[dim]log:[/] {line}")
    console.print(JSON.from_data(outcome.value, indent=2))


if __name__ == "__main__":
    sys.exit(main())
