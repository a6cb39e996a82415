import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from codeloom.core.settings import get_settings
from codeloom.services import CacheMissError, CacheStoreError, FileProgramStore
from codeloom.services.program_runner import PROGRAM_KIND

console = Console()


def _latest(store: FileProgramStore, item_id: str) -> str:
    try:
        return store.latest_version(PROGRAM_KIND, item_id)
    except (CacheMissError, CacheStoreError):
        return "-"


def cmd_list(store: FileProgramStore, args: argparse.Namespace) -> int:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("id", style="magenta")
    table.add_column("versions", justify="right")
    table.add_column("latest")
    for item_id in store.list_ids(PROGRAM_KIND):
        versions = store.list_versions(PROGRAM_KIND, item_id)
        table.add_row(item_id, str(len(versions)), _latest(store, item_id))
    console.print(table)
    return 0


def cmd_versions(store: FileProgramStore, args: argparse.Namespace) -> int:
    for version in store.list_versions(PROGRAM_KIND, args.id):
        console.print(version)
    return 0


def cmd_info(store: FileProgramStore, args: argparse.Namespace) -> int:
    record = store.load(PROGRAM_KIND, args.id, args.version)
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan", justify="right")
    table.add_column(style="bold white")
    table.add_row("version", record.version or "-")
    table.add_row("model", record.model or "-")
    table.add_row("created", record.created_at or "-")
    table.add_row("prompt", record.prompt or "-")
    table.add_row("metadata", json.dumps(record.metadata, ensure_ascii=False))
    console.print(table)
    return 0


def cmd_show(store: FileProgramStore, args: argparse.Namespace) -> int:
    record = store.load(PROGRAM_KIND, args.id, args.version)
    console.print(Syntax(record.source, "python", line_numbers=True))
    return 0


def cmd_export(store: FileProgramStore, args: argparse.Namespace) -> int:
    record = store.load(PROGRAM_KIND, args.id, args.version)
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(record.source.rstrip("\n") + "\n", encoding="utf-8")
    console.print(f"wrote {out}")
    return 0


def cmd_delete(store: FileProgramStore, args: argparse.Namespace) -> int:
    if args.version:
        deleted = store.delete_version(PROGRAM_KIND, args.id, args.version)
    else:
        deleted = store.delete(PROGRAM_KIND, args.id)
    if not deleted:
        console.print(f"[yellow]nothing to delete for {args.id}[/]")
        return 1
    console.print(f"[green]deleted[/] {args.id}{'@' + args.version if args.version else ''}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect cached programs.")
    parser.add_argument("--root", default=None, help="Cache root (defaults to CODELOOM_STORE_ROOT)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list").set_defaults(func=cmd_list)
    versions = sub.add_parser("versions")
    versions.add_argument("id")
    versions.set_defaults(func=cmd_versions)
    for name, func in (("info", cmd_info), ("show", cmd_show), ("delete", cmd_delete)):
        command = sub.add_parser(name)
        command.add_argument("id")
        command.add_argument("--version", default=None)
        command.set_defaults(func=func)
    export = sub.add_parser("export")
    export.add_argument("id")
    export.add_argument("output")
    export.add_argument("--version", default=None)
    export.set_defaults(func=cmd_export)
    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    store = FileProgramStore(Path(args.root) if args.root else get_settings().store_root)
    try:
        return args.func(store, args)
    except (CacheMissError, CacheStoreError, ValueError) as exc:
        console.print(f"[red]{exc}[/]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
