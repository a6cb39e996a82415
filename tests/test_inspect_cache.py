import importlib.util
import json
from pathlib import Path

from rich.console import Console

from codeloom.schemas.program import CachedProgramRecord
from codeloom.services.cache_store import FileProgramStore

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "inspect_cache.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("inspect_cache", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _record(source):
    return CachedProgramRecord(source=source, prompt="p", model="mock")


def test_list_shows_pointer_version_not_newest_file(tmp_path, monkeypatch):
    store = FileProgramStore(tmp_path)
    first = store.save("program", "adder", _record("result = 1"))
    second = store.save("program", "adder", _record("result = 2"))
    pointer = tmp_path / "programs" / "adder" / "latest.json"
    pointer.write_text(json.dumps({"version": first}), encoding="utf-8")

    script = _load_script()
    console = Console(record=True, width=200)
    monkeypatch.setattr(script, "console", console)
    assert script.main(["--root", str(tmp_path), "list"]) == 0
    text = console.export_text()
    assert first in text
    assert second not in text


def test_list_marks_ids_without_pointer(tmp_path, monkeypatch):
    store = FileProgramStore(tmp_path)
    store.save("program", "adder", _record("result = 1"))
    (tmp_path / "programs" / "adder" / "latest.json").unlink()

    script = _load_script()
    console = Console(record=True, width=200)
    monkeypatch.setattr(script, "console", console)
    assert script.main(["--root", str(tmp_path), "list"]) == 0
    assert "adder" in console.export_text()
