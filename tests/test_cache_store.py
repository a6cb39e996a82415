import json
import re

import pytest

from codeloom.schemas.program import CachedProgramRecord
from codeloom.services.cache_store import (
    CacheMissError,
    CacheStoreError,
    FileProgramStore,
    ProgramStore,
    new_version_id,
)


def _record(source="result = 1"):
    return CachedProgramRecord(source=source, prompt="p", model="mock", metadata={"k": 1})


def test_save_writes_documented_layout(tmp_path):
    store = FileProgramStore(tmp_path)
    version = store.save("program", "adder", _record())
    item_dir = tmp_path / "programs" / "adder"
    document = json.loads((item_dir / f"{version}.json").read_text(encoding="utf-8"))
    assert set(document) == {"source", "prompt", "createdAt", "model", "_metadata"}
    assert document["_metadata"] == {"k": 1}
    assert document["createdAt"]
    assert json.loads((item_dir / "latest.json").read_text(encoding="utf-8")) == {"version": version}


def test_version_id_format():
    assert re.fullmatch(r"\d{8}T\d{12}Z-[0-9a-f]{6}", new_version_id())


def test_load_latest_and_specific_version(tmp_path):
    store = FileProgramStore(tmp_path)
    first = store.save("program", "adder", _record("result = 1"))
    second = store.save("program", "adder", _record("result = 2"))
    assert set(store.list_versions("program", "adder")) == {first, second}
    latest = store.load("program", "adder")
    assert latest.source == "result = 2"
    assert latest.version == second
    assert store.load("program", "adder", first).source == "result = 1"


def test_reads_camel_case_documents(tmp_path):
    item_dir = tmp_path / "programs" / "legacy"
    item_dir.mkdir(parents=True)
    (item_dir / "v1.json").write_text(
        json.dumps({"source": "x = 1", "prompt": "p", "createdAt": "2024-01-01T00:00:00Z", "model": "m", "_metadata": {}}),
        encoding="utf-8",
    )
    (item_dir / "latest.json").write_text(json.dumps({"version": "v1"}), encoding="utf-8")
    record = FileProgramStore(tmp_path).load("program", "legacy")
    assert record.created_at == "2024-01-01T00:00:00Z"
    assert record.version == "v1"


def test_missing_entries_raise_cache_miss(tmp_path):
    store = FileProgramStore(tmp_path)
    with pytest.raises(CacheMissError):
        store.load("program", "nope")
    store.save("program", "adder", _record())
    with pytest.raises(CacheMissError):
        store.load("program", "adder", "19700101T000000000000Z-000000")


def test_corrupt_document_raises_store_error(tmp_path):
    store = FileProgramStore(tmp_path)
    version = store.save("program", "adder", _record())
    (tmp_path / "programs" / "adder" / f"{version}.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(CacheStoreError):
        store.load("program", "adder")


@pytest.mark.parametrize("item_id", ["../escape", "a/b", "..", ""])
def test_invalid_ids_rejected(tmp_path, item_id):
    with pytest.raises(ValueError):
        FileProgramStore(tmp_path).save("program", item_id, _record())


def test_delete_and_list(tmp_path):
    store = FileProgramStore(tmp_path)
    assert store.list_ids("program") == []
    store.save("program", "b", _record())
    store.save("program", "a", _record())
    assert store.list_ids("program") == ["a", "b"]
    assert store.delete("program", "a") is True
    assert store.delete("program", "a") is False
    assert store.list_ids("program") == ["b"]


def test_delete_latest_version_repoints(tmp_path):
    store = FileProgramStore(tmp_path)
    first = store.save("program", "adder", _record("result = 1"))
    second = store.save("program", "adder", _record("result = 2"))
    assert store.delete_version("program", "adder", second) is True
    assert store.list_versions("program", "adder") == [first]
    assert store.load("program", "adder").version == first
    assert store.delete_version("program", "adder", first) is True
    with pytest.raises(CacheMissError):
        store.load("program", "adder")


def test_file_store_satisfies_protocol(tmp_path):
    assert isinstance(FileProgramStore(tmp_path), ProgramStore)
