from __future__ import annotations

import json
import os
import secrets
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from ..schemas.program import CachedProgramRecord

LATEST_POINTER = "latest.json"


class CacheMissError(LookupError):
    """No stored program for the requested id or version."""


class CacheStoreError(RuntimeError):
    """A stored document exists but could not be read or written."""


@runtime_checkable
class ProgramStore(Protocol):
    """Versioned storage of generated programs, addressed by ``(kind, item_id)``."""

    def save(self, kind: str, item_id: str, record: CachedProgramRecord) -> str:
        ...

    def load(self, kind: str, item_id: str, version: Optional[str] = None) -> CachedProgramRecord:
        ...

    def list_versions(self, kind: str, item_id: str) -> List[str]:
        ...

    def list_ids(self, kind: str) -> List[str]:
        ...

    def delete(self, kind: str, item_id: str) -> bool:
        ...

    def delete_version(self, kind: str, item_id: str, version: str) -> bool:
        ...


def new_version_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{stamp}-{secrets.token_hex(3)}"


def _check_name(value: str, label: str) -> str:
    if not value or "/" in value or "\\" in value or ".." in value or os.sep in value:
        raise ValueError(f"Invalid {label}: {value!r}")
    return value


class FileProgramStore:
    """JSON files on disk.

    Directory structure:
        {root}/{kind}s/{item_id}/
            {version_id}.json  - {"source", "prompt", "createdAt", "model", "_metadata"}
            latest.json        - {"version": "<version_id>"}

    Documents are written to a temp file and moved into place, so readers never
    see partial JSON. Concurrent saves of one id race on ``latest.json``; the
    last writer wins.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _item_dir(self, kind: str, item_id: str) -> Path:
        return self.root / f"{_check_name(kind, 'kind')}s" / _check_name(item_id, "item id")

    def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise CacheMissError(f"No cached document at {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CacheStoreError(f"Unreadable cache document {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CacheStoreError(f"Cache document {path} is not a JSON object")
        return data

    def save(self, kind: str, item_id: str, record: CachedProgramRecord) -> str:
        item_dir = self._item_dir(kind, item_id)
        version = new_version_id()
        document = record.to_document()
        if not document.get("createdAt"):
            document["createdAt"] = datetime.now(timezone.utc).isoformat()
        try:
            self._write_json(item_dir / f"{version}.json", document)
            self._write_json(item_dir / LATEST_POINTER, {"version": version})
        except OSError as exc:
            raise CacheStoreError(f"Failed to persist {kind} '{item_id}': {exc}") from exc
        return version

    def latest_version(self, kind: str, item_id: str) -> str:
        pointer = self._read_json(self._item_dir(kind, item_id) / LATEST_POINTER)
        version = pointer.get("version")
        if not isinstance(version, str) or not version:
            raise CacheStoreError(f"Malformed latest pointer for {kind} '{item_id}'")
        return version

    def load(self, kind: str, item_id: str, version: Optional[str] = None) -> CachedProgramRecord:
        version = _check_name(version, "version") if version else self.latest_version(kind, item_id)
        data = self._read_json(self._item_dir(kind, item_id) / f"{version}.json")
        try:
            record = CachedProgramRecord.model_validate(data)
        except ValidationError as exc:
            raise CacheStoreError(f"Invalid cache document for {kind} '{item_id}': {exc}") from exc
        record.version = version
        return record

    def list_versions(self, kind: str, item_id: str) -> List[str]:
        item_dir = self._item_dir(kind, item_id)
        if not item_dir.is_dir():
            return []
        return sorted(
            path.stem
            for path in item_dir.glob("*.json")
            if path.name != LATEST_POINTER and not path.name.startswith(".")
        )

    def list_ids(self, kind: str) -> List[str]:
        kind_dir = self.root / f"{_check_name(kind, 'kind')}s"
        if not kind_dir.is_dir():
            return []
        return sorted(path.name for path in kind_dir.iterdir() if path.is_dir())

    def delete(self, kind: str, item_id: str) -> bool:
        item_dir = self._item_dir(kind, item_id)
        if not item_dir.is_dir():
            return False
        shutil.rmtree(item_dir)
        return True

    def delete_version(self, kind: str, item_id: str, version: str) -> bool:
        path = self._item_dir(kind, item_id) / f"{_check_name(version, 'version')}.json"
        if not path.exists():
            return False
        path.unlink()
        remaining = self.list_versions(kind, item_id)
        pointer = self._item_dir(kind, item_id) / LATEST_POINTER
        if not remaining:
            pointer.unlink(missing_ok=True)
        else:
            try:
                current = self.latest_version(kind, item_id)
            except (CacheMissError, CacheStoreError):
                current = None
            if current == version or current is None:
                self._write_json(pointer, {"version": remaining[-1]})
        return True
