from __future__ import annotations

import json
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from . import sandbox
from .input_profile import sanitize_input
from .source_analyzer import AnalysisResult, analyze_tree, plan_resolution

DEFAULT_TIMEOUT_S = 3.0
SANDBOX_SCRIPT = Path(sandbox.__file__).resolve()
_STRING_METHOD_HINTS = (".replace(", ".lower(", ".split(", ".strip(")


@dataclass
class SandboxFailure:
    kind: str
    message: str
    detail: str = ""


@dataclass
class ExecutionOutcome:
    """Either a resolved ``value`` or an ``error``, with the source that produced it."""

    source: str
    value: Any = None
    error: Optional[SandboxFailure] = None
    strategy: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    duration_ms: float = 0.0
    analysis: Optional[AnalysisResult] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def adapt_input(source: str, value: Any) -> Any:
    """Pass ``value['text']`` to code that only manipulates strings."""

    if not isinstance(value, Mapping) or not isinstance(value.get("text"), str):
        return value
    if any(hint in source for hint in _STRING_METHOD_HINTS):
        return value["text"]
    return value


def _failure(source: str, kind: str, message: str, detail: str = "", **extra: Any) -> ExecutionOutcome:
    return ExecutionOutcome(source=source, error=SandboxFailure(kind=kind, message=message, detail=detail), **extra)


def execute_source(
    source: str,
    value: Any,
    timeout: float = DEFAULT_TIMEOUT_S,
    unwrap_result: bool = True,
) -> ExecutionOutcome:
    """Compile, analyze and run ``source`` against ``value`` in a fresh interpreter."""

    try:
        tree = sandbox.parse_source(source)
        compile(tree, sandbox.PROGRAM_FILENAME, "exec")
    except SyntaxError as exc:
        location = f" (line {exc.lineno})" if exc.lineno else ""
        return _failure(source, "compile", f"{exc.msg}{location}")
    except sandbox.UnsafeCodeError as exc:
        return _failure(source, "unsafe", str(exc))

    try:
        plain_input = sanitize_input(value)
    except (TypeError, ValueError) as exc:
        return _failure(source, "serialization", f"Input is not representable as plain data: {exc}")

    analysis = analyze_tree(tree)
    payload: Dict[str, Any] = {
        "source": source,
        "input": plain_input,
        "plan": [strategy.to_payload() for strategy in plan_resolution(analysis)],
        "unwrap_result": unwrap_result,
    }

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        p_payload = tmp / "payload.json"
        p_result = tmp / "result.json"
        p_payload.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

        cmd = [sys.executable, "-I", str(SANDBOX_SCRIPT), str(p_payload), str(p_result)]
        try:
            proc = subprocess.run(
                cmd,
                cwd=tmpdir,
                capture_output=True,
                text=True, encoding="utf-8", errors="replace", timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return _failure(
                source,
                "timeout",
                f"Execution timed out after {timeout}s",
                analysis=analysis,
            )

        stderr = (proc.stderr or "").strip()
        if not p_result.exists():
            return _failure(
                source,
                "crash",
                f"Sandbox exited with code {proc.returncode} without a result",
                detail=stderr,
                analysis=analysis,
            )
        result = json.loads(p_result.read_text(encoding="utf-8"))

    if not result.get("ok"):
        error = result.get("error") or {}
        message = f"{error.get('type', 'Error')}: {error.get('message', '')}".strip()
        return _failure(
            source,
            error.get("kind", "runtime"),
            message,
            detail=error.get("traceback", ""),
            analysis=analysis,
        )
    return ExecutionOutcome(
        source=source,
        value=result.get("value"),
        strategy=result.get("strategy"),
        logs=list(result.get("logs") or []),
        duration_ms=float(result.get("duration_ms") or 0.0),
        analysis=analysis,
    )
