"""Runtime for generated programs.

Standard-library only: the host imports it for the safety checks and the
resolution strategies, and ``sandbox_runner`` runs it as a script in a fresh
interpreter (``python -I sandbox.py payload.json result.json``).
"""
from __future__ import annotations

import ast
import builtins
import inspect
import json
import math
import re
import sys
import time
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple


class SandboxError(RuntimeError):
    """Base sandbox execution error."""


class UnsafeCodeError(SandboxError):
    """Raised when code fails safety checks."""


class ResultSerializationError(SandboxError):
    """Raised when a resolved value cannot be turned into plain data."""


ALLOWED_IMPORTS = {
    "bisect",
    "collections",
    "copy",
    "datetime",
    "decimal",
    "fractions",
    "functools",
    "heapq",
    "itertools",
    "json",
    "math",
    "operator",
    "random",
    "re",
    "statistics",
    "string",
    "textwrap",
    "time",
    "unicodedata",
}
DISALLOWED_CALLS = {
    "__import__",
    "breakpoint",
    "compile",
    "delattr",
    "eval",
    "exec",
    "exit",
    "globals",
    "locals",
    "open",
    "quit",
    "setattr",
    "vars",
}
DISALLOWED_ATTRIBUTES_PREFIX = "__"
PROGRAM_FILENAME = "<program>"
_TRACEBACK_LIMIT = 4000


def validate_tree(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                module = (alias.name or "").split(".")[0]
                if module not in ALLOWED_IMPORTS:
                    raise UnsafeCodeError(f"Import of module '{alias.name}' is not allowed.")
        elif isinstance(node, ast.ImportFrom):
            module = (node.module or "").split(".")[0]
            if node.level or module not in ALLOWED_IMPORTS:
                raise UnsafeCodeError(f"Import of module '{node.module}' is not allowed.")
        elif isinstance(node, ast.Call):
            func = node.func
            if isinstance(func, ast.Name) and func.id in DISALLOWED_CALLS:
                raise UnsafeCodeError(f"Call to '{func.id}' is not permitted in sandboxed code.")
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith(DISALLOWED_ATTRIBUTES_PREFIX):
                raise UnsafeCodeError("Access to dunder attributes is not permitted.")
        elif isinstance(node, (ast.ClassDef, ast.AsyncFunctionDef)):
            raise UnsafeCodeError("Defining classes or async functions is not supported in sandbox.")


def parse_source(source: str) -> ast.Module:
    tree = ast.parse(source, filename=PROGRAM_FILENAME, mode="exec")
    validate_tree(tree)
    return tree


def _restricted_import(name: str, globals=None, locals=None, fromlist=(), level: int = 0):
    if level or name.split(".")[0] not in ALLOWED_IMPORTS:
        raise ImportError(f"Import of module '{name}' is not allowed.")
    return builtins.__import__(name, globals, locals, fromlist, level)


def _safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    if name.startswith(DISALLOWED_ATTRIBUTES_PREFIX):
        raise AttributeError("Access to dunder attributes is not permitted.")
    return getattr(obj, name, *default)


def _safe_hasattr(obj: Any, name: str) -> bool:
    if name.startswith(DISALLOWED_ATTRIBUTES_PREFIX):
        return False
    return hasattr(obj, name)


def _safe_builtins(log: Callable[..., None]) -> Dict[str, Any]:
    allowed = {
        "abs",
        "all",
        "any",
        "bin",
        "bool",
        "callable",
        "chr",
        "dict",
        "divmod",
        "enumerate",
        "filter",
        "float",
        "format",
        "frozenset",
        "hash",
        "hex",
        "int",
        "isinstance",
        "issubclass",
        "iter",
        "len",
        "list",
        "map",
        "max",
        "min",
        "next",
        "oct",
        "ord",
        "pow",
        "range",
        "repr",
        "reversed",
        "round",
        "set",
        "slice",
        "sorted",
        "str",
        "sum",
        "tuple",
        "type",
        "zip",
        "ArithmeticError",
        "AssertionError",
        "AttributeError",
        "Exception",
        "ImportError",
        "IndexError",
        "KeyError",
        "LookupError",
        "NotImplementedError",
        "RuntimeError",
        "StopIteration",
        "TypeError",
        "ValueError",
        "ZeroDivisionError",
    }
    safe = {name: getattr(builtins, name) for name in allowed}
    safe.update(
        {
            "__import__": _restricted_import,
            "getattr": _safe_getattr,
            "hasattr": _safe_hasattr,
            "print": log,
        }
    )
    return safe


def build_namespace(value: Any, logs: List[str]) -> Dict[str, Any]:
    """Fresh globals for one execution: plain-data input plus a fixed capability set."""

    def log(*args: Any, sep: str = " ", **_: Any) -> None:
        logs.append(sep.join(str(arg) for arg in args))

    return {
        "__builtins__": _safe_builtins(log),
        "__name__": "__program__",
        "input": value,
        "data": value,
        "math": math,
        "json": json,
        "re": re,
        "now": time.monotonic,
        "log": log,
    }


CAPABILITY_NAMES = frozenset(build_namespace(None, []))


def _call_entry(func: Callable[..., Any], value: Any) -> Any:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return func(value)
    params = list(signature.parameters.values())
    if not params:
        return func()
    positional = [
        p for p in params if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    required = [p for p in positional if p.default is inspect.Parameter.empty]
    takes_varargs = any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params)
    if (
        isinstance(value, list)
        and len(required) > 1
        and len(required) <= len(value)
        and (takes_varargs or len(value) <= len(positional))
    ):
        return func(*value)
    return func(value)


@dataclass(frozen=True)
class EntryFunction:
    name: str
    kind: ClassVar[str] = "entry_function"

    def resolve(self, namespace: Dict[str, Any], value: Any) -> Tuple[bool, Any]:
        func = namespace.get(self.name)
        if not callable(func):
            return False, None
        return True, _call_entry(func, value)

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind, "name": self.name}


@dataclass(frozen=True)
class ResultBinding:
    name: str
    kind: ClassVar[str] = "result_binding"

    def resolve(self, namespace: Dict[str, Any], value: Any) -> Tuple[bool, Any]:
        if self.name not in namespace:
            return False, None
        return True, namespace[self.name]

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind, "name": self.name}


@dataclass(frozen=True)
class ScanFallback:
    kind: ClassVar[str] = "scan_fallback"

    def resolve(self, namespace: Dict[str, Any], value: Any) -> Tuple[bool, Any]:
        bindings = user_bindings(namespace)
        if not bindings:
            return False, None
        return True, next(iter(bindings.values()))

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind}


Strategy = EntryFunction | ResultBinding | ScanFallback


def strategy_from_payload(payload: Dict[str, Any]) -> Strategy:
    kind = payload.get("kind")
    if kind == EntryFunction.kind:
        return EntryFunction(str(payload["name"]))
    if kind == ResultBinding.kind:
        return ResultBinding(str(payload["name"]))
    if kind == ScanFallback.kind:
        return ScanFallback()
    raise ValueError(f"Unknown resolution strategy: {kind!r}")


def user_bindings(namespace: Dict[str, Any]) -> Dict[str, Any]:
    """Top-level values created by the program, in creation order."""

    bindings: Dict[str, Any] = {}
    for name, candidate in namespace.items():
        if name in CAPABILITY_NAMES or name.startswith("_"):
            continue
        if callable(candidate) or inspect.ismodule(candidate):
            continue
        bindings[name] = candidate
    return bindings


def _plain_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        try:
            return sorted(obj)
        except TypeError:
            return list(obj)
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "__iter__"):
        return list(obj)
    return str(obj)


def to_plain(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value, ensure_ascii=False, default=_plain_default))
    except (TypeError, ValueError) as exc:
        raise ResultSerializationError(f"Result is not representable as plain data: {exc}") from exc


def run_in_namespace(
    source: str,
    value: Any,
    plan: Sequence[Strategy],
    unwrap_result: bool = True,
) -> Dict[str, Any]:
    tree = parse_source(source)
    logs: List[str] = []
    namespace = build_namespace(value, logs)
    started = time.perf_counter()
    exec(compile(tree, PROGRAM_FILENAME, "exec"), namespace, namespace)

    strategy_name = "none"
    result: Any = None
    for strategy in plan:
        found, candidate = strategy.resolve(namespace, value)
        if found:
            strategy_name, result = strategy.kind, candidate
            break

    duration_ms = (time.perf_counter() - started) * 1000.0
    plain_result = to_plain(result)
    if unwrap_result:
        output: Any = plain_result
    else:
        output = {
            "result": plain_result,
            "strategy": strategy_name,
            "bindings": to_plain(user_bindings(namespace)),
            "logs": list(logs),
        }
    return {
        "ok": True,
        "value": output,
        "strategy": strategy_name,
        "logs": logs,
        "duration_ms": round(duration_ms, 3),
    }


def _failure(kind: str, exc: BaseException) -> Dict[str, Any]:
    trace = traceback.format_exc()
    if len(trace) > _TRACEBACK_LIMIT:
        trace = trace[-_TRACEBACK_LIMIT:]
    return {
        "ok": False,
        "error": {
            "kind": kind,
            "type": type(exc).__name__,
            "message": str(exc),
            "traceback": trace,
        },
    }


def run_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    plan = [strategy_from_payload(item) for item in payload.get("plan") or []]
    try:
        return run_in_namespace(
            payload.get("source") or "",
            payload.get("input"),
            plan,
            unwrap_result=bool(payload.get("unwrap_result", True)),
        )
    except SyntaxError as exc:
        return _failure("compile", exc)
    except UnsafeCodeError as exc:
        return _failure("unsafe", exc)
    except ResultSerializationError as exc:
        return _failure("serialization", exc)
    except (Exception, SystemExit) as exc:  # noqa: BLE001
        return _failure("runtime", exc)


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        sys.stderr.write("usage: sandbox.py PAYLOAD_JSON RESULT_JSON\n")
        return 2
    payload_path, result_path = Path(args[0]), Path(args[1])
    payload = json.loads(payload_path.read_text(encoding="utf-8"))
    result = run_payload(payload)
    result_path.write_text(json.dumps(result, ensure_ascii=False), encoding="utf-8")
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    sys.exit(main())
