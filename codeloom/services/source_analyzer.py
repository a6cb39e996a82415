from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .sandbox import PROGRAM_FILENAME, EntryFunction, ResultBinding, ScanFallback, Strategy

RESULT_NAME_RE = re.compile(r"result|output|return|response|answer|value|frequency|count", re.IGNORECASE)


@dataclass
class AnalysisResult:
    entry_function_name: Optional[str] = None
    candidate_result_bindings: List[str] = field(default_factory=list)
    has_explicit_return: bool = False


def _target_names(target: ast.AST) -> Iterator[str]:
    if isinstance(target, ast.Name):
        yield target.id
    elif isinstance(target, (ast.Tuple, ast.List)):
        for element in target.elts:
            yield from _target_names(element)
    elif isinstance(target, ast.Starred):
        yield from _target_names(target.value)


def _assigned_names(node: ast.stmt) -> Iterator[str]:
    if isinstance(node, ast.Assign):
        for target in node.targets:
            yield from _target_names(target)
    elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
        yield from _target_names(node.target)


def _lambda_binding(node: ast.stmt) -> Optional[str]:
    if isinstance(node, ast.Assign) and isinstance(node.value, ast.Lambda):
        for target in node.targets:
            if isinstance(target, ast.Name):
                return target.id
    if isinstance(node, ast.AnnAssign) and isinstance(node.value, ast.Lambda) and isinstance(node.target, ast.Name):
        return node.target.id
    return None


def analyze_tree(tree: ast.Module) -> AnalysisResult:
    analysis = AnalysisResult()
    for node in tree.body:
        if analysis.entry_function_name is None:
            if isinstance(node, ast.FunctionDef):
                analysis.entry_function_name = node.name
            else:
                analysis.entry_function_name = _lambda_binding(node)
        for name in _assigned_names(node):
            if RESULT_NAME_RE.search(name) and name not in analysis.candidate_result_bindings:
                analysis.candidate_result_bindings.append(name)
    analysis.has_explicit_return = any(
        isinstance(node, ast.Return) and node.value is not None for node in ast.walk(tree)
    )
    return analysis


def analyze_source(source: str) -> AnalysisResult:
    """Classify entry points and result bindings of generated source.

    Heuristics over unconstrained model output: the first top-level ``def``
    (else the first top-level ``name = lambda``), every top-level binding whose
    name looks like a result, and whether any ``return <expr>`` exists.
    Raises ``SyntaxError`` for unparsable source.
    """

    return analyze_tree(ast.parse(source, filename=PROGRAM_FILENAME, mode="exec"))


def plan_resolution(analysis: AnalysisResult) -> List[Strategy]:
    """Ordered strategies; an entry function wins over result-named bindings."""

    plan: List[Strategy] = []
    if analysis.entry_function_name:
        plan.append(EntryFunction(analysis.entry_function_name))
    plan.extend(ResultBinding(name) for name in analysis.candidate_result_bindings)
    plan.append(ScanFallback())
    return plan
