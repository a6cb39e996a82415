import pytest

from codeloom.services.sandbox import EntryFunction, ResultBinding, ScanFallback
from codeloom.services.source_analyzer import analyze_source, plan_resolution


def test_detects_function_and_result_bindings():
    source = "def solve(x):\n    return x * 2\n\nresult = solve(input)\n"
    analysis = analyze_source(source)
    assert analysis.entry_function_name == "solve"
    assert analysis.candidate_result_bindings == ["result"]
    assert analysis.has_explicit_return is True


def test_lambda_binding_is_an_entry_function():
    analysis = analyze_source("double = lambda x: x * 2\n")
    assert analysis.entry_function_name == "double"
    assert analysis.has_explicit_return is False


def test_first_entry_in_source_order():
    source = "shout = lambda s: s.upper()\n\ndef whisper(s):\n    return s.lower()\n"
    assert analyze_source(source).entry_function_name == "shout"


def test_result_names_cover_assignment_forms():
    source = (
        "count, rest = 1, 2\n"
        "output: int = 3\n"
        "value = 0\n"
        "value += 1\n"
        "Word_Frequency = {}\n"
        "other = 5\n"
    )
    analysis = analyze_source(source)
    assert analysis.entry_function_name is None
    assert analysis.candidate_result_bindings == ["count", "output", "value", "Word_Frequency"]


def test_nested_assignments_are_not_candidates():
    source = "def f(x):\n    result = x\n    return result\n"
    assert analyze_source(source).candidate_result_bindings == []


def test_syntax_error_propagates():
    with pytest.raises(SyntaxError):
        analyze_source("def broken(:\n    pass")


def test_plan_prefers_entry_function():
    analysis = analyze_source("def f(x):\n    return x\nresult = 1\n")
    assert plan_resolution(analysis) == [EntryFunction("f"), ResultBinding("result"), ScanFallback()]


def test_plan_without_candidates_is_scan_only():
    assert plan_resolution(analyze_source("total = 1\n")) == [ScanFallback()]
