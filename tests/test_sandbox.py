import pytest

from codeloom.services.sandbox import UnsafeCodeError, parse_source, run_in_namespace, run_payload
from codeloom.services.sandbox_runner import adapt_input, execute_source
from codeloom.services.source_analyzer import analyze_source, plan_resolution


def _run_local(source, value, unwrap_result=True):
    plan = plan_resolution(analyze_source(source))
    return run_in_namespace(source, value, plan, unwrap_result=unwrap_result)


def test_entry_function_receives_input():
    result = _run_local("def identity(x):\n    return x\n", {"a": 1})
    assert result["value"] == {"a": 1}
    assert result["strategy"] == "entry_function"


def test_list_input_spreads_over_positional_parameters():
    assert _run_local("def add(a, b):\n    return a + b\n", [2, 3])["value"] == 5


def test_list_input_passed_whole_to_single_parameter():
    assert _run_local("def total(xs):\n    return sum(xs)\n", [2, 3])["value"] == 5


def test_zero_argument_function():
    assert _run_local("def f():\n    return len(input)\n", [1, 2, 3])["value"] == 3


def test_result_binding():
    result = _run_local("result = 42\n", None)
    assert result["value"] == 42
    assert result["strategy"] == "result_binding"


def test_scan_fallback_takes_first_user_binding():
    result = _run_local("import math\ntotal = sum(input)\nsecond = 2\n", [1, 2])
    assert result["value"] == 3
    assert result["strategy"] == "scan_fallback"


def test_nothing_resolvable_yields_none():
    result = _run_local("import math\n", 1)
    assert result["value"] is None
    assert result["strategy"] == "none"


def test_print_goes_to_logs():
    result = _run_local("def f(x):\n    print('seen', x)\n    return x\n", 7)
    assert result["logs"] == ["seen 7"]


def test_sets_become_sorted_lists():
    assert _run_local("def f(x):\n    return {3, 1, 2}\n", None)["value"] == [1, 2, 3]


def test_full_context_when_not_unwrapped():
    result = _run_local("answer = input * 2\n", 3, unwrap_result=False)
    assert result["value"] == {
        "result": 6,
        "strategy": "result_binding",
        "bindings": {"answer": 6},
        "logs": [],
    }


@pytest.mark.parametrize(
    "source",
    [
        "import os\n",
        "from subprocess import run\n",
        "x = ().__class__\n",
        "open('x.txt', 'w')\n",
        "class A:\n    pass\n",
        "async def f():\n    return 1\n",
    ],
)
def test_unsafe_code_rejected(source):
    with pytest.raises(UnsafeCodeError):
        parse_source(source)


def test_run_payload_reports_runtime_error():
    payload = {"source": "def f(x):\n    return 1 / 0\n", "input": 1, "plan": [{"kind": "entry_function", "name": "f"}]}
    result = run_payload(payload)
    assert result["ok"] is False
    assert result["error"]["kind"] == "runtime"
    assert result["error"]["type"] == "ZeroDivisionError"


def test_execute_source_in_child_process():
    outcome = execute_source("def add(a, b):\n    return a + b\n", [2, 3])
    assert outcome.ok
    assert outcome.value == 5
    assert outcome.strategy == "entry_function"
    assert outcome.analysis.entry_function_name == "add"


def test_execute_source_does_not_mutate_caller_input():
    data = [1, 2, 3]
    outcome = execute_source("def f(x):\n    x.append(4)\n    return x\n", data)
    assert outcome.value == [1, 2, 3, 4]
    assert data == [1, 2, 3]


def test_execute_source_times_out():
    outcome = execute_source("while True:\n    pass\n", None, timeout=1.0)
    assert not outcome.ok
    assert outcome.error.kind == "timeout"


def test_execute_source_compile_failure():
    outcome = execute_source("def f(:\n", None)
    assert outcome.error.kind == "compile"


def test_execute_source_unsafe_failure():
    outcome = execute_source("import os\nresult = os.getcwd()\n", None)
    assert outcome.error.kind == "unsafe"
    assert outcome.analysis is None


def test_execute_source_runtime_failure_has_traceback():
    outcome = execute_source("def f(x):\n    return x['missing']\n", {})
    assert outcome.error.kind == "runtime"
    assert "KeyError" in outcome.error.message
    assert "Traceback" in outcome.error.detail


def test_adapt_input_unwraps_text_for_string_code():
    assert adapt_input("def f(s):\n    return s.lower()\n", {"text": "Hi"}) == "Hi"
    assert adapt_input("def f(d):\n    return d\n", {"text": "Hi"}) == {"text": "Hi"}
    assert adapt_input("def f(s):\n    return s.lower()\n", ["Hi"]) == ["Hi"]


def test_execute_source_rejects_unserializable_input():
    outcome = execute_source("result = 1\n", {(1, 2): "a"})
    assert outcome.error.kind == "serialization"
    looped = []
    looped.append(looped)
    assert execute_source("result = 1\n", looped).error.kind == "serialization"
