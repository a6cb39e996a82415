import pytest

from codeloom.services.errors import ConfigError
from codeloom.services.program_spec import Example, ProgramSpec, program


def test_builders_return_new_specs():
    base = program("count words")
    derived = base.with_model("mock").with_options({"timeout": 1}).with_cache_id("wc")
    assert base.model is None
    assert base.options == {}
    assert base.cache_id is None
    assert derived.model == "mock"
    assert derived.options == {"timeout": 1}
    assert derived.cache_id == "wc"


def test_options_merge_without_sharing():
    first = program("p").with_options({"a": 1})
    second = first.with_options({"b": 2})
    assert first.options == {"a": 1}
    assert second.options == {"a": 1, "b": 2}


def test_examples_accept_pairs_and_mappings():
    spec = program("p").with_examples([(1, 2), {"input": 3, "output": 4}, Example(5, 6)])
    assert spec.examples == (Example(1, 2), Example(3, 4), Example(5, 6))
    with pytest.raises(ValueError):
        program("p").with_examples([{"input": 1}])


def test_force_regenerate_flag():
    assert program("p").force_regenerate is False
    assert program("p").with_options({"force_regenerate": True}).force_regenerate is True


def test_validate_requires_model_and_prompt():
    with pytest.raises(ConfigError):
        program("p").validate()
    with pytest.raises(ConfigError):
        ProgramSpec(model="mock").validate()
    program("p").with_model("mock").validate()


def test_last_generated_source_not_carried_over():
    spec = program("p").with_model("mock")
    spec.last_generated_source = "result = 1"
    assert spec.with_cache_id("x").last_generated_source is None


@pytest.mark.parametrize("shape", [{"type": "integr"}, "widget", 42])
def test_validate_rejects_unusable_expected_shape(shape):
    with pytest.raises(ConfigError):
        program("p").with_model("mock").with_expected_shape(shape).validate()


def test_validate_accepts_schema_hint_and_annotation():
    program("p").with_model("mock").with_expected_shape({"type": "integer"}).validate()
    program("p").with_model("mock").with_expected_shape("list[number]").validate()
    program("p").with_model("mock").with_expected_shape(dict).validate()
