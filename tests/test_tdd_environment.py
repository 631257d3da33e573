import pytest

from tdd.tdd_environment import DataLoaderEvaluationEnvironment
from tdd.tdd_errors import (
    EvaluationError, NoSuchVariableError, NotAHashError, UnknownLoaderError
)
from tdd.tdd_interpreter import evaluate, evaluate_as_hash
from tdd.tdd_runtime import Engine


def run(source, engine=None):
    return evaluate(source, DataLoaderEvaluationEnvironment(engine or Engine()))


def test_get_reads_a_sibling_key():
    assert run('{a: {b: 1}, c: get("a", "b")}') == {"a": {"b": 1}, "c": 1}


def test_get_searches_the_innermost_hash_first():
    result = run("{x: 1, inner: {x: 2, y: get(x)}, z: get(x)}")
    assert result["inner"]["y"] == 2
    assert result["z"] == 1


def test_get_sees_outer_keys_from_nested_hashes():
    assert run("{a: 1, b: {c: {d: get(a)}}}")["b"]["c"]["d"] == 1


def test_get_only_sees_keys_already_evaluated():
    with pytest.raises(NoSuchVariableError):
        run("{c: get(a), a: 1}")


def test_get_falls_back_to_engine_data():
    engine = Engine({"user": {"name": "Joe"}, "a": "global"})
    assert run("get(user, name)", engine) == "Joe"
    assert run("{b: get(a)}", engine) == {"b": "global"}
    assert run("{a: local, b: get(a)}", engine) == {"a": "local", "b": "local"}


def test_hashes_in_sequences_are_not_scopes():
    result = run("{a: 1, s: [{a: 2, v: get(a)}]}")
    assert result["s"][0]["v"] == 1


def test_nested_sequences_keep_scoping_suppressed():
    result = run("{a: 1, s: [[{a: 3}, {w: get(a)}]], t: {a: 4, u: get(a)}}")
    assert result["s"][0][1]["w"] == 1
    assert result["t"]["u"] == 4


def test_hash_content_is_a_scope():
    engine = Engine()
    assert evaluate_as_hash("a: 5\nb: get(a)", DataLoaderEvaluationEnvironment(engine)) == {"a": 5, "b": 5}


def test_get_without_arguments():
    with pytest.raises(EvaluationError, match="needs at least 1 argument"):
        run("get()")


def test_get_with_a_non_string_argument():
    with pytest.raises(EvaluationError) as excinfo:
        run("get(a, 2)")
    assert excinfo.value.message == (
        'Parameters to function "get" must be strings, but parameter at position 2 is a number.')


def test_get_unknown_variable():
    with pytest.raises(NoSuchVariableError) as excinfo:
        run("[get(missing)]")
    err = excinfo.value
    assert err.name == "missing"
    assert err.step == 1
    assert err.message == 'No variable with name "missing" exists.'
    assert err.position == 1


def test_get_through_a_non_hash():
    with pytest.raises(NotAHashError) as excinfo:
        run("{a: 1, b: get(a, x)}")
    err = excinfo.value
    assert err.step == 1
    assert err.message == ("Parameter at position 1 must be the name of a hash variable, "
                           "but it is the name of a number variable.")


def test_get_unknown_sub_variable():
    with pytest.raises(NoSuchVariableError) as excinfo:
        run("{a: {b: {}}, c: get(a, b, x)}")
    err = excinfo.value
    assert err.step == 3
    assert err.name == "x"
    assert "referred by parameter at position 3" in err.message


def test_unknown_call_names_go_to_the_registry():
    with pytest.raises(UnknownLoaderError) as excinfo:
        run("{a: nosuch(1)}")
    assert excinfo.value.loader_name == "nosuch"
    assert excinfo.value.position == 4


def test_environment_scope_stack_is_empty_after_evaluation():
    env = DataLoaderEvaluationEnvironment(Engine())
    evaluate("{a: [1, {b: 2}], c: {d: get(a)}}", env)
    assert env._scopes == []
    assert env._suppressed == 0


def test_environment_scope_stack_is_empty_after_a_failure():
    env = DataLoaderEvaluationEnvironment(Engine())
    with pytest.raises(UnknownLoaderError):
        evaluate("{a: {b: [nosuch(1)]}}", env)
    assert env._scopes == []
    assert env._suppressed == 0


def test_get_skips_keys_bound_to_null(tmp_path):
    (tmp_path / "n.json").write_text("null", encoding="utf-8")
    result = run("{a: 1, b: {a: json(n.json), c: get(a)}}", Engine(data_root=tmp_path))
    assert result["b"] == {"a": None, "c": 1}
