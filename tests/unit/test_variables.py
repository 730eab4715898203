"""Tests for the variable resolver and store."""
import threading

import pytest

from workflow_engine.errors import VariableResolutionError
from workflow_engine.variables import (
    VariableStore,
    get_nested_value,
    has_path,
    resolve_record,
    resolve_variables,
    set_nested_value,
    slugify,
    to_text,
)


class TestSlugify:
    """Test label slugification."""

    def test_spaces_and_case(self):
        assert slugify("Mint Tokens") == "mint_tokens"

    def test_collapses_and_strips_separators(self):
        assert slugify("  --Deploy  (v2)!! ") == "deploy_v2"

    def test_type_name_unchanged(self):
        assert slugify("transaction") == "transaction"


class TestResolveVariables:
    """Test template resolution."""

    def test_values_without_markers_are_unchanged(self):
        value = {"a": [1, 2.5, True, None, "plain"], "b": {"c": "text"}}
        assert resolve_variables(value, {"a": 1}) == value

    def test_whole_reference_keeps_type(self):
        variables = {"a": {"b": [10, 20]}}
        assert resolve_variables("{{a.b.1}}", variables) == 20
        assert resolve_variables("{{a}}", variables) == {"b": [10, 20]}

    def test_whitespace_inside_braces(self):
        assert resolve_variables("{{ amount }}", {"amount": 5}) == 5

    def test_missing_path_raises(self):
        with pytest.raises(VariableResolutionError) as exc_info:
            resolve_variables("{{a.c}}", {"a": {"b": [10, 20]}})
        assert exc_info.value.variable == "a.c"
        assert exc_info.value.kind == "VariableResolutionError"

    def test_list_index_out_of_range_raises(self):
        with pytest.raises(VariableResolutionError):
            resolve_variables("{{a.5}}", {"a": [1]})

    def test_traversal_through_scalar_raises(self):
        with pytest.raises(VariableResolutionError):
            resolve_variables("{{a.b}}", {"a": 3})

    def test_explicit_none_resolves(self):
        assert resolve_variables("{{a}}", {"a": None}) is None

    def test_interpolation_stringifies(self):
        variables = {"n": 3, "ok": True, "obj": {"x": 1}, "f": 2.0, "nothing": None}
        result = resolve_variables("n={{n}} ok={{ok}} obj={{obj}} f={{f}} none={{nothing}}", variables)
        assert result == 'n=3 ok=true obj={"x":1} f=2 none=null'

    def test_interpolated_containers_render_numbers_like_json_stringify(self):
        variables = {"obj": {"a": 1.0, "b": [2.5, 3.0]}, "bad": [float("nan")]}
        assert resolve_variables("v={{obj}} w={{bad}}", variables) == 'v={"a":1,"b":[2.5,3]} w=[null]'

    def test_interpolation_missing_fails_whole_string(self):
        with pytest.raises(VariableResolutionError):
            resolve_variables("hello {{name}} and {{missing}}", {"name": "bob"})

    def test_recurses_into_containers(self):
        variables = {"to": "0xabc", "amount": 7}
        value = {"recipient": "{{to}}", "list": ["{{amount}}", "x{{amount}}"], "tuple": ("{{to}}",)}
        assert resolve_variables(value, variables) == {
            "recipient": "0xabc",
            "list": [7, "x7"],
            "tuple": ["0xabc"],
        }

    def test_flat_dotted_key_fallback(self):
        variables = {"n1.result": {"txHash": "0x1"}}
        assert resolve_variables("{{n1.result}}", variables) == {"txHash": "0x1"}


class TestResolveRecord:
    """Test flat string map resolution."""

    def test_values_become_text(self):
        record = {"amount": "{{amount}}", "flag": "{{ok}}", "raw": "literal"}
        assert resolve_record(record, {"amount": 10, "ok": False}) == {
            "amount": "10",
            "flag": "false",
            "raw": "literal",
        }

    def test_empty_record(self):
        assert resolve_record(None, {}) == {}


class TestNestedHelpers:
    """Test path helpers."""

    def test_set_nested_creates_dicts(self):
        data = {"a": 1}
        set_nested_value(data, "a.b.c", 2)
        assert data == {"a": {"b": {"c": 2}}}

    def test_negative_index_is_missing(self):
        assert not has_path("a.-1", {"a": [1, 2]})

    def test_get_nested_value_through_list(self):
        assert get_nested_value({"a": [{"b": "x"}]}, "a.0.b") == "x"

    def test_to_text_floats(self):
        assert to_text(1.5) == "1.5"
        assert to_text(float("nan")) == "NaN"


class TestVariableStore:
    """Test the mutex-guarded variable bag."""

    def test_dotted_keys_written_flat_and_nested(self):
        store = VariableStore()
        store.apply({"n1.result": {"txHash": "0xabc"}})

        data = store.to_dict()
        assert data["n1.result"] == {"txHash": "0xabc"}
        assert data["n1"]["result"] == {"txHash": "0xabc"}
        assert store.resolve("{{n1.result.txHash}}") == "0xabc"

    def test_get_with_default(self):
        store = VariableStore({"a": {"b": 1}})
        assert store.get("a.b") == 1
        assert store.get("a.z", "fallback") == "fallback"

    def test_update_is_shallow(self):
        store = VariableStore({"a": {"b": 1}, "keep": True})
        store.update({"a": {"c": 2}})
        assert store.to_dict() == {"a": {"c": 2}, "keep": True}

    def test_setdefault_does_not_overwrite(self):
        store = VariableStore({"amount": 1})
        store.setdefault("amount", 100)
        store.setdefault("other", 5)
        assert store.get("amount") == 1
        assert store.get("other") == 5

    def test_snapshot_is_a_copy(self):
        store = VariableStore({"a": 1})
        snapshot = store.snapshot()
        snapshot["a"] = 2
        assert store.get("a") == 1

    def test_concurrent_applies_are_not_lost(self):
        store = VariableStore()

        def writer(index):
            for i in range(50):
                store.apply({f"w{index}.result": i, f"k{index}_{i}": i})

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for n in range(8):
            assert store.get(f"w{n}.result") == 49
            assert f"k{n}_49" in store
