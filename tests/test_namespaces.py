from __future__ import annotations

import logging
from typing import Any

import pytest

from pyimmut.config import StoreConfig
from pyimmut.exceptions import (
    DuplicateNamespaceError,
    InvalidRootStateError,
    NamespaceDefinitionError,
    UnknownNamespaceError,
)
from pyimmut.state.events import Diagnostic, DiagnosticCode
from pyimmut.state.namespaces import BoundActions, Namespace
from pyimmut.state.store import Store


def _todo_namespace() -> dict[str, Any]:
    return {
        "state": {"items": [], "filter": "all"},
        "add": lambda dispatch, get_state, title: dispatch("items", lambda items: items.append({"title": title})),
        "set_filter": lambda dispatch, get_state, value: dispatch("filter", value),
        "count": lambda dispatch, get_state: len(get_state("items")),
    }


def _store_with_diagnostics(**kwargs: Any) -> tuple[Store, list[Diagnostic]]:
    diagnostics: list[Diagnostic] = []
    return Store(on_diagnostic=diagnostics.append, **kwargs), diagnostics


def test_combine_grafts_state_and_binds_actions() -> None:
    store = Store({"app": "demo"})
    store.combine({"todo": _todo_namespace()})

    store.actions["todo"].add("Write docs")
    store.actions["todo"]["set_filter"]("done")

    assert store.get_state()["todo"] == {"items": [{"title": "Write docs"}], "filter": "done"}
    assert store.get_state()["app"] == "demo"
    assert store.actions["todo"].count() == 1


def test_combine_commits_once_for_all_namespaces() -> None:
    store = Store()
    calls: list[Any] = []
    store.subscribe(lambda next_state, prev_state: calls.append(next_state))

    store.combine({"a": {"state": {"x": 1}}, "b": {"state": {"y": 2}}})

    assert len(calls) == 1
    assert store.revision == 1
    assert calls[0] == {"a": {"x": 1}, "b": {"y": 2}}


def test_update_in_one_namespace_shares_the_others() -> None:
    store = Store()
    store.combine({"a": {"state": {"x": 1}}, "b": {"state": {"y": 2}}})
    before = store.get_state()

    store.dispatch("a.x", 5)

    assert store.get_state()["b"] is before["b"]
    assert store.get_state()["a"]["x"] == 5


def test_initial_state_object_is_never_mutated() -> None:
    initial = {"items": []}
    store = Store()
    store.combine([Namespace(name="todo", initial_state=initial, actions={"add": _todo_namespace()["add"]})])

    store.actions["todo"].add("x")

    assert initial == {"items": []}
    assert store.get_state()["todo"] == {"items": [{"title": "x"}]}


def test_scoped_get_state_reads_current_value() -> None:
    captured: list[Any] = []
    store = Store()
    store.combine([Namespace(name="counter", initial_state=0, actions={"snap": lambda d, g: captured.append(g())})])

    store.dispatch("counter", 5)
    store.actions["counter"].snap()

    assert captured == [5]


def test_action_returns_template_result_and_forwards_kwargs() -> None:
    def template(dispatch: Any, get_state: Any, a: int, *, b: int = 0) -> int:
        dispatch(lambda value: value + a + b)
        return get_state()

    store = Store()
    store.combine({"total": {"state": 1, "actions": {"add": template}}})

    assert store.actions["total"].add(2, b=3) == 6
    assert store.actions["total"].add.__name__ == "template"


def test_namespace_actions_cannot_write_outside_their_subtree() -> None:
    store = Store()
    store.combine(
        {
            "ns1": {"state": {"value": 1}, "write": lambda dispatch, get_state, path, value: dispatch(path, value)},
            "ns2": {"state": {"value": 2}},
        }
    )
    ns2_before = store.get_state()["ns2"]

    for path in ("ns2.value", ["ns2", "value"], "value", ""):
        store.actions["ns1"].write(path, 99)

    state = store.get_state()
    assert state["ns2"] is ns2_before
    assert state["ns2"] == {"value": 2}
    assert set(state) == {"ns1", "ns2"}


def test_duplicate_namespace_is_rejected_first_wins(caplog: pytest.LogCaptureFixture) -> None:
    store, diagnostics = _store_with_diagnostics()
    store.combine({"todo": _todo_namespace()})
    first_actions = store.actions["todo"]
    first_actions.add("keep")

    with caplog.at_level(logging.WARNING, logger="pyimmut.state.namespaces"):
        store.combine(
            {
                "todo": {"state": {"items": ["other"]}, "add": lambda dispatch, get_state, title: None},
                "extra": {"state": 1},
            }
        )

    state = store.get_state()
    assert state["todo"]["items"] == [{"title": "keep"}]
    assert store.actions["todo"] is first_actions
    assert state["extra"] == 1
    assert [d.code for d in diagnostics] == [DiagnosticCode.DUPLICATE_NAMESPACE]
    assert diagnostics[0].namespace == "todo"
    assert "registered before" in caplog.text


def test_all_duplicates_do_not_commit() -> None:
    store, diagnostics = _store_with_diagnostics()
    store.combine({"a": {"state": 1}})
    calls: list[Any] = []
    store.subscribe(lambda next_state, prev_state: calls.append(next_state))

    store.combine({"a": {"state": 2}})

    assert calls == []
    assert store.revision == 1
    assert len(diagnostics) == 1


def test_duplicate_namespace_raises_in_strict_mode() -> None:
    store = Store(config=StoreConfig(strict_namespaces=True))
    store.combine({"a": {"state": 1}})

    with pytest.raises(DuplicateNamespaceError):
        store.combine({"b": {"state": 2}, "a": {"state": 3}})

    assert store.get_state() == {"a": 1}


def test_combine_on_non_dict_root_is_aborted() -> None:
    store, diagnostics = _store_with_diagnostics(initial_state=[1, 2])

    store.combine({"a": {"state": 1}})

    assert store.get_state() == [1, 2]
    assert store.revision == 0
    assert "a" not in store.actions
    assert [d.code for d in diagnostics] == [DiagnosticCode.INVALID_ROOT_STATE]


def test_combine_on_non_dict_root_raises_in_strict_mode() -> None:
    store = Store(7, config=StoreConfig(strict_namespaces=True))
    with pytest.raises(InvalidRootStateError):
        store.combine({"a": {"state": 1}})


def test_seclude_removes_state_and_actions() -> None:
    store = Store({"keep": {"k": 1}})
    store.combine({"todo": _todo_namespace()})
    before = store.get_state()
    calls: list[Any] = []
    store.subscribe(lambda next_state, prev_state: calls.append(next_state))

    store.seclude("todo")

    assert "todo" not in store.get_state()
    assert "todo" not in store.actions
    assert store.get_state()["keep"] is before["keep"]
    assert len(calls) == 1


def test_recombine_after_seclude_gets_fresh_bindings() -> None:
    store = Store()
    store.combine({"todo": _todo_namespace()})
    old_actions = store.actions["todo"]
    old_actions.add("old")

    store.seclude("todo")
    store.combine({"todo": {"state": {"items": []}, "clear": lambda dispatch, get_state: dispatch("items", [])}})

    new_actions = store.actions["todo"]
    assert new_actions is not old_actions
    assert set(new_actions) == {"clear"}
    assert "add" not in new_actions
    assert store.get_state()["todo"] == {"items": []}


def test_actions_kept_past_seclude_are_dropped(caplog: pytest.LogCaptureFixture) -> None:
    store, diagnostics = _store_with_diagnostics()
    store.combine({"todo": _todo_namespace()})
    old_add = store.actions["todo"].add
    store.seclude("todo")
    revision = store.revision

    with caplog.at_level(logging.WARNING, logger="pyimmut.state.namespaces"):
        old_add("ghost")

    assert "todo" not in store.get_state()
    assert store.revision == revision
    assert [d.code for d in diagnostics] == [DiagnosticCode.UNKNOWN_NAMESPACE]
    assert "secluded" in caplog.text

    store.combine({"todo": _todo_namespace()})
    assert "add" in store.actions["todo"]
    assert store.get_state()["todo"]["items"] == []


def test_stale_action_does_not_write_into_recombined_namespace() -> None:
    store = Store()
    store.combine({"todo": _todo_namespace()})
    old_add = store.actions["todo"].add
    store.seclude("todo")
    store.combine({"todo": _todo_namespace()})

    old_add("ghost")
    store.actions["todo"].add("fresh")

    assert store.get_state()["todo"]["items"] == [{"title": "fresh"}]


def test_stale_action_raises_in_strict_mode() -> None:
    store = Store(config=StoreConfig(strict_namespaces=True))
    store.combine({"todo": _todo_namespace()})
    old_add = store.actions["todo"].add
    store.seclude("todo")

    with pytest.raises(UnknownNamespaceError):
        old_add("ghost")
    assert "todo" not in store.get_state()


def test_seclude_unknown_namespace_reports_diagnostic() -> None:
    store, diagnostics = _store_with_diagnostics()

    store.seclude("ghost")

    assert store.revision == 0
    assert [d.code for d in diagnostics] == [DiagnosticCode.UNKNOWN_NAMESPACE]


def test_seclude_unknown_namespace_raises_in_strict_mode() -> None:
    store = Store(config=StoreConfig(strict_namespaces=True))
    with pytest.raises(UnknownNamespaceError):
        store.seclude("ghost")


def test_token_namespace_lifecycle() -> None:
    store = Store()
    slot = store.token("local")
    store.combine({slot: {"state": 0, "inc": lambda dispatch, get_state: dispatch(lambda value: value + 1)}})

    store.actions[slot].inc()
    store.actions[slot].inc()
    assert store.select(slot) == 2

    store.seclude(slot)
    assert slot not in store.get_state()
    assert slot not in store.actions


@pytest.mark.parametrize(
    "definition",
    [
        {"state": 1, "act": 42},
        5,
        {"state": 1, "initial_state": 2},
        {"state": 1, "actions": {"a": lambda d, g: None}, "stray": lambda d, g: None},
        {"state": 1, "actions": {"a": "not callable"}},
    ],
)
def test_malformed_definitions_are_rejected_before_any_change(definition: Any) -> None:
    store = Store()
    with pytest.raises(NamespaceDefinitionError):
        store.combine({"good": {"state": 1}, "bad": definition})
    assert store.get_state() == {}
    assert store.revision == 0


def test_empty_namespace_name_is_rejected() -> None:
    with pytest.raises(NamespaceDefinitionError):
        Store().combine({"": {"state": 1}})


def test_namespace_record_name_must_match_key() -> None:
    with pytest.raises(NamespaceDefinitionError):
        Store().combine({"a": Namespace(name="b")})


def test_bound_actions_attribute_errors() -> None:
    actions = BoundActions("todo", {})
    with pytest.raises(AttributeError):
        actions.missing  # noqa: B018
    assert repr(actions) == "BoundActions('todo', [])"
