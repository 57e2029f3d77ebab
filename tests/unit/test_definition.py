"""Testes de construção e validação de MachineDefinition."""

from __future__ import annotations

import pytest

from ussd_engine.domain.enums import EventType, GuardFamily
from ussd_engine.domain.errors import ConfigurationError
from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    StateDef,
    StateKind,
    on,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.navigation import is_input
from ussd_engine.engine.guards import guard


def _io_guard():
    return guard("remote", GuardFamily.DOMAIN, lambda c, e: True, performs_io=True)


def _local_guard():
    return guard("local", GuardFamily.VALIDATION, lambda c, e: True)


def _child() -> MachineDefinition:
    machine = MachineBuilder("child", initial="ask")
    machine.state("ask", on_input("done", is_input("1")))
    machine.final("done", output="OK")
    return machine.build()


class TestMachineBuilder:
    """Montagem de máquinas válidas."""

    def test_builds_index_by_state_and_event(self):
        machine = MachineBuilder("m", initial="a")
        machine.state("a", on_input("b", is_input("1")), on_input("c", is_input("2")))
        machine.final("b")
        machine.final("c")

        definition = machine.build()

        assert len(definition.transitions_for("a", EventType.INPUT)) == 2
        assert definition.transitions_for("a", EventType.START) == ()
        assert definition.final_states == frozenset({"b", "c"})
        assert definition.state("b").kind is StateKind.FINAL

    def test_with_navigation_prepends_back_and_exit(self):
        transitions = with_navigation(on_input("next", is_input("1")), back="prev", exit="bye")

        assert [t.name for t in transitions] == ["back", "exit", None]
        assert [t.target for t in transitions] == ["prev", "bye", "next"]

    def test_duplicate_state_is_rejected(self):
        machine = MachineBuilder("m", initial="a")
        machine.final("a")

        with pytest.raises(ConfigurationError, match="duplicate state"):
            machine.final("a")

    def test_definition_is_immutable(self):
        definition = _child()

        with pytest.raises(TypeError):
            definition.states["x"] = StateDef(name="x")  # type: ignore[index]


class TestDefinitionValidation:
    """Definições malformadas levantam ConfigurationError na construção."""

    def test_unknown_initial_state(self):
        machine = MachineBuilder("m", initial="missing")
        machine.final("done")

        with pytest.raises(ConfigurationError, match="unknown initial state"):
            machine.build()

    def test_no_states(self):
        with pytest.raises(ConfigurationError, match="has no states"):
            MachineBuilder("m", initial="a").build()

    def test_unknown_target(self):
        machine = MachineBuilder("m", initial="a")
        machine.state("a", on_input("nowhere", is_input("1")), on_input("done", is_input("2")))
        machine.final("done")

        with pytest.raises(ConfigurationError, match="unknown target 'nowhere'"):
            machine.build()

    def test_final_state_with_transitions(self):
        definition_states = {
            "a": StateDef(name="a", transitions=(on_input("b", is_input("1")),)),
            "b": StateDef(
                name="b", kind=StateKind.FINAL, transitions=(on_input("a", is_input("1")),)
            ),
        }

        with pytest.raises(ConfigurationError, match="final states cannot declare transitions"):
            MachineDefinition(name="m", initial="a", states=definition_states)

    def test_io_guard_before_local_guard(self):
        machine = MachineBuilder("m", initial="a")
        machine.state("a", on_input("done", _io_guard(), _local_guard()))
        machine.final("done")

        with pytest.raises(ConfigurationError, match="must precede external guard"):
            machine.build()

    def test_local_guard_before_io_guard_is_valid(self):
        machine = MachineBuilder("m", initial="a")
        machine.state("a", on_input("done", _local_guard(), _io_guard()))
        machine.final("done")

        assert machine.build().name == "m"

    def test_no_final_state(self):
        machine = MachineBuilder("m", initial="a")
        machine.state("a", on_input("b", is_input("1")))
        machine.state("b", on_input("a", is_input("1")))

        with pytest.raises(ConfigurationError, match="no final state"):
            machine.build()

    def test_reachable_state_without_path_to_final(self):
        machine = MachineBuilder("m", initial="a")
        machine.state("a", on_input("trap", is_input("1")), on_input("done", is_input("2")))
        machine.state("trap", on_input("trap", is_input("1")))
        machine.final("done")

        with pytest.raises(ConfigurationError, match=r"\['trap'\] can never reach"):
            machine.build()

    def test_subflow_must_handle_every_mapped_event(self):
        machine = MachineBuilder("parent", initial="sub")
        machine.subflow(
            "sub",
            _child(),
            on("CHILD_OK", "done"),
            outputs={"OK": "CHILD_OK"},
            default_event="CHILD_OTHER",
        )
        machine.final("done")

        with pytest.raises(ConfigurationError, match="CHILD_OTHER"):
            machine.build()

    def test_subflow_with_full_mapping_is_valid(self):
        machine = MachineBuilder("parent", initial="sub")
        machine.subflow(
            "sub",
            _child(),
            on("CHILD_OK", "done"),
            on("CHILD_OTHER", "done"),
            outputs={"OK": "CHILD_OK"},
            default_event="CHILD_OTHER",
        )
        machine.final("done")

        definition = machine.build()

        assert definition.state("sub").subflow.event_for("OK") == "CHILD_OK"
        assert definition.state("sub").subflow.event_for("??") == "CHILD_OTHER"


class TestBundledFlows:
    """A árvore de fluxos de exemplo é válida."""

    def test_main_flow_builds(self, main_flow: MachineDefinition):
        assert main_flow.name == "main"
        assert main_flow.initial == "pre_menu"
        assert {"close_session", "transfer_complete"} <= main_flow.final_states
        assert len(main_flow.global_guards) == 2
