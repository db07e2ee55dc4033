"""Tests for fulfillment graph checks.

These tests run WITHOUT Django model lifecycle - pure function testing.
"""

import pytest
from django.core.exceptions import ImproperlyConfigured

from django_fulfillment.choices import ConsultationStatus, LabOrderStatus, PharmacyOrderStatus
from django_fulfillment.graph import (
    dead_end_states,
    find_cycle_states,
    graph_errors,
    reachable_from,
    unexpected_cycle_states,
)
from django_fulfillment.machines import (
    CONSULTATION_MACHINE,
    LAB_ORDER_MACHINE,
    PHARMACY_ORDER_MACHINE,
    Edge,
    StateMachine,
)

MACHINES = (CONSULTATION_MACHINE, LAB_ORDER_MACHINE, PHARMACY_ORDER_MACHINE)

# A failed collection goes back to booking; a reschedule releases the phlebotomist.
COLLECTION_LOOP = {
    "ORDERED": ["BOOKED"],
    "BOOKED": ["ASSIGNED", "BOOKED"],
    "ASSIGNED": ["ASSIGNED", "BOOKED", "FAILED", "COLLECTED"],
    "FAILED": ["BOOKED"],
    "COLLECTED": ["CLOSED"],
}
COLLECTION_STATES = ["ORDERED", "BOOKED", "ASSIGNED", "FAILED", "COLLECTED", "CLOSED"]


class TestGraphErrors:
    """Tests for graph_errors pure function."""

    def test_usable_graph_returns_no_errors(self):
        errors = graph_errors(COLLECTION_STATES, COLLECTION_LOOP, "ORDERED", ["CLOSED"], reentry_states=["BOOKED"])

        assert errors == []

    def test_loop_without_reentry_state_caught(self):
        errors = graph_errors(COLLECTION_STATES, COLLECTION_LOOP, "ORDERED", ["CLOSED"])

        assert "state 'ASSIGNED' loops without passing a re-entry state" in errors
        assert "state 'FAILED' loops without passing a re-entry state" in errors

    def test_wrong_reentry_state_leaves_loop(self):
        errors = graph_errors(COLLECTION_STATES, COLLECTION_LOOP, "ORDERED", ["CLOSED"], reentry_states=["FAILED"])

        assert errors == ["state 'ASSIGNED' loops without passing a re-entry state",
                          "state 'BOOKED' loops without passing a re-entry state"]

    def test_stuck_status_caught(self):
        """A status with no way to a terminal one would strand the order."""
        errors = graph_errors(
            ["ORDERED", "ON_HOLD", "CLOSED"],
            {"ORDERED": ["ON_HOLD", "CLOSED"]},
            "ORDERED",
            ["CLOSED"],
        )

        assert errors == ["state 'ON_HOLD' cannot reach a terminal state"]

    def test_unknown_initial_state_caught(self):
        errors = graph_errors(["A", "B"], {"A": ["B"]}, "Z", ["B"])

        assert errors == ["initial_state 'Z' not in states"]

    def test_unknown_terminal_and_reentry_states_caught(self):
        errors = graph_errors(["A", "B"], {"A": ["B"]}, "A", ["DONE"], reentry_states=["AGAIN"])

        assert "terminal_state 'DONE' not in states" in errors
        assert "re-entry state 'AGAIN' not in states" in errors

    def test_unknown_transition_states_caught(self):
        errors = graph_errors(["A", "B"], {"A": ["B", "C"], "X": ["B"]}, "A", ["B"])

        assert "transition to unknown state 'C'" in errors
        assert "transition from unknown state 'X'" in errors

    def test_terminal_state_with_outgoing_transitions_caught(self):
        errors = graph_errors(["A", "B"], {"A": ["B"], "B": ["A"]}, "A", ["B"])

        assert "terminal state 'B' has outgoing transitions" in errors

    def test_unreachable_state_caught(self):
        errors = graph_errors(["A", "B", "ORPHAN"], {"A": ["B"], "ORPHAN": ["B"]}, "A", ["B"])

        assert errors == ["state 'ORPHAN' unreachable from initial_state"]


class TestGraphHelpers:

    def test_reachable_includes_start(self):
        assert reachable_from("A", {}) == {"A"}

    def test_reachable_follows_loops(self):
        assert reachable_from("FAILED", COLLECTION_LOOP) == {"FAILED", "BOOKED", "ASSIGNED", "COLLECTED", "CLOSED"}

    def test_self_loops_are_not_cycles(self):
        """Reassigning a partner keeps the status; that is not a loop."""
        assert find_cycle_states({"ASSIGNED": ["ASSIGNED", "DONE"]}) == set()

    def test_cycle_states(self):
        assert find_cycle_states(COLLECTION_LOOP) == {"BOOKED", "ASSIGNED", "FAILED"}

    def test_reentry_state_breaks_loops(self):
        assert unexpected_cycle_states(COLLECTION_LOOP, ["BOOKED"]) == set()

    def test_dead_ends(self):
        transitions = {"A": ["B", "C"], "B": ["B"]}

        assert dead_end_states(transitions, ["A", "B", "C"], ["C"]) == {"B"}


class TestMachineGraphs:
    """The shipped machines only loop through their re-entry statuses."""

    @pytest.mark.parametrize("machine", MACHINES, ids=lambda m: m.entity_type)
    def test_machine_graph_is_usable(self, machine):
        errors = graph_errors(
            machine.states,
            machine.transition_map(),
            machine.initial_state,
            machine.terminal_states,
            machine.reentry_states,
        )

        assert errors == []

    @pytest.mark.parametrize("machine", MACHINES, ids=lambda m: m.entity_type)
    def test_every_open_status_can_finish(self, machine):
        assert dead_end_states(machine.transition_map(), machine.states, machine.terminal_states) == set()

    @pytest.mark.parametrize("machine", MACHINES, ids=lambda m: m.entity_type)
    def test_reentry_statuses_are_needed(self, machine):
        """Each machine really loops; without its re-entry statuses it is rejected."""
        assert unexpected_cycle_states(machine.transition_map()) != set()

    def test_lab_order_loops_back_to_booking(self):
        on_cycle = find_cycle_states(LAB_ORDER_MACHINE.transition_map())

        assert LAB_ORDER_MACHINE.reentry_states == [LabOrderStatus.SLOT_BOOKED.value]
        assert LabOrderStatus.COLLECTION_FAILED.value in on_cycle
        assert LabOrderStatus.PHLEBOTOMIST_ASSIGNED.value in on_cycle
        assert LabOrderStatus.PROCESSING.value not in on_cycle

    def test_pharmacy_order_retry_loops(self):
        on_cycle = find_cycle_states(PHARMACY_ORDER_MACHINE.transition_map())

        assert PharmacyOrderStatus.PHARMACY_ISSUE.value in on_cycle
        assert PharmacyOrderStatus.DELIVERY_FAILED.value in on_cycle
        assert PharmacyOrderStatus.PHARMACY_READY.value not in on_cycle

    def test_consultation_loops_return_to_doctor(self):
        on_cycle = find_cycle_states(CONSULTATION_MACHINE.transition_map())

        assert ConsultationStatus.NEEDS_INFO.value in on_cycle
        assert ConsultationStatus.AWAITING_LABS.value in on_cycle
        assert ConsultationStatus.APPROVED.value not in on_cycle

    def test_machine_with_unplanned_loop_rejected(self):
        with pytest.raises(ImproperlyConfigured, match="loops without passing a re-entry state"):
            StateMachine(
                entity_type="widget",
                states=["NEW", "PACKED", "SHIPPED"],
                initial_state="NEW",
                terminal_states=["SHIPPED"],
                edges=[
                    Edge("PACK", ("NEW",), "PACKED", frozenset({"ADMIN"})),
                    Edge("UNPACK", ("PACKED",), "NEW", frozenset({"ADMIN"})),
                    Edge("SHIP", ("PACKED",), "SHIPPED", frozenset({"ADMIN"})),
                ],
            )
