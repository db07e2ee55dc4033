"""
Pure checks for fulfillment state graphs.

A fulfillment graph has to let every work item finish:

- every status is reachable from the initial status
- every non-terminal status can still reach a terminal one, so nothing
  gets stuck
- the only loops come back through a declared re-entry status (a slot
  booked again, an order sent to a pharmacy again, a case handed back to
  the doctor)

An event that keeps the status, such as reassigning a partner, is not a
loop. Nothing here touches the database; StateMachine runs graph_errors()
when it is built and the tests call these functions directly.
"""

from collections import deque


def reachable_from(start: str, transitions: dict[str, list[str]]) -> set[str]:
    """Statuses reachable from start, start included."""
    seen = {start}
    pending = deque([start])
    while pending:
        for target in transitions.get(pending.popleft(), ()):
            if target not in seen:
                seen.add(target)
                pending.append(target)
    return seen


def dead_end_states(transitions: dict[str, list[str]], states, terminal_states) -> set[str]:
    """Non-terminal statuses from which no terminal status can be reached."""
    terminal = set(terminal_states)
    return {
        status
        for status in states
        if status not in terminal and not (reachable_from(status, transitions) & terminal)
    }


def _without(transitions: dict[str, list[str]], removed: set[str]) -> dict[str, list[str]]:
    """Drop the removed statuses and every self-loop."""
    return {
        source: [target for target in targets if target not in removed and target != source]
        for source, targets in transitions.items()
        if source not in removed
    }


def find_cycle_states(transitions: dict[str, list[str]]) -> set[str]:
    """Statuses on a loop of two or more statuses; self-loops are ignored."""
    forward = _without(transitions, set())
    return {
        source
        for source, targets in forward.items()
        if any(source in reachable_from(target, forward) for target in targets)
    }


def unexpected_cycle_states(transitions: dict[str, list[str]], reentry_states=()) -> set[str]:
    """Statuses still on a loop once the re-entry statuses are taken out."""
    return find_cycle_states(_without(transitions, set(reentry_states)))


def graph_errors(
    states: list[str],
    transitions: dict[str, list[str]],
    initial_state: str,
    terminal_states: list[str],
    reentry_states=(),
) -> list[str]:
    """
    Check a fulfillment graph.

    Returns a list of error messages; an empty list means the graph is usable.
    """
    known = set(states)
    errors = []

    if initial_state not in known:
        errors.append(f"initial_state '{initial_state}' not in states")
    errors.extend(f"terminal_state '{s}' not in states" for s in terminal_states if s not in known)
    errors.extend(f"re-entry state '{s}' not in states" for s in reentry_states if s not in known)

    for source, targets in transitions.items():
        if source not in known:
            errors.append(f"transition from unknown state '{source}'")
        errors.extend(f"transition to unknown state '{t}'" for t in targets if t not in known)

    errors.extend(
        f"terminal state '{s}' has outgoing transitions" for s in terminal_states if transitions.get(s)
    )
    if errors:
        return errors

    reachable = reachable_from(initial_state, transitions)
    errors.extend(f"state '{s}' unreachable from initial_state" for s in states if s not in reachable)

    for status in sorted(dead_end_states(transitions, states, terminal_states)):
        errors.append(f"state '{status}' cannot reach a terminal state")

    for status in sorted(unexpected_cycle_states(transitions, reentry_states)):
        errors.append(f"state '{status}' loops without passing a re-entry state")

    return errors
