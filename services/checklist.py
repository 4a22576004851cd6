"""Progress projector — folds stream events into a turn's checklist.

``project(checklist, event)`` is a pure reducer: it never mutates its input
and returns the checklist to display after *event*.

Rules, in order:
- events without a phase (``session_created``, ``error``) change nothing
- the first orchestrator event flips the view to ORCHESTRATED for the rest
  of the turn; a still pending ``sql_generation`` becomes SKIPPED
- a SQL-generation or planner event sets an UNSET view to CLASSIC
- when a phase starts, earlier top-level phases still ACTIVE are DONE
  (``orchestration`` excepted, it spans execution); the same holds among
  planner sub-phases
- the phase itself becomes DONE for completion kinds, ACTIVE otherwise
- ``planner_completed`` closes every active planner sub-phase
- ``result`` closes the turn: ACTIVE → DONE, PENDING → SKIPPED

DONE and SKIPPED are never left.
"""

from __future__ import annotations

from models.checklist import Checklist, ChecklistView, PhaseState
from models.stream_event import (
    PLANNER_SUB_PHASES,
    TOP_LEVEL_PHASES,
    EventKind,
    PhaseId,
    StreamEvent,
    is_completion_event,
    is_orchestration_event,
    phase_for,
)


def initial_checklist() -> Checklist:
    """All phases pending, view not decided yet."""
    return Checklist()


def project(checklist: Checklist, event: StreamEvent) -> Checklist:
    kind = event.kind
    phase = phase_for(kind)
    if kind is None or phase is None:
        return checklist

    phases = {p: checklist.state(p) for p in PhaseId}
    view = checklist.view

    if is_orchestration_event(kind):
        if view is not ChecklistView.ORCHESTRATED:
            view = ChecklistView.ORCHESTRATED
            for hidden in (PhaseId.SQL_GENERATION, *PLANNER_SUB_PHASES):
                _close(phases, hidden)
    elif phase is PhaseId.SQL_GENERATION or phase in PLANNER_SUB_PHASES:
        if view is ChecklistView.UNSET:
            view = ChecklistView.CLASSIC

    if phase in PLANNER_SUB_PHASES:
        _finish_earlier(phases, PLANNER_SUB_PHASES, phase)
        _finish_earlier(phases, TOP_LEVEL_PHASES, PhaseId.SQL_GENERATION)
        _advance(phases, PhaseId.SQL_GENERATION, PhaseState.ACTIVE)
    else:
        _finish_earlier(phases, TOP_LEVEL_PHASES, phase)

    if kind is EventKind.PLANNER_COMPLETED:
        for sub in PLANNER_SUB_PHASES:
            if phases[sub] is PhaseState.ACTIVE:
                phases[sub] = PhaseState.DONE

    target = PhaseState.DONE if is_completion_event(kind) else PhaseState.ACTIVE
    _advance(phases, phase, target)

    if kind is EventKind.RESULT:
        for p in phases:
            _close(phases, p)

    return Checklist(phases=phases, view=view)


def visible_phases(checklist: Checklist) -> list[PhaseId]:
    """Phases a renderer should show, in display order.

    Exactly one of ``sql_generation`` and ``orchestration`` is included.
    Planner sub-phases follow ``sql_generation`` once the planner has run.
    """
    visible: list[PhaseId] = []
    orchestrated = checklist.orchestrator_visible
    for phase in TOP_LEVEL_PHASES:
        if phase is PhaseId.SQL_GENERATION and orchestrated:
            continue
        if phase is PhaseId.ORCHESTRATION and not orchestrated:
            continue
        visible.append(phase)
        if phase is PhaseId.SQL_GENERATION and checklist.planner_visible:
            visible.extend(PLANNER_SUB_PHASES)
    return visible


# ── helpers ──────────────────────────────────────────────────


def _advance(phases: dict[PhaseId, PhaseState], phase: PhaseId, target: PhaseState) -> None:
    current = phases[phase]
    if current.is_closed or current is target:
        return
    phases[phase] = target


def _close(phases: dict[PhaseId, PhaseState], phase: PhaseId) -> None:
    current = phases[phase]
    if current is PhaseState.ACTIVE:
        phases[phase] = PhaseState.DONE
    elif current is PhaseState.PENDING:
        phases[phase] = PhaseState.SKIPPED


def _finish_earlier(
    phases: dict[PhaseId, PhaseState],
    order: tuple[PhaseId, ...],
    phase: PhaseId,
) -> None:
    for earlier in order[: order.index(phase)]:
        if earlier is PhaseId.ORCHESTRATION:
            continue
        if phases[earlier] is PhaseState.ACTIVE:
            phases[earlier] = PhaseState.DONE
