"""Tests for services/checklist.py — the progress projector."""

from __future__ import annotations

import itertools
import random

import pytest

from models.checklist import Checklist, ChecklistView, PhaseState
from models.stream_event import PLANNER_SUB_PHASES, EventKind, PhaseId, StreamEvent
from services.checklist import initial_checklist, project, visible_phases


def _ev(kind: EventKind | str) -> StreamEvent:
    return StreamEvent(step=kind.value if isinstance(kind, EventKind) else kind)


def _run(*kinds: EventKind) -> Checklist:
    checklist = initial_checklist()
    for kind in kinds:
        checklist = project(checklist, _ev(kind))
    return checklist


_ALLOWED = {
    PhaseState.PENDING: {PhaseState.PENDING, PhaseState.ACTIVE, PhaseState.DONE, PhaseState.SKIPPED},
    PhaseState.ACTIVE: {PhaseState.ACTIVE, PhaseState.DONE},
    PhaseState.DONE: {PhaseState.DONE},
    PhaseState.SKIPPED: {PhaseState.SKIPPED},
}


# ── Basic projection ─────────────────────────────────────────


class TestProject:
    def test_initial_all_pending(self):
        checklist = initial_checklist()
        assert all(checklist.state(p) is PhaseState.PENDING for p in PhaseId)
        assert checklist.view is ChecklistView.UNSET

    def test_start_event_activates(self):
        assert _run(EventKind.INTENT).state(PhaseId.INTENT) is PhaseState.ACTIVE

    def test_completion_event_marks_done(self):
        checklist = _run(EventKind.INTENT, EventKind.INTENT_RESULT)
        assert checklist.state(PhaseId.INTENT) is PhaseState.DONE

    def test_completion_without_start(self):
        assert _run(EventKind.WORKSPACE_RESULT).state(PhaseId.WORKSPACE) is PhaseState.DONE

    def test_input_not_mutated(self):
        before = initial_checklist()
        project(before, _ev(EventKind.INTENT))
        assert before.state(PhaseId.INTENT) is PhaseState.PENDING

    @pytest.mark.parametrize("kind", [EventKind.SESSION_CREATED, EventKind.ERROR, "heartbeat"])
    def test_phaseless_events_leave_map_unchanged(self, kind):
        before = _run(EventKind.INTENT, EventKind.SQL_GENERATION)
        assert project(before, _ev(kind)) is before

    def test_later_phase_closes_earlier_active(self):
        checklist = _run(EventKind.INTENT, EventKind.SCHEMA_RETRIEVAL)
        assert checklist.state(PhaseId.INTENT) is PhaseState.DONE
        assert checklist.state(PhaseId.SCHEMA) is PhaseState.ACTIVE
        assert checklist.state(PhaseId.WORKSPACE) is PhaseState.PENDING

    def test_done_never_reactivated(self):
        checklist = _run(EventKind.INTENT_RESULT, EventKind.INTENT)
        assert checklist.state(PhaseId.INTENT) is PhaseState.DONE

    def test_result_closes_everything(self):
        checklist = _run(EventKind.INTENT, EventKind.EXECUTION, EventKind.RESULT)
        assert checklist.state(PhaseId.INTENT) is PhaseState.DONE
        assert checklist.state(PhaseId.EXECUTION) is PhaseState.DONE
        assert checklist.state(PhaseId.ANSWER) is PhaseState.DONE
        assert checklist.state(PhaseId.WORKSPACE) is PhaseState.SKIPPED
        assert not any(checklist.state(p) is PhaseState.ACTIVE for p in PhaseId)


# ── Planner sub-phases ───────────────────────────────────────


class TestPlanner:
    def test_hidden_until_first_sub_phase_event(self):
        checklist = _run(EventKind.SQL_GENERATION, EventKind.PLANNER_REQUESTED)
        assert not checklist.planner_visible
        assert PhaseId.PLANNER_STRATEGY not in visible_phases(checklist)

    def test_sub_phase_event_shows_planner(self):
        checklist = _run(EventKind.PLANNER_REQUESTED, EventKind.PLANNER_STRATEGY)
        assert checklist.planner_visible
        assert checklist.view is ChecklistView.CLASSIC
        assert checklist.state(PhaseId.SQL_GENERATION) is PhaseState.ACTIVE
        phases = visible_phases(checklist)
        start = phases.index(PhaseId.SQL_GENERATION)
        assert phases[start + 1 : start + 4] == list(PLANNER_SUB_PHASES)

    def test_sub_phases_progress_in_order(self):
        checklist = _run(EventKind.PLANNER_STRATEGY, EventKind.PLANNER_THINKING)
        assert checklist.state(PhaseId.PLANNER_STRATEGY) is PhaseState.DONE
        assert checklist.state(PhaseId.PLANNER_THINKING) is PhaseState.ACTIVE

    def test_planner_completed_closes_sub_phases(self):
        checklist = _run(
            EventKind.PLANNER_STRATEGY,
            EventKind.PLANNER_THINKING,
            EventKind.PLANNER_SYNTHESIS,
            EventKind.PLANNER_COMPLETED,
        )
        assert all(checklist.state(p) is PhaseState.DONE for p in PLANNER_SUB_PHASES)
        assert checklist.state(PhaseId.SQL_GENERATION) is PhaseState.DONE

    def test_planner_stays_visible_after_result(self):
        checklist = _run(EventKind.PLANNER_STRATEGY, EventKind.RESULT)
        assert checklist.planner_visible


# ── sql_generation / orchestration mutual exclusion ─────────


class TestViewExclusion:
    def test_default_view_shows_sql_generation(self):
        phases = visible_phases(initial_checklist())
        assert PhaseId.SQL_GENERATION in phases
        assert PhaseId.ORCHESTRATION not in phases

    def test_orchestrator_event_flips_view(self):
        checklist = _run(EventKind.INTENT, EventKind.ORCHESTRATOR)
        assert checklist.view is ChecklistView.ORCHESTRATED
        assert checklist.orchestrator_visible
        phases = visible_phases(checklist)
        assert PhaseId.ORCHESTRATION in phases
        assert PhaseId.SQL_GENERATION not in phases
        assert checklist.state(PhaseId.SQL_GENERATION) is PhaseState.SKIPPED

    def test_orchestrated_wins_over_classic(self):
        checklist = _run(EventKind.SQL_GENERATION, EventKind.ORCHESTRATOR_PLAN)
        assert checklist.view is ChecklistView.ORCHESTRATED
        assert checklist.state(PhaseId.SQL_GENERATION) is PhaseState.DONE

    def test_view_sticky_after_orchestration(self):
        checklist = _run(EventKind.ORCHESTRATOR, EventKind.SQL_GENERATION, EventKind.PLANNER_STRATEGY)
        assert checklist.view is ChecklistView.ORCHESTRATED
        assert not checklist.planner_visible
        assert PhaseId.SQL_GENERATION not in visible_phases(checklist)

    def test_orchestration_stays_active_during_execution(self):
        checklist = _run(EventKind.ORCHESTRATOR, EventKind.ORCHESTRATOR_TASK, EventKind.EXECUTION)
        assert checklist.state(PhaseId.ORCHESTRATION) is PhaseState.ACTIVE


# ── Properties over random event sequences ───────────────────


_PROGRESS_KINDS = [k for k in EventKind if k is not EventKind.AMBIGUITY_DETECTED]


class TestInvariants:
    @pytest.mark.parametrize("seed", range(25))
    def test_monotonic_and_exclusive(self, seed):
        rng = random.Random(seed)
        checklist = initial_checklist()
        seen_orchestration = False
        for kind in rng.choices(_PROGRESS_KINDS, k=40):
            after = project(checklist, _ev(kind))
            for phase in PhaseId:
                assert after.state(phase) in _ALLOWED[checklist.state(phase)], (kind, phase)

            phases = visible_phases(after)
            assert (PhaseId.SQL_GENERATION in phases) != (PhaseId.ORCHESTRATION in phases)
            seen_orchestration = seen_orchestration or kind.value.startswith("orchestrator")
            assert after.orchestrator_visible is seen_orchestration
            checklist = after

    def test_session_created_at_any_position_is_a_no_op(self):
        kinds = [EventKind.INTENT, EventKind.PLANNER_STRATEGY, EventKind.ORCHESTRATOR, EventKind.RESULT]
        for position in range(len(kinds) + 1):
            with_session = kinds[:position] + [EventKind.SESSION_CREATED] + kinds[position:]
            assert _run(*with_session) == _run(*kinds)

    def test_all_permutations_end_closed_after_result(self):
        kinds = [EventKind.INTENT, EventKind.SQL_GENERATION, EventKind.EXECUTION]
        for order in itertools.permutations(kinds):
            checklist = _run(*order, EventKind.RESULT)
            assert all(checklist.state(p).is_closed for p in PhaseId)
