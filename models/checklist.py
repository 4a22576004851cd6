"""Progress checklist — per-phase state of one assistant turn.

The checklist is a fixed mapping from every :class:`PhaseId` to a
:class:`PhaseState`, plus the :class:`ChecklistView` flag deciding whether
the turn shows the classic ``sql_generation`` step or the ``orchestration``
step.  Instances are immutable; ``services.checklist.project`` returns a new
checklist for each event.
"""

from __future__ import annotations

from enum import Enum

from pydantic import ConfigDict, Field

from models.base import CamelModel
from models.stream_event import PLANNER_SUB_PHASES, PhaseId


class PhaseState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    SKIPPED = "skipped"

    @property
    def is_closed(self) -> bool:
        return self in (PhaseState.DONE, PhaseState.SKIPPED)


class ChecklistView(str, Enum):
    """Which of the two mutually exclusive SQL steps a turn displays."""

    UNSET = "unset"
    CLASSIC = "classic"
    ORCHESTRATED = "orchestrated"


PHASE_LABELS: dict[PhaseId, str] = {
    PhaseId.INTENT: "Analyse de l'intention",
    PhaseId.WORKSPACE: "Identification du contexte",
    PhaseId.SCHEMA: "Recherche des schémas",
    PhaseId.SQL_EXAMPLES: "Recherche d'exemples SQL",
    PhaseId.SQL_GENERATION: "Génération de la requête SQL",
    PhaseId.PLANNER_STRATEGY: "Planner: établir stratégie",
    PhaseId.PLANNER_THINKING: "Planner: Thinking",
    PhaseId.PLANNER_SYNTHESIS: "Planner: Synthétisation",
    PhaseId.ORCHESTRATION: "Orchestration",
    PhaseId.EXECUTION: "Exécution de la requête",
    PhaseId.ANSWER: "Génération de la réponse",
}


def _all_pending() -> dict[PhaseId, PhaseState]:
    return {phase: PhaseState.PENDING for phase in PhaseId}


class Checklist(CamelModel):
    """Immutable phase map of one turn."""

    model_config = ConfigDict(frozen=True)

    phases: dict[PhaseId, PhaseState] = Field(default_factory=_all_pending)
    view: ChecklistView = ChecklistView.UNSET

    def state(self, phase: PhaseId) -> PhaseState:
        return self.phases.get(phase, PhaseState.PENDING)

    @property
    def orchestrator_visible(self) -> bool:
        return self.view is ChecklistView.ORCHESTRATED

    @property
    def planner_visible(self) -> bool:
        """Planner sub-phases show once any of them has been reached."""
        return not self.orchestrator_visible and any(
            self.state(sub) in (PhaseState.ACTIVE, PhaseState.DONE)
            for sub in PLANNER_SUB_PHASES
        )
