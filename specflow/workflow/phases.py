"""Phase and artifact-kind definitions.

Phases run in a strict total order. Each producing phase owns exactly one
artifact kind; Implement and Done own none.
"""

from enum import Enum


class Phase(Enum):
    """All feature phases.

    Values are the strings persisted in meta.env.
    """

    CONSTITUTION = "constitution"
    SPECIFY = "specify"
    CLARIFY = "clarify"
    PLAN = "plan"
    TASKS = "tasks"
    ANALYZE = "analyze"
    IMPLEMENT = "implement"
    DONE = "done"
    ABANDONED = "abandoned"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ArtifactKind(Enum):
    """Artifact kinds; values double as file stems."""

    CONSTITUTION = "constitution"
    SPEC = "spec"
    CLARIFICATIONS = "clarifications"
    PLAN = "plan"
    TASKS = "tasks"
    ANALYSIS = "analysis"


PHASE_ORDER = [
    Phase.CONSTITUTION,
    Phase.SPECIFY,
    Phase.CLARIFY,
    Phase.PLAN,
    Phase.TASKS,
    Phase.ANALYZE,
    Phase.IMPLEMENT,
    Phase.DONE,
]

# Phases a feature can occupy. Constitution is project-scoped.
FEATURE_PHASES = PHASE_ORDER[1:]
INITIAL_PHASE = Phase.SPECIFY
TERMINAL_PHASES = frozenset({Phase.DONE, Phase.ABANDONED})

ARTIFACT_FOR_PHASE = {
    Phase.CONSTITUTION: ArtifactKind.CONSTITUTION,
    Phase.SPECIFY: ArtifactKind.SPEC,
    Phase.CLARIFY: ArtifactKind.CLARIFICATIONS,
    Phase.PLAN: ArtifactKind.PLAN,
    Phase.TASKS: ArtifactKind.TASKS,
    Phase.ANALYZE: ArtifactKind.ANALYSIS,
}

PHASE_FOR_ARTIFACT = {kind: phase for phase, kind in ARTIFACT_FOR_PHASE.items()}

# Artifacts whose approval changes the requirement/task index
INDEXED_KINDS = frozenset({ArtifactKind.SPEC, ArtifactKind.TASKS})

# Artifacts that carry open questions gating advancement
QUESTION_KINDS = frozenset({ArtifactKind.SPEC, ArtifactKind.CLARIFICATIONS})


def parse_phase(value: str | None) -> Phase | None:
    """Parse a phase name (case-insensitive). Returns None if unknown."""
    if value is None:
        return None
    value = value.strip().lower()
    for phase in Phase:
        if phase.value == value:
            return phase
    return None


def parse_kind(value: str | None) -> ArtifactKind | None:
    """Parse an artifact kind name (case-insensitive). Returns None if unknown."""
    if value is None:
        return None
    value = value.strip().lower()
    for kind in ArtifactKind:
        if kind.value == value:
            return kind
    return None


def successor(phase: Phase) -> Phase | None:
    """Immediate successor in the fixed order, None for terminal phases."""
    if phase in TERMINAL_PHASES:
        return None
    index = PHASE_ORDER.index(phase)
    return PHASE_ORDER[index + 1]


def phase_index(phase: Phase) -> int:
    """Position in the fixed order. Abandoned sorts after everything."""
    if phase is Phase.ABANDONED:
        return len(PHASE_ORDER)
    return PHASE_ORDER.index(phase)
