"""Feature phase state machine using the transitions library.

Each phase step is an explicit trigger; there are no auto transitions, so any
jump that skips a phase is rejected by the machine itself. Preconditions
(approval, open questions, analysis status) are evaluated by the engine before
a trigger fires, because they need structured failure signals rather than a
boolean guard.

Usage:
    from specflow.workflow.fsm import FeatureFSM

    fsm = FeatureFSM(feature_dir)
    fsm.clarify()   # specify -> clarify
    fsm.plan()      # clarify -> plan
"""

import logging
from pathlib import Path
from typing import Callable

from transitions import Machine

from specflow.lib import envparse
from specflow.lib.config import update_feature_meta
from specflow.lib.constants import META_FILE
from specflow.lib.signals import StorageUnavailable
from specflow.workflow.phases import FEATURE_PHASES, INITIAL_PHASE, TERMINAL_PHASES, Phase

logger = logging.getLogger(__name__)


STATES = [phase.value for phase in FEATURE_PHASES] + [Phase.ABANDONED.value]

# One trigger per forward step, named after the destination phase
TRANSITIONS = [
    {"trigger": "clarify", "source": "specify", "dest": "clarify"},
    {"trigger": "plan", "source": "clarify", "dest": "plan"},
    {"trigger": "tasks", "source": "plan", "dest": "tasks"},
    {"trigger": "analyze", "source": "tasks", "dest": "analyze"},
    {"trigger": "implement", "source": "analyze", "dest": "implement"},
    {"trigger": "complete", "source": "implement", "dest": "done"},
] + [
    # Operator abandon path, reachable from every non-terminal phase
    {"trigger": "abandon", "source": phase.value, "dest": "abandoned"}
    for phase in FEATURE_PHASES
    if phase not in TERMINAL_PHASES
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class FeatureFSM:
    """State machine for a feature's current phase.

    Wraps the transitions library with feature-specific logic:
    - Loads initial phase from meta.env
    - Persists phase changes to meta.env
    - Logs all transitions
    """

    def __init__(self, feature_dir: Path, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a feature.

        Args:
            feature_dir: Path to feature directory (contains meta.env)
            on_transition: Optional callback(from_state, to_state, trigger) run
                after the machine moves and before the new phase is persisted.
                If it raises, the phase on disk is left unchanged.
        """
        self.feature_dir = feature_dir
        self.feature_id = feature_dir.name
        self.on_transition = on_transition

        initial = self._load_state()
        if initial not in STATES:
            raise StorageUnavailable(
                f"Unknown phase '{initial}' for feature {self.feature_id}",
                str(feature_dir / META_FILE),
            )

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def _load_state(self) -> str:
        """Load current phase from meta.env."""
        meta_path = self.feature_dir / META_FILE
        try:
            env = envparse.load_env(meta_path)
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Cannot read feature record: {e}", str(meta_path)) from e
        return env.get("PHASE", INITIAL_PHASE.value)

    def _save_state(self, previous: str) -> None:
        """Save current phase to meta.env."""
        updates = {"PHASE": self.state}
        if self.state == Phase.ABANDONED.value:
            updates["PREVIOUS_PHASE"] = previous
        try:
            update_feature_meta(self.feature_dir, updates)
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Cannot persist phase: {e}", str(self.feature_dir / META_FILE)) from e

    def on_state_change(self, event) -> None:
        """Callback after any state transition.

        Runs the on_transition hook, then persists the phase.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

        self._save_state(from_state)
        logger.info(f"[FSM] {self.feature_id}: {from_state} -> {to_state} ({trigger})")

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)
