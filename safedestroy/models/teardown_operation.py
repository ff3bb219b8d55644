"""Teardown operation model.

Represents one orchestrator run with its state history and outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class OperationMode(Enum):
    """Operation execution mode."""

    DRY_RUN = "dry-run"
    EXECUTE = "execute"


class CoordinatorState(Enum):
    """Destroy coordinator states."""

    PLANNING = "planning"
    FULL_DESTROY_ATTEMPT = "full-destroy-attempt"
    TARGETED_DESTROY_ATTEMPT = "targeted-destroy-attempt"
    ESCALATED = "escalated"
    VERIFIED = "verified"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CoordinatorState.VERIFIED, CoordinatorState.ABORTED, CoordinatorState.FAILED)


# Allowed transitions of the coordinator state machine
TRANSITIONS: Dict[CoordinatorState, tuple] = {
    CoordinatorState.PLANNING: (
        CoordinatorState.FULL_DESTROY_ATTEMPT,
        CoordinatorState.VERIFIED,
        CoordinatorState.FAILED,
    ),
    CoordinatorState.FULL_DESTROY_ATTEMPT: (
        CoordinatorState.TARGETED_DESTROY_ATTEMPT,
        CoordinatorState.VERIFIED,
        CoordinatorState.FAILED,
    ),
    CoordinatorState.TARGETED_DESTROY_ATTEMPT: (
        CoordinatorState.ESCALATED,
        CoordinatorState.VERIFIED,
        CoordinatorState.FAILED,
    ),
    CoordinatorState.ESCALATED: (
        CoordinatorState.VERIFIED,
        CoordinatorState.ABORTED,
        CoordinatorState.FAILED,
    ),
    CoordinatorState.VERIFIED: (),
    CoordinatorState.ABORTED: (),
    CoordinatorState.FAILED: (),
}


class Outcome(Enum):
    """Verification outcome; each value maps to a process exit code."""

    CLEAN = "clean"
    RESOURCES_REMAIN = "resources-remain"
    MANIFEST_ONLY = "manifest-only"

    @property
    def exit_code(self) -> int:
        return {Outcome.CLEAN: 0, Outcome.RESOURCES_REMAIN: 1, Outcome.MANIFEST_ONLY: 2}[self]


@dataclass
class StageError:
    """One error aggregated at stage completion.

    Attributes:
        stage: Stage or kind the error happened in
        error_type: Taxonomy class name (e.g. "PermissionDenied")
        message: Error text
        resource_ids: Affected resources
        remediation: Manual command, if known
        fatal: True for permission/provider errors
    """

    stage: str
    error_type: str
    message: str
    resource_ids: List[str] = field(default_factory=list)
    remediation: Optional[str] = None
    fatal: bool = False

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "error_type": self.error_type,
            "message": self.message,
            "resource_ids": list(self.resource_ids),
            "remediation": self.remediation,
            "fatal": self.fatal,
        }


@dataclass
class TeardownOperation:
    """Teardown operation entity.

    State transitions:
        planning → full-destroy-attempt → verified
        planning → full-destroy-attempt → targeted-destroy-attempt → verified
        ... → targeted-destroy-attempt → escalated → verified | aborted

    Attributes:
        operation_id: Unique identifier for the operation
        deployment_tag: Deployment being torn down
        mode: dry-run or execute
        timestamp: When the operation started (UTC)
        state: Current coordinator state
        history: Every state entered, in order
        plan: DestroyPlan kinds, in order
        full_attempts: Number of full destroy attempts made
        targeted_kinds: Kinds processed by targeted destroy, in order
        errors: Aggregated stage errors
        outcome: Verification outcome once known
        completed_at: When the operation reached a terminal state
    """

    operation_id: str
    deployment_tag: str
    mode: OperationMode
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: CoordinatorState = CoordinatorState.PLANNING
    history: List[CoordinatorState] = field(default_factory=lambda: [CoordinatorState.PLANNING])
    plan: List[str] = field(default_factory=list)
    full_attempts: int = 0
    targeted_kinds: List[str] = field(default_factory=list)
    errors: List[StageError] = field(default_factory=list)
    outcome: Optional[Outcome] = None
    completed_at: Optional[datetime] = None

    def transition(self, new_state: CoordinatorState) -> None:
        """Move to ``new_state``.

        Raises:
            ValueError: If the transition is not allowed
        """
        if new_state not in TRANSITIONS[self.state]:
            raise ValueError(f"Invalid transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        if new_state.is_terminal:
            self.completed_at = datetime.now(timezone.utc)

    def reached(self, state: CoordinatorState) -> bool:
        return state in self.history

    def add_error(self, error: StageError) -> None:
        self.errors.append(error)

    @property
    def fatal_errors(self) -> List[StageError]:
        return [e for e in self.errors if e.fatal]

    @property
    def duration_seconds(self) -> Optional[float]:
        if not self.completed_at:
            return None
        return (self.completed_at - self.timestamp).total_seconds()

    def to_dict(self) -> dict:
        """Convert operation to dictionary for the audit ledger."""
        return {
            "operation_id": self.operation_id,
            "deployment_tag": self.deployment_tag,
            "mode": self.mode.value,
            "timestamp": self.timestamp.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "plan": list(self.plan),
            "full_attempts": self.full_attempts,
            "targeted_kinds": list(self.targeted_kinds),
            "outcome": self.outcome.value if self.outcome else None,
            "errors": [e.to_dict() for e in self.errors],
        }
