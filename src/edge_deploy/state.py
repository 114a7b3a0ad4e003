"""
Deployment phase tracking.
Records start, completion and failure of each pipeline phase for one run.
"""
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, asdict, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class DeploymentPhase(Enum):
    """Deployment phases in order."""
    PACKAGE = "package"
    PUBLISH_ASSETS = "publish_assets"
    DEPLOY_FUNCTION = "deploy_function"
    BIND_TRIGGER = "bind_trigger"
    INVALIDATE_CACHE = "invalidate_cache"


class PhaseStatus(Enum):
    """Status of a single phase."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PhaseState:
    """State of a single deployment phase."""
    phase: str
    status: str = PhaseStatus.PENDING.value
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    duration_seconds: Optional[float] = None
    resources: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class DeploymentState:
    """Complete deployment state tracking."""
    deployment_id: str
    started_at: float
    phases: Dict[str, PhaseState]
    current_phase: Optional[str] = None
    status: str = "in_progress"
    completed_at: Optional[float] = None
    total_duration: Optional[float] = None


class DeploymentTracker:
    """Tracks phase transitions of one pipeline run, optionally mirrored to a JSON file."""

    def __init__(self, deployment_id: Optional[str] = None, state_file: Optional[str] = None):
        self.state_file = Path(state_file) if state_file else None
        self._lock = threading.Lock()
        self.state = DeploymentState(
            deployment_id=deployment_id or f"deploy-{uuid.uuid4().hex[:12]}",
            started_at=time.time(),
            phases={phase.value: PhaseState(phase=phase.value) for phase in DeploymentPhase},
        )
        self._save_state()
        logger.info(f"Started deployment tracking: {self.state.deployment_id}")

    def phase(self, phase: DeploymentPhase) -> PhaseState:
        return self.state.phases[phase.value]

    def start_phase(self, phase: DeploymentPhase) -> None:
        """Mark a phase as started."""
        phase_state = self.phase(phase)
        phase_state.status = PhaseStatus.IN_PROGRESS.value
        phase_state.started_at = time.time()

        self.state.current_phase = phase.value
        self._save_state()
        logger.info(f"Phase started: {phase.value}")

    def complete_phase(self, phase: DeploymentPhase, resources: Dict[str, Any] = None) -> None:
        """Mark a phase as completed with resource tracking."""
        phase_state = self.phase(phase)
        phase_state.status = PhaseStatus.COMPLETED.value
        phase_state.completed_at = time.time()

        if phase_state.started_at:
            phase_state.duration_seconds = phase_state.completed_at - phase_state.started_at

        if resources:
            phase_state.resources.update(resources)

        self._save_state()

        duration_str = f" in {phase_state.duration_seconds:.1f}s" if phase_state.duration_seconds else ""
        logger.info(f"Phase completed: {phase.value}{duration_str}")

    def fail_phase(self, phase: DeploymentPhase, error_message: str) -> None:
        """Mark a phase as failed."""
        phase_state = self.phase(phase)
        phase_state.status = PhaseStatus.FAILED.value
        phase_state.completed_at = time.time()
        phase_state.error_message = error_message

        self._save_state()
        logger.error(f"Phase failed: {phase.value} - {error_message}")

    def finish(self, success: bool) -> None:
        """Close out the run."""
        self.state.status = "completed" if success else "failed"
        self.state.current_phase = None
        self.state.completed_at = time.time()
        self.state.total_duration = self.state.completed_at - self.state.started_at
        self._save_state()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self.state)

    def _save_state(self) -> None:
        if not self.state_file:
            return
        try:
            with self._lock, open(self.state_file, "w") as f:
                json.dump(self.to_dict(), f, indent=2, default=str)
        except IOError as e:
            logger.warning(f"Could not save state file {self.state_file}: {e}")
