"""
Run data model
Preconditions, maintenance steps, run reports and delivery results for one maintenance run
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PreconditionKind(Enum):
    """Environmental gate kinds"""
    NETWORK_IDENTITY = "network"
    POWER_SOURCE = "power"


class PowerSource(Enum):
    """Power source as reported by the power probe"""
    AC = "ac"
    BATTERY = "battery"
    UNKNOWN = "unknown"


class StepOutcome(Enum):
    """Outcome of a single maintenance step"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunState(Enum):
    """Orchestrator states for one invocation"""
    IDLE = "idle"
    CHECKING_PRECONDITIONS = "checking_preconditions"
    SKIPPED = "skipped"
    RUNNING = "running"
    REPORTING = "reporting"
    DISPATCHING = "dispatching"
    DONE = "done"


# =============================================================================
# PRECONDITIONS
# =============================================================================

class PowerStatus(BaseModel):
    """Snapshot of the current power source"""
    model_config = ConfigDict(frozen=True)

    source: PowerSource = PowerSource.UNKNOWN
    percent: Optional[int] = None


class Precondition(BaseModel):
    """One environmental gate evaluated during a single attempt"""
    model_config = ConfigDict(frozen=True)

    kind: PreconditionKind
    expected: str
    observed: str = ""
    satisfied: bool = False
    checked_at: datetime = Field(default_factory=datetime.now)


class PreconditionResult(BaseModel):
    """Outcome of a bounded precondition evaluation"""
    model_config = ConfigDict(frozen=True)

    satisfied: bool
    last_known_network: Optional[str] = None
    last_known_power: PowerSource = PowerSource.UNKNOWN
    attempts: int = 0
    preconditions: Tuple[Precondition, ...] = ()

    @property
    def failed_kind(self) -> Optional[PreconditionKind]:
        """First unsatisfied gate from the last attempt, network before power"""
        for precondition in self.preconditions:
            if not precondition.satisfied:
                return precondition.kind
        return None


# =============================================================================
# MAINTENANCE STEPS
# =============================================================================

StepInvoker = Callable[[], Tuple[bool, str]]


@dataclass(frozen=True)
class StepDefinition:
    """A named unit of work; invoke returns (ok, log_text)"""
    name: str
    invoke: StepInvoker


class MaintenanceStep(BaseModel):
    """Recorded outcome of one executed step"""
    model_config = ConfigDict(frozen=True)

    name: str
    outcome: StepOutcome = StepOutcome.PENDING
    log_excerpt: str = ""
    duration_seconds: float = 0.0
    upgraded_count: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == StepOutcome.SUCCEEDED


# =============================================================================
# REPORT
# =============================================================================

SKIP_NETWORK = "network"
SKIP_POWER = "power"
SKIP_PACKAGE_MANAGER_MISSING = "package-manager-missing"


class RunReport(BaseModel):
    """Immutable record of one invocation's outcome"""
    model_config = ConfigDict(frozen=True)

    started_at: datetime
    finished_at: datetime
    steps: Tuple[MaintenanceStep, ...] = ()
    success_count: int = 0
    failure_count: int = 0
    skipped_reason: Optional[str] = None
    hostname: str = ""

    @model_validator(mode="after")
    def check_counts(self) -> "RunReport":
        if self.skipped_reason is not None:
            if self.steps:
                raise ValueError("a skipped report cannot carry steps")
        elif self.success_count + self.failure_count != len(self.steps):
            raise ValueError("success_count + failure_count must equal the number of steps")
        return self

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def all_succeeded(self) -> bool:
        return not self.skipped and self.failure_count == 0

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self):
        """Convert to plain dictionary for YAML status files"""
        return {
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'skipped_reason': self.skipped_reason,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'steps': {step.name: step.outcome.value for step in self.steps},
        }


class DeliveryResult(BaseModel):
    """Result of delivering a report through one channel"""
    model_config = ConfigDict(frozen=True)

    channel_id: str
    ok: bool
    error: Optional[str] = None
    skipped: bool = False
