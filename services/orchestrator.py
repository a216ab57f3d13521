"""
Maintenance orchestrator
Wires precondition checking, the maintenance run, reporting and dispatch into one invocation
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from config import AgentConfig
from models.run import (
    DeliveryResult, PreconditionKind, RunReport, RunState, StepDefinition,
    SKIP_NETWORK, SKIP_PACKAGE_MANAGER_MISSING, SKIP_POWER,
)
from services.maintenance_runner import MaintenanceRunner
from services.notification_dispatcher import NotificationDispatcher
from services.precondition_checker import PreconditionChecker
from services.report_builder import ReportBuilder

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """Everything one invocation produced"""
    report: RunReport
    deliveries: List[DeliveryResult]
    states: List[RunState] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return NotificationDispatcher.any_delivered(self.deliveries)


class Orchestrator:
    """State machine: IDLE -> CHECKING_PRECONDITIONS -> SKIPPED|RUNNING -> REPORTING -> DISPATCHING -> DONE

    There is no retry of the whole run; retries live only in precondition checking.
    """

    def __init__(self, config: AgentConfig, package_manager, precondition_checker: PreconditionChecker,
                 channels: Sequence, steps: Sequence[StepDefinition],
                 runner: Optional[MaintenanceRunner] = None,
                 report_builder: Optional[ReportBuilder] = None,
                 dispatcher: Optional[NotificationDispatcher] = None,
                 run_logger=None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config
        self.package_manager = package_manager
        self.precondition_checker = precondition_checker
        self.channels = list(channels)
        self.steps = list(steps)
        self.runner = runner or MaintenanceRunner()
        self.report_builder = report_builder or ReportBuilder(excerpt_lines=config.excerpt_lines, clock=clock)
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.run_logger = run_logger
        self.clock = clock
        self.state = RunState.IDLE
        self.states: List[RunState] = [RunState.IDLE]

    def _transition(self, state: RunState):
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        self.states.append(state)

    def run(self) -> RunOutcome:
        self.state = RunState.IDLE
        self.states = [RunState.IDLE]
        started_at = self.clock()
        logger.info(f"Maintenance run started at {started_at.isoformat()}")

        self._transition(RunState.CHECKING_PRECONDITIONS)
        skipped_reason = self._check_preconditions()

        if skipped_reason is not None:
            self._transition(RunState.SKIPPED)
            logger.warning(f"Skipping maintenance: {skipped_reason}")
            report = self.report_builder.build([], skipped_reason=skipped_reason, started_at=started_at)
        else:
            self._transition(RunState.RUNNING)
            logger.info("All conditions met. Proceeding with maintenance...")
            completed = self.runner.run(self.steps)

            self._transition(RunState.REPORTING)
            report = self.report_builder.build(completed, started_at=started_at)
            logger.info(f"Maintenance finished: {report.success_count} succeeded, {report.failure_count} failed")

        self._transition(RunState.DISPATCHING)
        deliveries = self.dispatcher.dispatch(report, self.channels)

        if self.run_logger is not None:
            self.run_logger.record_report(report, deliveries)

        self._transition(RunState.DONE)
        return RunOutcome(report=report, deliveries=deliveries, states=list(self.states))

    def _check_preconditions(self) -> Optional[str]:
        """Skip reason, or None when maintenance may run"""
        if not self.package_manager.is_available():
            logger.error(f"Package manager '{getattr(self.package_manager, 'binary', '?')}' is not installed")
            return SKIP_PACKAGE_MANAGER_MISSING

        conditions = self.config.conditions
        retry = self.config.retry
        result = self.precondition_checker.evaluate(
            required_network=conditions.required_network,
            require_power=conditions.require_ac_power,
            max_attempts=retry.max_attempts,
            delay=retry.delay_seconds,
            allowed_networks=conditions.allowed_networks,
            min_battery_percent=conditions.min_battery_percent
        )
        if result.satisfied:
            return None
        if result.failed_kind == PreconditionKind.POWER_SOURCE:
            return SKIP_POWER
        return SKIP_NETWORK
