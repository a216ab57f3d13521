"""
Maintenance runner
Executes the ordered maintenance steps one after another, recording each outcome
"""
import logging
from time import time
from typing import List, Sequence

from models.run import MaintenanceStep, StepDefinition, StepOutcome
from services.package_manager import PackageManager

logger = logging.getLogger(__name__)

REFRESH_INDEX = "refresh-index"
UPGRADE_PACKAGES = "upgrade-packages"
UPGRADE_APPLICATIONS = "upgrade-applications"
PRUNE_CACHE = "prune-cache"

# Refresh must precede upgrades and prune must come last
CANONICAL_STEP_ARGS = (
    (REFRESH_INDEX, ["update"]),
    (UPGRADE_PACKAGES, ["upgrade"]),
    (UPGRADE_APPLICATIONS, ["upgrade", "--cask"]),
    (PRUNE_CACHE, ["cleanup"]),
)

STEP_LABELS = {
    REFRESH_INDEX: "Package index refreshed",
    UPGRADE_PACKAGES: "Packages upgraded",
    UPGRADE_APPLICATIONS: "Applications upgraded",
    PRUNE_CACHE: "Cleanup completed",
}


def package_manager_step(package_manager: PackageManager, name: str, args: List[str]) -> StepDefinition:
    """Wrap one package manager subcommand as a StepDefinition"""
    def invoke():
        result = package_manager.invoke(args)
        return result.ok, result.output
    return StepDefinition(name=name, invoke=invoke)


def canonical_steps(package_manager: PackageManager, upgrade_applications: bool = True) -> List[StepDefinition]:
    """The four maintenance steps in their required order"""
    steps = []
    for name, args in CANONICAL_STEP_ARGS:
        if name == UPGRADE_APPLICATIONS and not upgrade_applications:
            continue
        steps.append(package_manager_step(package_manager, name, args))
    return steps


def dry_run_steps(upgrade_applications: bool = True) -> List[StepDefinition]:
    """Same step names as canonical_steps, but nothing is executed"""
    return [
        StepDefinition(name=name, invoke=lambda args=args: (True, f"dry run: would run {' '.join(args)}"))
        for name, args in CANONICAL_STEP_ARGS
        if upgrade_applications or name != UPGRADE_APPLICATIONS
    ]


def upgrade_count_hint(output: str) -> int:
    """Number of `==> Upgrading` lines; display only, never used for accounting"""
    return sum(1 for line in output.splitlines() if line.startswith("==> Upgrading "))


class MaintenanceRunner:
    """Runs steps sequentially; a failed step never stops the ones after it"""

    def run(self, steps: Sequence[StepDefinition]) -> List[MaintenanceStep]:
        completed = []
        total = len(steps)

        for index, definition in enumerate(steps, start=1):
            logger.info(f"Step {index}/{total}: {definition.name}")
            start_time = time()

            try:
                ok, log_text = definition.invoke()
            except Exception as e:
                logger.error(f"Step '{definition.name}' raised: {e}")
                ok, log_text = False, f"{type(e).__name__}: {e}"

            duration = time() - start_time
            outcome = StepOutcome.SUCCEEDED if ok else StepOutcome.FAILED
            completed.append(MaintenanceStep(
                name=definition.name,
                outcome=outcome,
                log_excerpt=log_text or "",
                duration_seconds=duration
            ))

            if ok:
                logger.info(f"Step '{definition.name}' succeeded in {duration:.1f}s")
            else:
                logger.warning(f"Step '{definition.name}' failed after {duration:.1f}s")

        return completed
