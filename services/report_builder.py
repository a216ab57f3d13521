"""
Report builder
Turns completed step outcomes into an immutable RunReport with bounded log excerpts
"""
import socket
from datetime import datetime
from typing import Callable, Optional, Sequence

from models.run import MaintenanceStep, RunReport
from services.maintenance_runner import UPGRADE_APPLICATIONS, UPGRADE_PACKAGES, upgrade_count_hint

DEFAULT_EXCERPT_LINES = 20
DEFAULT_EXCERPT_CHARS = 4000


def tail_excerpt(text: str, max_lines: int = DEFAULT_EXCERPT_LINES, max_chars: int = DEFAULT_EXCERPT_CHARS) -> str:
    """Last max_lines lines of text, capped at max_chars characters"""
    lines = text.rstrip().splitlines()
    excerpt = "\n".join(lines[-max_lines:]) if max_lines > 0 else ""
    if len(excerpt) > max_chars:
        excerpt = excerpt[-max_chars:]
    return excerpt


class ReportBuilder:
    """Pure builder: the only inputs are the steps, the skip reason and the clock"""

    def __init__(self, excerpt_lines: int = DEFAULT_EXCERPT_LINES, excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
                 clock: Callable[[], datetime] = datetime.now, hostname: Optional[str] = None):
        self.excerpt_lines = excerpt_lines
        self.excerpt_chars = excerpt_chars
        self.clock = clock
        self.hostname = hostname if hostname is not None else socket.gethostname()

    def build(self, steps: Sequence[MaintenanceStep], skipped_reason: Optional[str] = None,
              started_at: Optional[datetime] = None) -> RunReport:
        if skipped_reason is not None and steps:
            raise ValueError("a skipped run cannot have executed steps")

        finished_at = self.clock()
        started_at = started_at or finished_at

        trimmed = tuple(self._trim(step) for step in steps)
        success_count = sum(1 for step in trimmed if step.succeeded)

        return RunReport(
            started_at=started_at,
            finished_at=finished_at,
            steps=trimmed,
            success_count=success_count,
            failure_count=len(trimmed) - success_count,
            skipped_reason=skipped_reason,
            hostname=self.hostname
        )

    def _trim(self, step: MaintenanceStep) -> MaintenanceStep:
        update = {'log_excerpt': tail_excerpt(step.log_excerpt, self.excerpt_lines, self.excerpt_chars)}
        if step.name in (UPGRADE_PACKAGES, UPGRADE_APPLICATIONS) and step.succeeded:
            update['upgraded_count'] = upgrade_count_hint(step.log_excerpt)
        return step.model_copy(update=update)
