"""
Notification message formatting
Derives the single-line summary and the detailed report from one immutable RunReport
"""
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import DictLoader, Environment

from models.run import (
    RunReport, SKIP_NETWORK, SKIP_PACKAGE_MANAGER_MISSING, SKIP_POWER,
)
from services.maintenance_runner import STEP_LABELS, UPGRADE_APPLICATIONS, UPGRADE_PACKAGES

APP_NAME = "Brewkeeper"

# Longest message each provider accepts, subject included
PROVIDER_MESSAGE_LIMITS = {
    "telegram": 4096,
}

TRIMMED_MARKER = "[... earlier output trimmed]"

SKIP_DESCRIPTIONS = {
    SKIP_NETWORK: "not connected to the required network",
    SKIP_POWER: "not on the required power source",
    SKIP_PACKAGE_MANAGER_MISSING: "package manager is not installed",
}

DETAILED_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; }
        .header { background-color: #f0f0f0; padding: 10px; border-radius: 5px; }
        .success { color: #28a745; }
        .error { color: #dc3545; }
        .warning { color: #b8860b; }
        .log { background-color: #f8f9fa; padding: 10px; border-radius: 5px; font-family: monospace; }
    </style>
</head>
<body>
    <div class="header">
        <h2>{{ app_name }} Report</h2>
        <p><strong>Started:</strong> {{ report.started_at.strftime('%Y-%m-%d %H:%M:%S') }}</p>
        <p><strong>Finished:</strong> {{ report.finished_at.strftime('%Y-%m-%d %H:%M:%S') }}</p>
        <p><strong>Host:</strong> {{ report.hostname }}</p>
    </div>
{% if report.skipped %}
    <h3 class="warning">Run skipped: {{ skip_description }}</h3>
{% else %}
    {% if report.failure_count == 0 %}
    <h3 class="success">All maintenance steps completed successfully</h3>
    {% else %}
    <h3 class="warning">Some maintenance steps had issues</h3>
    {% endif %}
    <ul>
        <li>Successful steps: {{ report.success_count }}</li>
        <li>Failed steps: {{ report.failure_count }}</li>
        {% if packages is not none %}<li>Packages upgraded: {{ packages }}</li>{% endif %}
        {% if applications is not none %}<li>Applications upgraded: {{ applications }}</li>{% endif %}
    </ul>
    {% for step in report.steps %}
    <div>
        <h4 class="{{ 'success' if step.succeeded else 'error' }}">{{ step_labels.get(step.name, step.name) }}: {{ step.outcome.value }} ({{ '%.1f' % step.duration_seconds }}s)</h4>
        {% if step.log_excerpt %}<div class="log"><pre>{{ step.log_excerpt }}</pre></div>{% endif %}
    </div>
    {% endfor %}
{% endif %}
    <hr>
    <p><em>This is an automated message from your package maintenance agent.</em></p>
</body>
</html>
"""

_jinja_env = Environment(
    loader=DictLoader({'detailed_report.html': DETAILED_HTML_TEMPLATE}),
    autoescape=True
)


class NotificationMessageFormatter:
    """Formats summary and detailed messages for every provider"""

    def skip_description(self, reason: str) -> str:
        return SKIP_DESCRIPTIONS.get(reason, reason)

    def upgrade_counts(self, report: RunReport) -> Tuple[Any, Any]:
        """(packages, applications) upgraded, None when the step did not succeed"""
        counts = {step.name: step.upgraded_count for step in report.steps}
        return counts.get(UPGRADE_PACKAGES), counts.get(UPGRADE_APPLICATIONS)

    def create_title(self, report: RunReport) -> str:
        stamp = report.finished_at.strftime('%Y-%m-%d %H:%M')
        if report.skipped:
            return f"{APP_NAME} Skipped - {stamp}"
        if report.failure_count:
            return f"{APP_NAME} Completed With Issues - {stamp}"
        return f"{APP_NAME} Completed - {stamp}"

    def create_summary_line(self, report: RunReport) -> str:
        """Short single-line status for text-message style channels"""
        if report.skipped:
            return f"[WARNING] {APP_NAME}: Skipped - {self.skip_description(report.skipped_reason)}"

        total = report.success_count + report.failure_count
        if report.failure_count == 0:
            packages, applications = self.upgrade_counts(report)
            extras = []
            if packages is not None:
                extras.append(f"{packages} pkgs")
            if applications is not None:
                extras.append(f"{applications} apps")
            suffix = f", {', '.join(extras)}" if extras else ""
            return f"[SUCCESS] {APP_NAME}: {report.success_count}/{total} steps ok{suffix}"

        failed = ", ".join(step.name for step in report.steps if not step.succeeded)
        return f"[WARNING] {APP_NAME}: Issues ({report.success_count}/{total} steps ok, failed: {failed})"

    def create_detailed_text(self, report: RunReport, max_length: Optional[int] = None) -> str:
        """Full plain-text report including log excerpts

        With max_length set, the header and counts are always kept and each step's excerpt
        is cut back to its most recent lines until the text fits.
        """
        lines = [
            f"{APP_NAME} Report",
            f"Started: {report.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Finished: {report.finished_at.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Host: {report.hostname}",
            "",
        ]

        if report.skipped:
            lines.append(f"Run skipped: {self.skip_description(report.skipped_reason)}")
            return self._clip("\n".join(lines), max_length)

        lines.append(f"Successful steps: {report.success_count}")
        lines.append(f"Failed steps: {report.failure_count}")
        packages, applications = self.upgrade_counts(report)
        if packages is not None:
            lines.append(f"Packages upgraded: {packages}")
        if applications is not None:
            lines.append(f"Applications upgraded: {applications}")

        excerpts = {step.name: step.log_excerpt.splitlines() for step in report.steps}
        text = self._render_steps(lines, report, excerpts)
        if max_length is None or len(text) <= max_length:
            return text

        with_logs = [name for name, excerpt in excerpts.items() if excerpt]
        bare = self._render_steps(lines, report, {})
        per_step = max(max_length - len(bare), 0) // max(len(with_logs), 1)
        trimmed = {name: self._tail_within(excerpts[name], per_step) for name in with_logs}
        return self._clip(self._render_steps(lines, report, trimmed), max_length)

    @staticmethod
    def _render_steps(header: List[str], report: RunReport, excerpts: Dict[str, List[str]]) -> str:
        lines = list(header)
        for step in report.steps:
            marker = "OK" if step.succeeded else "FAILED"
            lines.append("")
            lines.append(f"[{marker}] {STEP_LABELS.get(step.name, step.name)} ({step.name}, {step.duration_seconds:.1f}s)")
            lines.extend(f"    {line}" for line in excerpts.get(step.name, ()))
        return "\n".join(lines)

    @staticmethod
    def _tail_within(excerpt: List[str], budget: int) -> List[str]:
        """Last lines of an excerpt that fit in budget characters, behind a trim marker"""
        used = len(TRIMMED_MARKER) + 5
        kept: List[str] = []
        for line in reversed(excerpt):
            cost = len(line) + 5    # newline plus indent
            if used + cost > budget:
                break
            kept.insert(0, line)
            used += cost
        if len(kept) == len(excerpt):
            return kept
        return [TRIMMED_MARKER] + kept if kept else []

    @staticmethod
    def _clip(text: str, max_length: Optional[int]) -> str:
        if max_length is None or len(text) <= max_length:
            return text
        return text[:max_length]

    def create_detailed_html(self, report: RunReport) -> str:
        packages, applications = self.upgrade_counts(report)
        template = _jinja_env.get_template('detailed_report.html')
        return template.render(
            app_name=APP_NAME,
            report=report,
            skip_description=self.skip_description(report.skipped_reason) if report.skipped else "",
            packages=packages,
            applications=applications,
            step_labels=STEP_LABELS
        )

    def format_message_for_provider(self, provider_name: str, kind: str, report: RunReport) -> Dict[str, Any]:
        """Subject and body for one provider; summary channels get one line, detailed channels the full report"""
        subject = self.create_title(report)

        if kind == "summary":
            return {"subject": subject, "message": self.create_summary_line(report)}

        if provider_name == "email":
            return {"subject": subject, "message": self.create_detailed_html(report), "html": True}

        limit = PROVIDER_MESSAGE_LIMITS.get(provider_name)
        if limit is not None:
            limit -= len(subject) + 2    # subject, blank line, body
        return {"subject": subject, "message": self.create_detailed_text(report, max_length=limit)}
