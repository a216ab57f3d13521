"""
Run logging service
Appends per-run history to the run log and tracks the last run status in a YAML file
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from models.run import RunReport

logger = logging.getLogger(__name__)


class YAMLFileManager:
    """YAML file load/save with error handling"""

    @staticmethod
    def load_yaml_file(file_path: Path, default_value: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if default_value is None:
            default_value = {}

        if not file_path.exists():
            return default_value

        try:
            content = file_path.read_text().strip()
            if not content:
                return default_value

            data = yaml.safe_load(content)
            return data if isinstance(data, dict) else default_value

        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Could not load {file_path.name}: {e}")
            return default_value

    @staticmethod
    def save_yaml_file(file_path: Path, data: Dict[str, Any]) -> bool:
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(yaml.safe_dump(data, default_flow_style=False, indent=2))
            return True
        except OSError as e:
            logger.error(f"Could not save {file_path.name}: {e}")
            return False


class RunLogger:
    """Records run history; a failure to record never affects the run itself"""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.history_file = self.state_dir / "runs.log"
        self.status_file = self.state_dir / "last_run.yaml"
        self.yaml_manager = YAMLFileManager()

    def log_run_entry(self, message: str, level: str = "INFO"):
        """Append one line to the run history file"""
        timestamp = datetime.now().isoformat()
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with self.history_file.open('a') as f:
                f.write(f"[{timestamp}] {level}: {message}\n")
        except OSError as e:
            logger.error(f"Could not write to run log {self.history_file}: {e}")

    def record_report(self, report: RunReport, deliveries=()):
        """Write history lines and the last-run status for one report"""
        if report.skipped:
            self.log_run_entry(f"Run skipped: {report.skipped_reason}", "WARNING")
        else:
            for step in report.steps:
                level = "INFO" if step.succeeded else "ERROR"
                self.log_run_entry(f"{step.name}: {step.outcome.value} ({step.duration_seconds:.1f}s)", level)
            self.log_run_entry(
                f"Run finished: {report.success_count} succeeded, {report.failure_count} failed"
            )

        status = report.to_dict()
        status['status'] = self._status_label(report)
        status['deliveries'] = {
            d.channel_id: ('skipped' if d.skipped else 'ok' if d.ok else f"failed: {d.error}")
            for d in deliveries
        }
        self.yaml_manager.save_yaml_file(self.status_file, status)

    def get_last_run(self) -> Dict[str, Any]:
        return self.yaml_manager.load_yaml_file(self.status_file)

    @staticmethod
    def _status_label(report: RunReport) -> str:
        if report.skipped:
            return "skipped"
        return "success" if report.failure_count == 0 else "partial_failure"
