"""
Power source probe
Reports whether the machine is on AC power or battery, and the battery level when known
"""
import re
import logging
import platform
from pathlib import Path
from typing import Optional

from models.run import PowerSource, PowerStatus
from services.command_execution_service import CommandExecutionService, ExecutionConfig

logger = logging.getLogger(__name__)

PERCENT_PATTERN = re.compile(r"(\d{1,3})%")


class PowerProbe:
    """Reads the current power source; anything unreadable is PowerSource.UNKNOWN"""

    def __init__(self, executor: Optional[CommandExecutionService] = None, system: Optional[str] = None,
                 power_supply_dir: Path = Path("/sys/class/power_supply")):
        self.executor = executor or CommandExecutionService(ExecutionConfig(timeout=15))
        self.system = system or platform.system()
        self.power_supply_dir = power_supply_dir

    def current_power(self) -> PowerStatus:
        if self.system == "Darwin":
            result = self.executor.execute(["pmset", "-g", "ps"])
            if not result.success:
                return PowerStatus()
            return self.parse_pmset_output(result.output)
        if self.system == "Linux":
            return self._read_sysfs()

        logger.warning(f"Power status is not supported on {self.system}")
        return PowerStatus()

    @staticmethod
    def parse_pmset_output(output: str) -> PowerStatus:
        """Parse `pmset -g ps`; the first line names the source"""
        if not output.strip():
            return PowerStatus()

        percent_match = PERCENT_PATTERN.search(output)
        percent = int(percent_match.group(1)) if percent_match else None

        first_line = output.strip().splitlines()[0]
        if "AC Power" in first_line:
            return PowerStatus(source=PowerSource.AC, percent=percent)
        if "Battery Power" in first_line:
            return PowerStatus(source=PowerSource.BATTERY, percent=percent)
        return PowerStatus(percent=percent)

    def _read_sysfs(self) -> PowerStatus:
        if not self.power_supply_dir.exists():
            return PowerStatus()

        on_mains = None
        percent = None
        try:
            for supply in sorted(self.power_supply_dir.iterdir()):
                supply_type = self._read_value(supply / "type")
                if supply_type == "Mains":
                    online = self._read_value(supply / "online")
                    if online is not None:
                        on_mains = bool(on_mains) or online == "1"
                elif supply_type == "Battery" and percent is None:
                    capacity = self._read_value(supply / "capacity")
                    if capacity and capacity.isdigit():
                        percent = int(capacity)
        except OSError as e:
            logger.warning(f"Could not read {self.power_supply_dir}: {e}")
            return PowerStatus()

        if on_mains is True:
            return PowerStatus(source=PowerSource.AC, percent=percent)
        if on_mains is False and percent is not None:
            return PowerStatus(source=PowerSource.BATTERY, percent=percent)
        return PowerStatus(percent=percent)

    @staticmethod
    def _read_value(path: Path) -> Optional[str]:
        try:
            return path.read_text().strip()
        except OSError:
            return None
