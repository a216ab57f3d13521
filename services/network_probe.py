"""
Network identity probe
Reports the name of the WiFi network the machine is currently joined to
"""
import logging
import platform
from typing import Optional

from services.command_execution_service import CommandExecutionService, ExecutionConfig

logger = logging.getLogger(__name__)


class NetworkProbe:
    """Reads the current network identity; None means it could not be determined"""

    NOT_ASSOCIATED_MARKERS = ("not associated", "error obtaining", "is not a wi-fi interface")

    def __init__(self, interface: str = "en0", executor: Optional[CommandExecutionService] = None,
                 system: Optional[str] = None):
        self.interface = interface
        self.executor = executor or CommandExecutionService(ExecutionConfig(timeout=15))
        self.system = system or platform.system()

    def current_network_id(self) -> Optional[str]:
        """Current network name, or None when absent, disabled or unknown"""
        if self.system == "Darwin":
            return self._read_macos()
        if self.system == "Linux":
            return self._read_linux()

        logger.warning(f"Network identity is not supported on {self.system}")
        return None

    def _read_macos(self) -> Optional[str]:
        result = self.executor.execute(["networksetup", "-getairportnetwork", self.interface])
        if not result.success:
            return None
        return self.parse_networksetup_output(result.output)

    def _read_linux(self) -> Optional[str]:
        result = self.executor.execute(["iwgetid", "-r", self.interface])
        if not result.success:
            return None
        name = result.output.strip()
        return name or None

    @classmethod
    def parse_networksetup_output(cls, output: str) -> Optional[str]:
        """Parse `Current Wi-Fi Network: <name>` from networksetup"""
        line = output.strip().splitlines()[0] if output.strip() else ""
        if not line or any(marker in line.lower() for marker in cls.NOT_ASSOCIATED_MARKERS):
            return None
        if ": " not in line:
            return None
        name = line.split(": ", 1)[1].strip()
        return name or None
