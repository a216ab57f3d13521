"""
Package manager collaborator
Opaque wrapper around the package manager binary: exit status plus combined output, nothing parsed
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from services.command_execution_service import CommandExecutionService, ExecutionConfig

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one package manager invocation"""
    ok: bool
    output: str


class PackageManager:
    """Runs package manager subcommands such as `brew update`"""

    INSTALL_HINT = "Homebrew is not installed. Install it from https://brew.sh first."

    def __init__(self, binary: str = "brew", timeout_seconds: int = 3600,
                 executor: Optional[CommandExecutionService] = None):
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self.executor = executor or CommandExecutionService(ExecutionConfig(timeout=timeout_seconds))

    def is_available(self) -> bool:
        """Check if the package manager binary can be found"""
        return self.executor.command_exists(self.binary)

    def invoke(self, args: List[str]) -> CommandResult:
        """Run `<binary> <args>` and return exit status with combined output"""
        command = [self.binary] + list(args)
        # Homebrew would otherwise run its own update before every upgrade
        env_vars = {"HOMEBREW_NO_AUTO_UPDATE": "1", "HOMEBREW_NO_ENV_HINTS": "1"}

        result = self.executor.execute(command, timeout=self.timeout_seconds, env_vars=env_vars)

        output = result.output
        if not result.success and result.error_message and result.error_message not in output:
            output = f"{output}\n{result.error_message}".strip()

        if result.success:
            logger.info(f"{' '.join(command)} completed")
        else:
            logger.warning(f"{' '.join(command)} failed: {result.error_message}")

        return CommandResult(ok=result.success, output=output)
