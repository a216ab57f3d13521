"""
Local command execution service
Runs external commands with a bounded timeout and folds every failure mode into one result type
"""
import os
import shutil
import logging
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ExecutionConfig:
    """Configuration for command execution"""
    timeout: int = 30
    merge_stderr: bool = True


@dataclass
class ExecutionResult:
    """Standardized result for every local execution"""
    success: bool
    returncode: int
    output: str
    error_message: Optional[str] = None
    timed_out: bool = False

    @classmethod
    def from_subprocess_result(cls, result: subprocess.CompletedProcess) -> 'ExecutionResult':
        """Create ExecutionResult from subprocess.CompletedProcess"""
        output = result.stdout or ""
        if result.stderr:
            output = f"{output}{result.stderr}"
        return cls(
            success=result.returncode == 0,
            returncode=result.returncode,
            output=output,
            error_message=None if result.returncode == 0 else f"exit code {result.returncode}"
        )

    @classmethod
    def timeout_result(cls, timeout: int, output: str = "") -> 'ExecutionResult':
        """Create timeout error result"""
        return cls(
            success=False,
            returncode=-1,
            output=output,
            error_message=f"Command timed out after {timeout} seconds",
            timed_out=True
        )

    @classmethod
    def exception_result(cls, exception: Exception) -> 'ExecutionResult':
        """Create exception error result"""
        return cls(
            success=False,
            returncode=-1,
            output=str(exception),
            error_message=str(exception)
        )


class CommandExecutionService:
    """Executes commands locally; a timeout is reported the same way as any other failure"""

    def __init__(self, config: Optional[ExecutionConfig] = None):
        self.config = config or ExecutionConfig()

    def execute(
        self,
        command: List[str],
        timeout: Optional[int] = None,
        env_vars: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None
    ) -> ExecutionResult:
        """Execute command locally with environment variables"""
        timeout = timeout or self.config.timeout
        env = os.environ.copy()
        if env_vars:
            env.update(env_vars)

        logger.debug(f"Executing: {' '.join(command)} (timeout {timeout}s)")

        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if self.config.merge_stderr else subprocess.PIPE,
                text=True,
                timeout=timeout,
                env=env,
                input=input_text
            )
            return ExecutionResult.from_subprocess_result(result)

        except subprocess.TimeoutExpired as e:
            partial = e.output if isinstance(e.output, str) else ""
            logger.warning(f"Command timed out after {timeout}s: {' '.join(command)}")
            return ExecutionResult.timeout_result(timeout, partial)
        except (OSError, ValueError) as e:
            logger.warning(f"Command could not be started: {' '.join(command)}: {e}")
            return ExecutionResult.exception_result(e)

    @staticmethod
    def command_exists(binary: str) -> bool:
        """Check if a binary is resolvable on PATH"""
        return shutil.which(binary) is not None
