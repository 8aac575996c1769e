"""
Command execution backends for pipeline steps.
"""

import logging
import os
import signal
import subprocess
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, Optional

from pydantic import BaseModel

from orchestrator.src.errors import StepTimeout

logger = logging.getLogger(__name__)

class CommandResult(BaseModel):
    exit_code: int
    output: str = ""

class CommandExecutor(ABC):
    """Runs one opaque command line in a working directory."""

    @abstractmethod
    def run(
        self,
        command: str,
        cwd: str,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Run `command` synchronously and return its exit code and
        combined stdout/stderr.
        Raises StepTimeout if `timeout` expires first.
        """

class LocalCommandExecutor(CommandExecutor):
    """Runs steps through the local shell."""

    def run(
        self,
        command: str,
        cwd: str,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        process_env = dict(os.environ)
        if env:
            process_env.update(env)

        # New session so a timeout can kill the whole process group.
        # Output goes to a file so background children that keep it open
        # do not hold the step after the shell exits.
        with tempfile.TemporaryFile() as output_file:
            process = subprocess.Popen(
                command,
                shell=True,
                cwd=cwd,
                env=process_env,
                stdin=subprocess.DEVNULL,
                stdout=output_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )

            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"Command timed out after {timeout}s, killing: {command}")
                _kill_process_group(process)
                process.wait()
                raise StepTimeout(command, timeout, _read_output(output_file))

            return CommandResult(exit_code=process.returncode, output=_read_output(output_file))

def _read_output(output_file) -> str:
    output_file.seek(0)
    return output_file.read().decode("utf-8", errors="replace")

def _kill_process_group(process: subprocess.Popen):
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # Already exited
