"""
Error taxonomy for pipeline runs.
"""

from typing import Optional

class PipelineError(Exception):
    """Base class for all orchestrator errors."""
    pass

class VcsError(PipelineError):
    """Raised when a clone, fetch or ref resolution fails."""
    pass

class DefinitionError(PipelineError):
    """Raised when a pipeline definition is malformed or empty."""
    pass

class StepFailure(PipelineError):
    """A step that did not complete successfully.

    Recorded on the stage result, never raised out of the engine.
    """

    def __init__(self, command: str, exit_code: Optional[int], output: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"Step '{command}' failed with exit code {exit_code}")

class StepTimeout(StepFailure):
    """A step that exceeded its timeout and was killed."""

    EXIT_CODE = 124

    def __init__(self, command: str, timeout: float, output: str = ""):
        super().__init__(command, self.EXIT_CODE, output)
        self.timeout = timeout
        self.args = (f"Step '{command}' timed out after {timeout}s",)
