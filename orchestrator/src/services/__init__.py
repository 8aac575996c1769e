from orchestrator.src.services.engine import PipelineEngine, RunReporter
from orchestrator.src.services.executor import (
    CommandExecutor,
    CommandResult,
    LocalCommandExecutor,
)
from orchestrator.src.services.git import GitClient
from orchestrator.src.services.pipeline_parser import (
    parse_pipeline_config,
    parse_pipeline_dict,
    load_pipeline_file,
    find_pipeline_file,
    validate_definition,
)
from orchestrator.src.services.stage_runner import StageRunner
from orchestrator.src.services.status_reporter import RunRecorder
from orchestrator.src.services.trigger import TriggerWatcher
from orchestrator.src.services.workspace import WorkspaceManager

__all__ = [
    "PipelineEngine",
    "RunReporter",
    "CommandExecutor",
    "CommandResult",
    "LocalCommandExecutor",
    "GitClient",
    "parse_pipeline_config",
    "parse_pipeline_dict",
    "load_pipeline_file",
    "find_pipeline_file",
    "validate_definition",
    "StageRunner",
    "RunRecorder",
    "TriggerWatcher",
    "WorkspaceManager",
]
