from api.src.models.run import (
    StageResponse,
    PipelineRunResponse,
    StageLogs,
    RunLogsResponse,
)

__all__ = [
    "StageResponse",
    "PipelineRunResponse",
    "StageLogs",
    "RunLogsResponse",
]
