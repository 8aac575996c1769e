"""
Human readable run summaries for the CLI.
"""

from typing import List

from orchestrator.src.models.pipeline import Outcome, PipelineRun, StageStatus

OUTCOME_EXIT_CODES = {
    Outcome.SUCCESS: 0,
    Outcome.FAILED: 1,
    Outcome.ABORTED: 2,
}

ERROR_EXIT_CODE = 3

STATUS_MARKS = {
    StageStatus.SUCCEEDED: "✅",
    StageStatus.FAILED: "❌",
    StageStatus.SKIPPED: "⏭️",
    StageStatus.CANCELLED: "🛑",
}

def exit_code_for(run: PipelineRun) -> int:
    return OUTCOME_EXIT_CODES[run.outcome]

def tail(text: str, lines: int = 20) -> str:
    """Keep only the last `lines` lines of a log."""
    all_lines = text.rstrip("\n").splitlines()
    if len(all_lines) <= lines:
        return "\n".join(all_lines)
    omitted = len(all_lines) - lines
    return "\n".join([f"... ({omitted} lines omitted) ..."] + all_lines[-lines:])

def format_run_summary(run: PipelineRun) -> str:
    duration = (run.finished_at - run.started_at).total_seconds()
    lines: List[str] = [
        f"Pipeline '{run.pipeline_name}' @ {run.commit_id[:12]} ({run.ref})",
    ]

    for i, stage in enumerate(run.stages):
        mark = STATUS_MARKS.get(stage.status, " ")
        detail = f" (exit {stage.exit_code})" if stage.status is StageStatus.FAILED else ""
        lines.append(f"  {i + 1}. {mark} {stage.name}: {stage.status.value}{detail}")

        if stage.status is StageStatus.FAILED and stage.output:
            for log_line in tail(stage.output).splitlines():
                lines.append(f"       | {log_line}")

    for post in run.post:
        state = "ok" if post.error is None else post.error
        lines.append(f"  post: {post.command} -> {state}")

    lines.append(f"Outcome: {run.outcome.value.upper()} in {duration:.1f}s")
    return "\n".join(lines)
