"""
Stageline - command line entry point.
"""

import argparse
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from orchestrator.src.config import get_settings
from orchestrator.src.errors import DefinitionError, VcsError
from orchestrator.src.services.engine import PipelineEngine
from orchestrator.src.services.git import GitClient
from orchestrator.src.services.pipeline_parser import load_pipeline_file
from orchestrator.src.services.report import (
    ERROR_EXIT_CODE,
    exit_code_for,
    format_run_summary,
)
from orchestrator.src.services.stage_runner import StageRunner
from orchestrator.src.services.status_reporter import RunRecorder
from orchestrator.src.services.trigger import TriggerWatcher
from orchestrator.src.services.workspace import WorkspaceManager
from orchestrator.src.worker import run_pipeline, watch

logger = logging.getLogger(__name__)

def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

def build_engine(args) -> PipelineEngine:
    settings = get_settings()
    runner = StageRunner(step_timeout=args.step_timeout)

    reporter = None
    if settings.record_runs and not args.no_record:
        try:
            reporter = RunRecorder(args.database_url or settings.database_url)
        except SQLAlchemyError as e:
            logger.error(f"Cannot open run history database: {e}")
            print(f"Warning: run history disabled: {e}", file=sys.stderr)

    return PipelineEngine(runner=runner, reporter=reporter)

def build_workspaces(args) -> WorkspaceManager:
    return WorkspaceManager(root=args.workspace_root, git=GitClient())

def load_cli_definition(path: Optional[str]):
    if not path:
        return None
    return load_pipeline_file(path)

@contextmanager
def cancel_on_signal(cancel: threading.Event):
    """Turn SIGINT/SIGTERM into a cancellation request between steps."""
    def request_cancel(signum, frame):
        logger.warning(f"Received signal {signum}, cancelling after current step")
        cancel.set()

    previous = {
        signum: signal.signal(signum, request_cancel)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

def cmd_run(args) -> int:
    try:
        definition = load_cli_definition(args.pipeline)
    except DefinitionError as e:
        logger.error(f"Invalid pipeline definition: {e}")
        print(f"Definition error: {e}", file=sys.stderr)
        return ERROR_EXIT_CODE

    cancel = threading.Event()

    try:
        with cancel_on_signal(cancel):
            run = run_pipeline(
                args.repo,
                args.ref,
                build_workspaces(args),
                build_engine(args),
                definition=definition,
                cancel=cancel,
            )
    except DefinitionError as e:
        logger.error(f"Invalid pipeline definition: {e}")
        print(f"Definition error: {e}", file=sys.stderr)
        return ERROR_EXIT_CODE
    except VcsError as e:
        logger.error(f"Version control error: {e}")
        print(f"VCS error: {e}", file=sys.stderr)
        return ERROR_EXIT_CODE

    print(format_run_summary(run))
    return exit_code_for(run)

def cmd_watch(args) -> int:
    try:
        definition = load_cli_definition(args.pipeline)
    except DefinitionError as e:
        logger.error(f"Invalid pipeline definition: {e}")
        print(f"Definition error: {e}", file=sys.stderr)
        return ERROR_EXIT_CODE

    settings = get_settings()
    interval = args.interval if args.interval is not None else settings.poll_interval
    git = GitClient()

    # SIGTERM ends the watch the same way Ctrl-C does
    signal.signal(signal.SIGTERM, signal.default_int_handler)

    try:
        watch(
            args.repo,
            args.ref,
            interval,
            build_workspaces(args),
            build_engine(args),
            TriggerWatcher(resolve=git.resolve),
            definition=definition,
            on_finished=lambda run: print(format_run_summary(run), flush=True),
        )
    except KeyboardInterrupt:
        logger.info("Watch stopped")

    return 0

def cmd_serve(args) -> int:
    import uvicorn
    from api.src.config import get_settings as get_api_settings

    api_settings = get_api_settings()
    uvicorn.run(
        "api.src.main:app",
        host=args.host or api_settings.api_host,
        port=args.port or api_settings.api_port,
    )
    return 0

def add_run_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--repo", required=True, help="Repository URL or path")
    parser.add_argument("--ref", default="main", help="Branch, tag or commit (default: main)")
    parser.add_argument(
        "--pipeline",
        help="Pipeline definition file (default: .pipeline.yml in the repository)",
    )
    parser.add_argument("--workspace-root", help="Directory holding workspaces")
    parser.add_argument("--step-timeout", type=float, help="Per-step timeout in seconds")
    parser.add_argument("--database-url", help="Run history database URL")
    parser.add_argument("--no-record", action="store_true", help="Do not record run history")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stageline",
        description="Lightweight CI/CD pipeline orchestrator",
    )
    parser.add_argument("--log-level", help="Logging level (default: from settings)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the pipeline once")
    add_run_arguments(run_parser)
    run_parser.set_defaults(func=cmd_run)

    watch_parser = subparsers.add_parser("watch", help="Poll a ref and run on every change")
    add_run_arguments(watch_parser)
    watch_parser.add_argument("--interval", type=float, help="Polling interval in seconds")
    watch_parser.set_defaults(func=cmd_watch)

    serve_parser = subparsers.add_parser("serve", help="Serve the run status API")
    serve_parser.add_argument("--host")
    serve_parser.add_argument("--port", type=int)
    serve_parser.set_defaults(func=cmd_serve)

    return parser

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    settings = get_settings()
    args = build_parser().parse_args(argv)

    configure_logging(args.log_level or settings.log_level)
    logger.info(f"Starting Stageline {args.command}")

    return args.func(args)

if __name__ == "__main__":
    sys.exit(main())
