"""
Run orchestration - one-shot runs and the watch queue worker.
"""

import logging
import queue
import threading
from typing import Callable, Optional

from orchestrator.src.errors import DefinitionError, PipelineError
from orchestrator.src.models.pipeline import CommitChange, PipelineDefinition, PipelineRun
from orchestrator.src.services.engine import PipelineEngine
from orchestrator.src.services.pipeline_parser import (
    find_pipeline_file,
    load_pipeline_file,
    validate_definition,
)
from orchestrator.src.services.trigger import TriggerWatcher
from orchestrator.src.services.workspace import WorkspaceManager

logger = logging.getLogger(__name__)

_STOP = object()

def run_pipeline(
    repository_url: str,
    ref: str,
    workspaces: WorkspaceManager,
    engine: PipelineEngine,
    definition: Optional[PipelineDefinition] = None,
    commit_id: Optional[str] = None,
    cancel: Optional[threading.Event] = None,
) -> PipelineRun:
    """
    Sync the repository's workspace and execute the pipeline against it.

    With no `definition`, the pipeline file checked into the repository is
    used. Raises DefinitionError or VcsError; a given definition is
    validated before the workspace is touched.
    """
    if definition is not None:
        validate_definition(definition)

    with workspaces.lock(repository_url):
        workspace = workspaces.sync(repository_url, ref, commit_id)

        if definition is None:
            pipeline_path = find_pipeline_file(workspace.path)
            if not pipeline_path:
                raise DefinitionError(f"No pipeline definition found in {repository_url}")
            logger.info(f"Using pipeline definition {pipeline_path}")
            definition = load_pipeline_file(pipeline_path)

        return engine.execute(definition, workspace, cancel=cancel)

class RunQueue:
    """
    FIFO of commit changes drained by a single worker thread.
    A new change waits for the in-flight run; it never preempts it.
    """

    def __init__(
        self,
        workspaces: WorkspaceManager,
        engine: PipelineEngine,
        definition: Optional[PipelineDefinition] = None,
        on_finished: Optional[Callable[[PipelineRun], None]] = None,
    ):
        self.workspaces = workspaces
        self.engine = engine
        self.definition = definition
        self.on_finished = on_finished
        self.cancel = threading.Event()
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._busy = threading.Event()

    @property
    def busy(self) -> bool:
        return self._busy.is_set()

    def pending(self) -> int:
        return self._queue.qsize()

    def start(self):
        self._thread = threading.Thread(
            target=self._worker_loop,
            name="stageline-worker",
            daemon=True,
        )
        self._thread.start()

    def submit(self, change: CommitChange):
        if self.busy:
            logger.info(f"Run in progress, queueing {change.commit_id[:12]}")
        self._queue.put(change)

    def stop(self, cancel_running: bool = False):
        """
        Stop the worker. By default queued runs finish first; with
        `cancel_running` queued runs are dropped and the in-flight run is
        aborted at its next step boundary.
        """
        if cancel_running:
            self._drain()
            self.cancel.set()

        self._queue.put(_STOP)
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _drain(self):
        while True:
            try:
                change = self._queue.get_nowait()
            except queue.Empty:
                return
            self._queue.task_done()
            logger.info(f"Dropped queued run for {change.commit_id[:12]}")

    def _worker_loop(self):
        logger.info("Worker started, waiting for changes...")

        while True:
            change = self._queue.get()
            try:
                if change is _STOP:
                    break
                self._busy.set()
                self._process(change)
            finally:
                self._busy.clear()
                self._queue.task_done()

        logger.info("Worker stopped")

    def _process(self, change: CommitChange):
        logger.info(f"Starting run for {change.repository_url} @ {change.commit_id[:12]}")

        try:
            run = run_pipeline(
                change.repository_url,
                change.ref,
                self.workspaces,
                self.engine,
                definition=self.definition,
                commit_id=change.commit_id,
                cancel=self.cancel,
            )
        except PipelineError as e:
            logger.error(f"Run for {change.commit_id[:12]} failed: {e}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error running {change.commit_id[:12]}: {e}")
            return

        logger.info(f"Run {run.id} for {change.commit_id[:12]} finished: {run.outcome.value}")
        if self.on_finished is not None:
            self.on_finished(run)

def watch(
    repository_url: str,
    ref: str,
    interval: float,
    workspaces: WorkspaceManager,
    engine: PipelineEngine,
    watcher: TriggerWatcher,
    definition: Optional[PipelineDefinition] = None,
    on_finished: Optional[Callable[[PipelineRun], None]] = None,
):
    """Poll `ref` forever, queueing a run for every new commit."""
    run_queue = RunQueue(workspaces, engine, definition=definition, on_finished=on_finished)
    run_queue.start()
    logger.info(f"Watching {ref} in {repository_url} every {interval}s")

    interrupted = True
    try:
        for change in watcher.poll(repository_url, ref, interval):
            run_queue.submit(change)
        interrupted = False
    finally:
        run_queue.stop(cancel_running=interrupted)
