"""
Trigger watcher - polls a remote ref and emits commit changes.
"""

import logging
import time
from typing import Callable, Dict, Iterator, Optional, Tuple

from orchestrator.src.errors import VcsError
from orchestrator.src.models.pipeline import CommitChange

logger = logging.getLogger(__name__)

class TriggerWatcher:
    """
    Turns periodic ref resolution into a lazy stream of change events.

    `resolve(repository_url, ref)` returns the ref's current commit id.
    The last observed commit is remembered per (url, ref) so that a
    restarted poll never repeats an event.
    """

    def __init__(
        self,
        resolve: Callable[[str, str], str],
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.resolve = resolve
        self.sleep = sleep
        self._last_seen: Dict[Tuple[str, str], str] = {}

    def last_seen(self, repository_url: str, ref: str) -> Optional[str]:
        return self._last_seen.get((repository_url, ref))

    def check(self, repository_url: str, ref: str) -> Optional[CommitChange]:
        """Single poll tick. Returns a change event or None."""
        key = (repository_url, ref)

        try:
            commit_id = self.resolve(repository_url, ref)
        except VcsError as e:
            logger.error(f"Failed to resolve {ref} in {repository_url}: {e}")
            return None

        previous = self._last_seen.get(key)
        if commit_id == previous:
            logger.debug(f"No change on {ref} ({commit_id[:12]})")
            return None

        self._last_seen[key] = commit_id
        logger.info(
            f"Detected change on {ref} in {repository_url}: "
            f"{previous[:12] if previous else '(none)'} -> {commit_id[:12]}"
        )
        return CommitChange(
            repository_url=repository_url,
            ref=ref,
            commit_id=commit_id,
            previous_commit_id=previous,
        )

    def poll(self, repository_url: str, ref: str, interval: float) -> Iterator[CommitChange]:
        """
        Infinite generator of change events; first tick runs immediately.
        """
        while True:
            change = self.check(repository_url, ref)
            if change is not None:
                yield change
            self.sleep(interval)
