"""
Workspace manager - materializes a repository ref into a scratch directory.
"""

import hashlib
import logging
import os
import shutil
import threading
from typing import Dict, Optional

from orchestrator.src.config import get_settings
from orchestrator.src.errors import VcsError
from orchestrator.src.models.pipeline import Workspace, utcnow
from orchestrator.src.services.git import GitClient

logger = logging.getLogger(__name__)
settings = get_settings()

def build_workspace_name(repository_url: str) -> str:
    """Generate a stable directory name for a repository."""
    repo_name = repository_url.rstrip("/").split("/")[-1].split(":")[-1]
    if repo_name.endswith(".git"):
        repo_name = repo_name[:-4]

    safe_name = repo_name.lower().replace(" ", "-").replace("_", "-")
    safe_name = "".join(c for c in safe_name if c.isalnum() or c == "-")
    safe_name = safe_name[:40] or "repo"

    # Short hash of the full URL keeps same-named repos apart
    url_hash = hashlib.md5(repository_url.encode()).hexdigest()[:8]

    return f"{safe_name}-{url_hash}"

class WorkspaceManager:
    """Owns one working copy per repository under a root directory."""

    def __init__(self, root: Optional[str] = None, git: Optional[GitClient] = None):
        self.root = os.path.abspath(root or settings.workspace_root)
        self.git = git or GitClient()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def workspace_path(self, repository_url: str) -> str:
        return os.path.join(self.root, build_workspace_name(repository_url))

    def lock(self, repository_url: str) -> threading.Lock:
        """Lock guarding the repository's workspace; one run at a time."""
        path = self.workspace_path(repository_url)
        with self._locks_guard:
            if path not in self._locks:
                self._locks[path] = threading.Lock()
            return self._locks[path]

    def sync(self, repository_url: str, ref: str, commit_id: Optional[str] = None) -> Workspace:
        """
        Bring the workspace to exactly the tree of `ref` (or `commit_id`).
        Clones on first use, otherwise fetches and resets hard.
        Raises VcsError on any git failure.
        """
        path = self.workspace_path(repository_url)
        fresh = False

        if not self.git.is_checkout(path):
            if os.path.exists(path):
                logger.warning(f"Removing non-git directory at {path}")
                shutil.rmtree(path)
            os.makedirs(self.root, exist_ok=True)
            fresh = True
            try:
                self.git.clone(repository_url, path)
            except VcsError:
                shutil.rmtree(path, ignore_errors=True)
                raise

        try:
            head = self.git.fetch_and_reset(path, ref, commit_id)
        except VcsError:
            if fresh:
                shutil.rmtree(path, ignore_errors=True)
            raise

        logger.info(f"Workspace {path} synced to {ref} @ {head[:12]}")

        return Workspace(
            path=path,
            repository_url=repository_url,
            ref=ref,
            commit_id=head,
            synced_at=utcnow(),
        )

    def destroy(self, repository_url: str):
        """Remove a repository's workspace from disk."""
        path = self.workspace_path(repository_url)
        with self.lock(repository_url):
            if os.path.exists(path):
                shutil.rmtree(path)
                logger.info(f"Removed workspace {path}")
