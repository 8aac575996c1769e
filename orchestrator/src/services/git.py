"""
Git client used for ref resolution and workspace checkouts.
"""

import logging
import os
import re
import subprocess
from typing import List, Optional

from orchestrator.src.config import get_settings
from orchestrator.src.errors import VcsError

logger = logging.getLogger(__name__)
settings = get_settings()

COMMIT_SHA_RE = re.compile(r"^[0-9a-f]{40}$")

class GitClient:
    """Thin wrapper over the git executable."""

    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout or settings.git_timeout

    def _git(self, args: List[str], cwd: Optional[str] = None) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                stdin=subprocess.DEVNULL,
                # Never block on a credential prompt
                env=_non_interactive_env(),
            )
        except FileNotFoundError:
            raise VcsError("git executable not found")
        except subprocess.TimeoutExpired:
            raise VcsError(f"git {args[0]} timed out after {self.timeout}s")
        except subprocess.CalledProcessError as e:
            raise VcsError(f"git {args[0]} failed: {e.stderr.strip()}")

        return result.stdout

    def resolve(self, repository_url: str, ref: str) -> str:
        """Resolve a remote ref to a commit id without cloning."""
        if COMMIT_SHA_RE.match(ref):
            return ref

        output = self._git(["ls-remote", repository_url])
        refs = {}
        for line in output.splitlines():
            parts = line.split("\t")
            if len(parts) == 2:
                sha, name = parts
                refs[name] = sha

        for candidate in (
            f"refs/heads/{ref}",
            f"refs/tags/{ref}^{{}}",  # Peeled annotated tag
            f"refs/tags/{ref}",
            ref,
        ):
            if candidate in refs:
                return refs[candidate]

        raise VcsError(f"Cannot resolve ref '{ref}' in {repository_url}")

    def clone(self, repository_url: str, dest: str):
        logger.info(f"Cloning {repository_url} into {dest}")
        self._git(["clone", "--no-checkout", repository_url, dest])

    def fetch_and_reset(self, dest: str, ref: str, commit_id: Optional[str] = None) -> str:
        """
        Fetch `ref` from origin and hard-reset the tree to it (or to
        `commit_id` when given), removing untracked and ignored files.
        Returns the checked out commit id.
        """
        self._git(["fetch", "--force", "--prune", "origin", ref], cwd=dest)

        target = commit_id or "FETCH_HEAD"
        self._git(["reset", "--hard", target], cwd=dest)
        self._git(["clean", "-ffdx"], cwd=dest)

        return self.head(dest)

    def head(self, dest: str) -> str:
        return self._git(["rev-parse", "HEAD"], cwd=dest).strip()

    def is_checkout(self, dest: str) -> bool:
        return os.path.isdir(os.path.join(dest, ".git"))

def _non_interactive_env():
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env
