"""Shared fixtures for orchestrator tests."""

import shutil
import subprocess
from typing import Callable, Dict, List, Optional, Union

import pytest

from orchestrator.src.errors import StepTimeout
from orchestrator.src.models.pipeline import Workspace
from orchestrator.src.services.executor import CommandExecutor, CommandResult

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

class FakeExecutor(CommandExecutor):
    """
    Scripted executor. Unknown commands exit 0 and echo themselves.
    `exit_codes` maps command -> exit code; commands in `timeouts` raise
    StepTimeout; `hooks` run a callable when a command executes.
    """

    def __init__(
        self,
        exit_codes: Optional[Dict[str, int]] = None,
        timeouts: Optional[List[str]] = None,
        hooks: Optional[Dict[str, Callable[[], None]]] = None,
    ):
        self.exit_codes = exit_codes or {}
        self.timeouts = timeouts or []
        self.hooks = hooks or {}
        self.calls: List[str] = []
        self.envs: List[Dict[str, str]] = []

    def run(self, command, cwd, env=None, timeout=None):
        self.calls.append(command)
        self.envs.append(dict(env or {}))

        if command in self.hooks:
            self.hooks[command]()

        if command in self.timeouts:
            raise StepTimeout(command, timeout or 1, output=f"{command} started\n")

        return CommandResult(
            exit_code=self.exit_codes.get(command, 0),
            output=f"{command}\n",
        )

@pytest.fixture
def fake_executor():
    return FakeExecutor()

@pytest.fixture
def workspace(tmp_path):
    return Workspace(
        path=str(tmp_path),
        repository_url="https://example.com/acme/hello.git",
        ref="main",
        commit_id="a" * 40,
    )

def git(*args, cwd):
    return subprocess.run(
        [
            "git",
            "-c", "user.name=Test",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            *args,
        ],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    ).stdout.strip()

def commit_files(repo, files: Dict[str, Optional[Union[str, bytes]]], message: str = "update") -> str:
    """Write (or delete, for None) files in `repo` and commit them."""
    for name, content in files.items():
        path = repo / name
        if content is None:
            git("rm", "-q", name, cwd=repo)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
            git("add", name, cwd=repo)
    git("commit", "-q", "-m", message, cwd=repo)
    return git("rev-parse", "HEAD", cwd=repo)

@pytest.fixture
def origin_repo(tmp_path):
    """A local repository on branch main with one commit."""
    repo = tmp_path / "origin"
    repo.mkdir()
    git("init", "-q", cwd=repo)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=repo)
    commit_files(repo, {"README.md": "hello\n"}, message="initial")
    return repo
