"""Tests for the stageline command line."""

import pytest
from conftest import commit_files, requires_git

from orchestrator.src.main import build_parser, main

PIPELINE = """
name: Hello
stages:
  - name: Build
    steps:
      - cat README.md
  - name: Deploy
    steps:
      - echo deployed
post:
  - echo cleanup
"""

def run_cli(tmp_path, repo, pipeline_text, *extra):
    pipeline = tmp_path / "pipeline.yml"
    pipeline.write_text(pipeline_text)
    return main([
        "run",
        "--repo", str(repo),
        "--ref", "main",
        "--pipeline", str(pipeline),
        "--workspace-root", str(tmp_path / "ws"),
        "--no-record",
        *extra,
    ])

def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])

def test_watch_arguments():
    args = build_parser().parse_args(
        ["watch", "--repo", "r", "--ref", "dev", "--pipeline", "p.yml", "--interval", "15"]
    )
    assert (args.repo, args.ref, args.pipeline, args.interval) == ("r", "dev", "p.yml", 15.0)

def test_definition_error_exit_code(tmp_path, capsys):
    code = run_cli(tmp_path, tmp_path / "unused", "stages: []\n")

    assert code == 3
    assert "Definition error" in capsys.readouterr().err
    # Failed before any workspace was created
    assert not (tmp_path / "ws").exists()

def test_undecodable_definition_exit_code(tmp_path, capsys):
    pipeline = tmp_path / "pipeline.yml"
    pipeline.write_bytes(b"stages:\n  - name: B\xffuild\n    steps: [make]\n")

    code = main([
        "run",
        "--repo", str(tmp_path / "unused"),
        "--pipeline", str(pipeline),
        "--workspace-root", str(tmp_path / "ws"),
        "--no-record",
    ])

    assert code == 3
    assert "not valid UTF-8" in capsys.readouterr().err

@requires_git
def test_vcs_error_exit_code(tmp_path, capsys):
    code = run_cli(tmp_path, tmp_path / "missing-repo", PIPELINE)

    assert code == 3
    assert "VCS error" in capsys.readouterr().err

@requires_git
def test_successful_run(tmp_path, origin_repo, capsys):
    code = run_cli(tmp_path, origin_repo, PIPELINE)

    out = capsys.readouterr().out
    assert code == 0
    assert "Build: succeeded" in out
    assert "Deploy: succeeded" in out
    assert "Outcome: SUCCESS" in out

@requires_git
def test_failed_run(tmp_path, origin_repo, capsys):
    code = run_cli(tmp_path, origin_repo, PIPELINE.replace("cat README.md", "exit 4"))

    out = capsys.readouterr().out
    assert code == 1
    assert "Build: failed (exit 4)" in out
    assert "Deploy: skipped" in out
    assert "post: echo cleanup -> ok" in out

@requires_git
def test_interrupted_run(tmp_path, origin_repo, capsys):
    # The step signals the orchestrator itself, as Ctrl-C would
    pipeline = PIPELINE.replace(
        "      - cat README.md\n",
        "      - kill -INT $PPID\n      - echo never\n",
    )

    code = run_cli(tmp_path, origin_repo, pipeline)

    out = capsys.readouterr().out
    assert code == 2
    assert "Build: cancelled" in out
    assert "Outcome: ABORTED" in out

@requires_git
def test_pipeline_from_repository(tmp_path, origin_repo, capsys):
    commit_files(origin_repo, {".pipeline.yml": PIPELINE})

    code = main([
        "run",
        "--repo", str(origin_repo),
        "--workspace-root", str(tmp_path / "ws"),
        "--database-url", f"sqlite:///{tmp_path / 'history.db'}",
    ])

    assert code == 0
    assert "Pipeline 'Hello'" in capsys.readouterr().out
    assert (tmp_path / "history.db").exists()

@requires_git
def test_undecodable_pipeline_in_repository(tmp_path, origin_repo, capsys):
    commit_files(origin_repo, {".pipeline.yml": b"stages:\n  - name: B\xffuild\n"})

    code = main([
        "run",
        "--repo", str(origin_repo),
        "--workspace-root", str(tmp_path / "ws"),
        "--no-record",
    ])

    assert code == 3
    assert "Definition error" in capsys.readouterr().err

@requires_git
def test_unusable_history_database(tmp_path, origin_repo, capsys):
    missing_dir = tmp_path / "missing" / "dir"
    pipeline = tmp_path / "pipeline.yml"
    pipeline.write_text(PIPELINE)

    code = main([
        "run",
        "--repo", str(origin_repo),
        "--pipeline", str(pipeline),
        "--workspace-root", str(tmp_path / "ws"),
        "--database-url", f"sqlite:///{missing_dir / 'history.db'}",
    ])

    captured = capsys.readouterr()
    assert code == 0
    assert "run history disabled" in captured.err
    assert "post: echo cleanup -> ok" in captured.out
    assert "Outcome: SUCCESS" in captured.out
