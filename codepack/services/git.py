# codepack/services/git.py
"""
Thin wrapper over the `git` command line producing GitStatus snapshots and
per-file diff text for the packer. Every failure (git missing, not a
repository, command error) degrades to "no repository" / "no diff".
"""
import os
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from loguru import logger

from ..core.models import ChangedFile, GitStatus

GIT_TIMEOUT_SECONDS = 30


def _run_git(args: List[str], cwd: "str | Path", ok_codes: Iterable[int] = (0,)) -> Optional[str]:
    """Returns stdout of a successful git command, else None."""
    try:
        process = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='replace', # Handle potential decoding errors
            check=False, # Don't raise exception on non-zero exit code
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        logger.warning("'git' command not found. Is Git installed and in PATH?")
        return None
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"git {' '.join(args)} failed in {cwd}: {e}")
        return None
    if process.returncode not in ok_codes:
        logger.debug(f"git {' '.join(args)} exited {process.returncode}: {process.stderr.strip()}")
        return None
    return process.stdout


def _status_label(xy: str) -> str:
    """Maps a porcelain XY code to added/modified/deleted/renamed/typechange/unknown."""
    if xy == "??" or "A" in xy:
        return "added"
    if "M" in xy:
        return "modified"
    if "D" in xy:
        return "deleted"
    if "R" in xy or "C" in xy:
        return "renamed"
    if "T" in xy:
        return "typechange"
    return "unknown"


def parse_porcelain(output: str, repo_root: "str | Path") -> List[ChangedFile]:
    """Parses `git status --porcelain=v1 -z` output into absolute-path ChangedFiles."""
    repo_root = Path(repo_root)
    changed: List[ChangedFile] = []
    records = output.split("\0")
    i = 0
    while i < len(records):
        record = records[i]
        i += 1
        if len(record) < 4:
            continue
        xy, rel = record[:2], record[3:]
        if xy == "!!":
            continue
        if "R" in xy or "C" in xy:
            i += 1 # Skip the original path that follows a rename/copy
        changed.append(ChangedFile(path=str(repo_root / rel), status=_status_label(xy)))
    return changed


def get_git_status(project_path: "str | Path") -> GitStatus:
    project_path = Path(project_path)
    top_level = _run_git(["rev-parse", "--show-toplevel"], project_path)
    if top_level is None:
        return GitStatus(is_repo=False)
    repo_root = Path(top_level.strip())

    branch = (_run_git(["rev-parse", "--abbrev-ref", "HEAD"], project_path) or "").strip() or "HEAD"
    output = _run_git(["status", "--porcelain=v1", "-z", "--untracked-files=all"], repo_root) or ""
    changed = parse_porcelain(output, repo_root)
    logger.debug(f"Git status for {repo_root} ({branch}): {len(changed)} changed file(s)")
    return GitStatus(is_repo=True, branch=branch, changed_files=changed)


def get_file_diff(project_path: "str | Path", file_path: str) -> str:
    """Unified diff of working changes against HEAD; untracked files diff against /dev/null."""
    diff = _run_git(["diff", "HEAD", "--", file_path], project_path)
    if diff:
        return diff
    # Untracked or repository without commits; --no-index exits 1 when files differ
    diff = _run_git(["diff", "--no-index", "--", os.devnull, file_path], project_path, ok_codes=(0, 1))
    return diff or ""


def collect_diffs(project_path: "str | Path", paths: Iterable[str],
                  git_status: Optional[GitStatus] = None) -> Dict[str, str]:
    """Diff text for each selected path that has working changes."""
    status = git_status or get_git_status(project_path)
    if not status.is_repo:
        return {}
    changed = {os.path.normcase(p) for p in status.changed_paths()}
    diffs: Dict[str, str] = {}
    for path in paths:
        if os.path.normcase(path) not in changed:
            continue
        diff = get_file_diff(project_path, path)
        if diff.strip():
            diffs[path] = diff
    logger.info(f"Collected {len(diffs)} diff(s) for {project_path}")
    return diffs
