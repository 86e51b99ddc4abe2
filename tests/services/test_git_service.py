# tests/services/test_git_service.py
import shutil
import subprocess

import pytest

from codepack.core.models import ChangedFile, GitStatus
from codepack.services import git


def test_parse_porcelain(tmp_path):
    output = "\0".join([
        " M src/app.py",
        "?? notes.txt",
        "D  old.py",
        "R  new_name.py",
        "old_name.py",
        "A  added.py",
        "!! ignored.log",
        "",
    ])
    changed = git.parse_porcelain(output, tmp_path)
    assert changed == [
        ChangedFile(path=str(tmp_path / "src/app.py"), status="modified"),
        ChangedFile(path=str(tmp_path / "notes.txt"), status="added"),
        ChangedFile(path=str(tmp_path / "old.py"), status="deleted"),
        ChangedFile(path=str(tmp_path / "new_name.py"), status="renamed"),
        ChangedFile(path=str(tmp_path / "added.py"), status="added"),
    ]


def test_parse_porcelain_empty(tmp_path):
    assert git.parse_porcelain("", tmp_path) == []


def test_missing_git_binary_means_no_repo(tmp_path, mocker):
    mocker.patch("codepack.services.git.subprocess.run", side_effect=FileNotFoundError("git"))
    status = git.get_git_status(tmp_path)
    assert status == GitStatus(is_repo=False)
    assert git.get_file_diff(tmp_path, str(tmp_path / "a.py")) == ""


def test_not_a_repository(tmp_path, mocker):
    failed = subprocess.CompletedProcess(args=[], returncode=128, stdout="", stderr="fatal: not a git repository")
    mocker.patch("codepack.services.git.subprocess.run", return_value=failed)
    assert git.get_git_status(tmp_path).is_repo is False
    assert git.collect_diffs(tmp_path, [str(tmp_path / "a.py")]) == {}


def test_timeout_is_handled(tmp_path, mocker):
    mocker.patch("codepack.services.git.subprocess.run",
                 side_effect=subprocess.TimeoutExpired(cmd="git", timeout=30))
    assert git.get_git_status(tmp_path).is_repo is False


def test_collect_diffs_only_for_changed_paths(tmp_path, mocker):
    status = GitStatus(is_repo=True, branch="main", changed_files=[
        ChangedFile(path=str(tmp_path / "a.py"), status="modified"),
        ChangedFile(path=str(tmp_path / "gone.py"), status="deleted"),
    ])
    get_diff = mocker.patch("codepack.services.git.get_file_diff", return_value="@@ -1 +1 @@\n-a\n+b\n")
    diffs = git.collect_diffs(tmp_path, [str(tmp_path / "a.py"), str(tmp_path / "b.py"), str(tmp_path / "gone.py")],
                              git_status=status)
    assert list(diffs) == [str(tmp_path / "a.py")]
    get_diff.assert_called_once_with(tmp_path, str(tmp_path / "a.py"))


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_real_repository(make_files):
    root = make_files({"tracked.py": "a = 1\n", "docs/readme.md": "hello\n"})

    def run(*args):
        subprocess.run(["git", "-c", "user.name=t", "-c", "user.email=t@example.com", *args],
                       cwd=root, check=True, capture_output=True)

    run("init", "-q")
    run("add", ".")
    run("commit", "-q", "-m", "init")
    (root / "tracked.py").write_text("a = 2\n")
    (root / "fresh.py").write_text("b = 1\n")

    status = git.get_git_status(root)
    assert status.is_repo
    assert status.branch
    assert {(c.path, c.status) for c in status.changed_files} == {
        (str(root / "tracked.py"), "modified"),
        (str(root / "fresh.py"), "added"),
    }

    diffs = git.collect_diffs(root, [str(root / "tracked.py"), str(root / "fresh.py"),
                                     str(root / "docs" / "readme.md")], git_status=status)
    assert set(diffs) == {str(root / "tracked.py"), str(root / "fresh.py")}
    assert "+a = 2" in diffs[str(root / "tracked.py")]
    assert "+b = 1" in diffs[str(root / "fresh.py")]
