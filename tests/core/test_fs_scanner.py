# tests/core/test_fs_scanner.py
import os

import pytest

from codepack.core.errors import InvalidProjectRootError
from codepack.core.exclusions import ExclusionMatcher
from codepack.core.fs_scanner import TreeScanner


def _names(node):
    return [child.name for child in node.children]


def _shape(node):
    return (node.name, node.path, node.is_dir, node.checked, node.indeterminate,
            [_shape(child) for child in node.children])


def test_excluded_directory_is_pruned(make_files):
    root = make_files({"node_modules/x.js": "x", "src/main.ts": "main"})
    tree = TreeScanner(root).scan()
    assert _names(tree) == ["src"]
    assert tree.file_paths() == [str(root / "src" / "main.ts")]


def test_excluded_directory_is_never_opened(make_files, mocker):
    root = make_files({"node_modules/deep/x.js": "x", "a.py": "a"})
    scandir = mocker.spy(os, "scandir")
    TreeScanner(root).scan()
    opened = [str(call.args[0]) for call in scandir.call_args_list]
    assert not any("node_modules" in path for path in opened)


def test_sorting_directories_first_then_case_insensitive(make_files):
    root = make_files({"b.py": "", "A.py": "", "zdir/x.py": "", "Adir/y.py": ""})
    tree = TreeScanner(root).scan()
    assert _names(tree) == ["Adir", "zdir", "A.py", "b.py"]


def test_fresh_nodes_are_unchecked(make_files):
    root = make_files({"src/a.py": ""})
    tree = TreeScanner(root).scan()
    assert not tree.checked and not tree.indeterminate
    assert all(not leaf.checked for leaf in tree.iter_files())


def test_rescan_is_structurally_identical(make_files):
    root = make_files({"src/a.py": "a", "src/util/b.py": "b", "README.md": "r", "lib/c.rs": "c"})
    assert _shape(TreeScanner(root).scan()) == _shape(TreeScanner(root).scan())


def test_hidden_and_non_source_files_are_skipped(make_files):
    root = make_files({".env": "SECRET=1", "logo.png": "png", "main.py": "", ".config/x.py": ""})
    tree = TreeScanner(root).scan()
    assert _names(tree) == ["main.py"]


def test_empty_directories_are_dropped(make_files, tmp_path):
    root = make_files({"src/a.py": "", "assets/logo.png": ""})
    (root / "empty").mkdir()
    tree = TreeScanner(root).scan()
    assert _names(tree) == ["src"]


def test_user_glob_rules_apply(make_files):
    root = make_files({"app.js": "", "app.min.js": ""})
    tree = TreeScanner(root, matcher=ExclusionMatcher(user_rules=["*.min.js"])).scan()
    assert _names(tree) == ["app.js"]


def test_extra_extensions_from_plugins(make_files):
    root = make_files({"Assets/hero.shader": "", "Assets/hero.cs": ""})
    assert _names(TreeScanner(root).scan().children[0]) == ["hero.cs"]
    tree = TreeScanner(root, extra_extensions=["shader"]).scan()
    assert _names(tree.children[0]) == ["hero.cs", "hero.shader"]


def test_gitignore_is_respected(make_files):
    root = make_files({
        ".gitignore": "generated/\n*.tmp.py\n",
        "generated/out.py": "",
        "src/keep.py": "",
        "src/scratch.tmp.py": "",
        "src/sub/.gitignore": "local.py\n",
        "src/sub/local.py": "",
        "src/sub/shared.py": "",
    })
    tree = TreeScanner(root).scan()
    paths = [os.path.relpath(p, root).replace(os.sep, "/") for p in tree.file_paths()]
    assert paths == ["src/sub/shared.py", "src/keep.py"]


def test_nested_gitignore_negation_reincludes(make_files):
    root = make_files({
        ".gitignore": "*.gen.py\n",
        "lib/.gitignore": "!keep.gen.py\n",
        "lib/keep.gen.py": "",
        "lib/drop.gen.py": "",
        "top.gen.py": "",
        "main.py": "",
    })
    tree = TreeScanner(root).scan()
    paths = [os.path.relpath(p, root).replace(os.sep, "/") for p in tree.file_paths()]
    assert paths == ["lib/keep.gen.py", "main.py"]


def test_gitignore_can_be_disabled(make_files):
    root = make_files({".gitignore": "*.py\n", "a.py": ""})
    assert TreeScanner(root, respect_gitignore=False).scan().count_files() == 1
    assert TreeScanner(root).scan().count_files() == 0


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinks_are_not_followed(make_files, tmp_path):
    outside = make_files({"secret.py": "x"}, root=tmp_path / "outside")
    root = make_files({"src/a.py": ""}, root=tmp_path / "project")
    try:
        os.symlink(outside, root / "link")
        os.symlink(root, root / "src" / "loop")
    except OSError:
        pytest.skip("cannot create symlinks here")
    tree = TreeScanner(root).scan()
    assert tree.file_paths() == [str(root / "src" / "a.py")]


def test_unreadable_entry_is_skipped_not_fatal(make_files, mocker):
    root = make_files({"ok/a.py": "", "locked/b.py": ""})
    real_scandir = os.scandir

    def flaky_scandir(path):
        if str(path).endswith("locked"):
            raise PermissionError("denied")
        return real_scandir(path)

    mocker.patch("codepack.core.fs_scanner.os.scandir", side_effect=flaky_scandir)
    tree = TreeScanner(root).scan()
    assert _names(tree) == ["ok"]


def test_invalid_root_raises(tmp_path):
    with pytest.raises(InvalidProjectRootError):
        TreeScanner(tmp_path / "missing").scan()
    file_root = tmp_path / "file.py"
    file_root.write_text("x")
    with pytest.raises(InvalidProjectRootError):
        TreeScanner(file_root).scan()


def test_empty_project_returns_empty_root(tmp_path):
    tree = TreeScanner(tmp_path).scan()
    assert tree.is_dir
    assert tree.children == []
    assert tree.path == str(tmp_path.resolve())
