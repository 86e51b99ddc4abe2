# tests/core/test_selection.py
import itertools
import random

import pytest

from codepack.core import selection
from codepack.core.models import ChangedFile, FileNode, GitStatus
from codepack.core.selection import BulkAction


def leaf(path):
    return FileNode(name=path.rsplit("/", 1)[-1], path=path, is_dir=False)


def folder(path, *children):
    return FileNode(name=path.rsplit("/", 1)[-1], path=path, is_dir=True, children=list(children))


@pytest.fixture
def tree():
    return folder("/p",
        folder("/p/src",
            folder("/p/src/util", leaf("/p/src/util/a.py"), leaf("/p/src/util/b.py")),
            leaf("/p/src/main.ts"),
        ),
        leaf("/p/config.json"),
        leaf("/p/Dockerfile"),
        leaf("/p/README.md"),
    )


def _dirs(node):
    if node.is_dir:
        yield node
        for child in node.children:
            yield from _dirs(child)


def _assert_tristate_consistent(node):
    for d in _dirs(node):
        if not d.children:
            continue
        all_checked = all(c.checked for c in d.children)
        some = any(c.checked or c.indeterminate for c in d.children)
        assert d.checked == all_checked, d.path
        assert d.indeterminate == (not all_checked and some), d.path
    for f in node.iter_files():
        assert not f.indeterminate


def test_set_all(tree):
    selection.set_all(tree, True)
    assert tree.checked and not tree.indeterminate
    assert all(f.checked for f in tree.iter_files())
    selection.set_all(tree, False)
    assert not any(f.checked for f in tree.iter_files())


def test_update_parent_uses_direct_children_only():
    child_dir = folder("/r/d", leaf("/r/d/x"), leaf("/r/d/y"))
    child_dir.checked, child_dir.indeterminate = False, True
    root = folder("/r", child_dir, leaf("/r/z"))
    root.children[1].checked = True
    selection.update_parent(root)
    assert not root.checked
    assert root.indeterminate


def test_set_checked_propagates_to_ancestors(tree):
    selection.set_checked(tree, "/p/src/util/a.py", True)
    util = tree.find("/p/src/util")
    src = tree.find("/p/src")
    assert util.indeterminate and not util.checked
    assert src.indeterminate and tree.indeterminate

    selection.set_checked(tree, "/p/src/util/b.py", True)
    assert util.checked and not util.indeterminate
    assert src.indeterminate

    selection.set_checked(tree, "/p/src", False)
    assert not any(f.checked for f in src.iter_files())
    assert not tree.checked and not tree.indeterminate


def test_set_checked_unknown_path(tree):
    assert selection.set_checked(tree, "/p/missing.py", True) is False


def test_tristate_invariant_after_random_toggles(tree):
    rng = random.Random(7)
    leaves = tree.file_paths()
    for _ in range(50):
        selection.set_checked(tree, rng.choice(leaves), rng.random() < 0.5)
        _assert_tristate_consistent(tree)


def test_restore_then_collect_is_intersection(tree):
    leaves = tree.file_paths()
    stale = ["/p/old.py", "/p/src/gone.ts", "/p/src"]
    for size in range(len(leaves) + 1):
        for subset in itertools.combinations(leaves, size):
            selection.restore(tree, list(subset) + stale)
            assert set(selection.collect_checked(tree)) == set(subset)
            _assert_tristate_consistent(tree)


def test_collect_checked_traversal_order(tree):
    selection.set_all(tree, True)
    assert selection.collect_checked(tree) == [
        "/p/src/util/a.py", "/p/src/util/b.py", "/p/src/main.ts",
        "/p/config.json", "/p/Dockerfile", "/p/README.md",
    ]


def test_reconcile_new_files_default_unchecked(tree):
    selection.set_all(tree, True)
    new_tree = folder("/p",
        folder("/p/src",
            folder("/p/src/util", leaf("/p/src/util/a.py"), leaf("/p/src/util/c.py")),
            leaf("/p/src/main.ts"),
        ),
        leaf("/p/README.md"),
    )
    report = selection.reconcile_on_rescan(tree, new_tree)
    assert (report.added, report.removed, report.total) == (1, 3, 4)
    assert selection.collect_checked(new_tree) == ["/p/src/util/a.py", "/p/src/main.ts", "/p/README.md"]
    assert new_tree.find("/p/src/util").indeterminate


def test_reconcile_without_previous_tree(tree):
    report = selection.reconcile_on_rescan(None, tree)
    assert report.added == 6 and report.removed == 0
    assert selection.collect_checked(tree) == []


def test_bulk_actions_replace_previous_selection(tree):
    selection.set_all(tree, True)
    assert selection.apply_bulk_action(tree, BulkAction.EXTENSION, ext=".py") == 2
    assert selection.collect_checked(tree) == ["/p/src/util/a.py", "/p/src/util/b.py"]
    assert tree.find("/p/src").indeterminate

    assert selection.apply_bulk_action(tree, "source") == 3
    assert "/p/src/main.ts" in selection.collect_checked(tree)

    assert selection.apply_bulk_action(tree, BulkAction.CONFIG) == 2
    assert selection.collect_checked(tree) == ["/p/config.json", "/p/Dockerfile"]

    assert selection.apply_bulk_action(tree, BulkAction.NONE) == 0
    assert selection.apply_bulk_action(tree, BulkAction.ALL) == 6
    assert tree.checked


def test_extension_action_requires_extension(tree):
    with pytest.raises(ValueError):
        selection.apply_bulk_action(tree, BulkAction.EXTENSION)


def test_git_changed_filter_skips_deleted(tree):
    status = GitStatus(is_repo=True, branch="main", changed_files=[
        ChangedFile(path="/p/src/main.ts", status="modified"),
        ChangedFile(path="/p/README.md", status="deleted"),
        ChangedFile(path="/p/new.py", status="added"),
    ])
    count = selection.apply_bulk_action(tree, BulkAction.GIT_CHANGED, git_status=status)
    assert count == 1
    assert selection.collect_checked(tree) == ["/p/src/main.ts"]


def test_git_changed_filter_without_repo(tree):
    selection.set_all(tree, True)
    assert selection.apply_bulk_action(tree, BulkAction.GIT_CHANGED, git_status=GitStatus(is_repo=False)) == 0
    assert selection.collect_checked(tree) == []
