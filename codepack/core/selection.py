# codepack/core/selection.py
"""
Tri-state selection over a caller-owned FileNode tree.

All functions mutate the tree in place and never touch the filesystem.
A directory's state is always derived from its children: call
`update_parent` bottom-up (or use the helpers here, which do so) after
changing any leaf.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional
from loguru import logger

from .exclusions import file_extension
from .models import FileNode, GitStatus

LeafPredicate = Callable[[FileNode], bool]

SOURCE_EXTS = frozenset({
    "rs", "ts", "tsx", "js", "jsx", "vue", "svelte", "py", "kt", "kts", "java", "dart",
    "go", "rb", "php", "swift", "c", "cpp", "h", "hpp", "cs", "m", "mm", "scala",
    "clj", "ex", "exs", "hs", "lua", "r", "jl", "sh", "bash", "bat", "ps1", "sql",
})

CONFIG_EXTS = frozenset({
    "json", "yaml", "yml", "toml", "xml", "ini", "cfg", "conf", "env", "properties",
    "editorconfig", "eslintrc", "prettierrc", "gitignore", "dockerfile", "makefile",
})


def set_all(node: FileNode, checked: bool) -> None:
    node.checked = checked
    node.indeterminate = False
    for child in node.children:
        set_all(child, checked)


def update_parent(node: FileNode) -> None:
    """Recomputes a directory's flags from its direct children only."""
    if not node.is_dir:
        node.indeterminate = False
        return
    if not node.children:
        node.indeterminate = False
        return
    all_checked = all(c.checked for c in node.children)
    some_checked = any(c.checked or c.indeterminate for c in node.children)
    node.checked = all_checked
    node.indeterminate = not all_checked and some_checked


def _recompute(node: FileNode) -> None:
    for child in node.children:
        if child.is_dir:
            _recompute(child)
    update_parent(node)


def set_checked(tree: FileNode, path: str, checked: bool) -> bool:
    """
    Toggles one node (and its whole subtree for directories), then fixes up
    every ancestor. Returns False if `path` is not in the tree.
    """
    def visit(node: FileNode) -> bool:
        if node.path == path:
            set_all(node, checked)
            return True
        for child in node.children:
            if child.is_dir or child.path == path:
                if visit(child):
                    update_parent(node)
                    return True
        return False

    found = visit(tree)
    if not found:
        logger.debug(f"set_checked: path not in tree: {path}")
    return found


def restore(tree: FileNode, checked_paths: Iterable[str]) -> None:
    """Applies a persisted path set to the tree; paths not in the tree are ignored."""
    wanted = set(checked_paths)

    def visit(node: FileNode) -> None:
        if node.is_dir:
            for child in node.children:
                visit(child)
            update_parent(node)
        else:
            node.checked = node.path in wanted
            node.indeterminate = False

    visit(tree)


def collect_checked(tree: FileNode) -> List[str]:
    """Checked leaf paths in traversal order."""
    return [leaf.path for leaf in tree.iter_files() if leaf.checked]


@dataclass
class ReconcileReport:
    added: int
    removed: int
    total: int # Leaf count of the new tree


def reconcile_on_rescan(old_tree: Optional[FileNode], new_tree: FileNode) -> ReconcileReport:
    """
    Carries the selection of `old_tree` over to `new_tree`.
    Files only present in the new tree stay unchecked.
    """
    old_paths = set(old_tree.file_paths()) if old_tree else set()
    new_paths = set(new_tree.file_paths())
    restore(new_tree, collect_checked(old_tree) if old_tree else [])
    report = ReconcileReport(
        added=len(new_paths - old_paths),
        removed=len(old_paths - new_paths),
        total=len(new_paths),
    )
    logger.debug(f"Reconciled selection: +{report.added} / -{report.removed} files ({report.total} total)")
    return report


def select_by_filter(tree: FileNode, predicate: LeafPredicate) -> int:
    """Sets every leaf to predicate(leaf), replacing the prior selection. Returns the checked count."""
    count = 0

    def visit(node: FileNode) -> None:
        nonlocal count
        if node.is_dir:
            for child in node.children:
                visit(child)
            update_parent(node)
        else:
            node.checked = bool(predicate(node))
            node.indeterminate = False
            count += node.checked

    visit(tree)
    return count


# --- Predicate factories ---

def _leaf_ext(leaf: FileNode) -> str:
    # Extensionless names such as Dockerfile/Makefile match by name
    return file_extension(leaf.name) or leaf.name.lower()


def by_extension(ext: str) -> LeafPredicate:
    wanted = ext.strip().lstrip(".").lower()
    return lambda leaf: _leaf_ext(leaf) == wanted


def source_files() -> LeafPredicate:
    return lambda leaf: _leaf_ext(leaf) in SOURCE_EXTS


def config_files() -> LeafPredicate:
    return lambda leaf: _leaf_ext(leaf) in CONFIG_EXTS


def git_changed(git_status: Optional[GitStatus]) -> LeafPredicate:
    """Leaves with working changes; deleted files never match."""
    changed = set()
    if git_status and git_status.is_repo:
        changed = {_norm(p) for p in git_status.changed_paths()}
    return lambda leaf: _norm(leaf.path) in changed


def _norm(path: str) -> str:
    return path.replace("\\", "/")


class BulkAction(str, Enum):
    ALL = "all"
    NONE = "none"
    EXTENSION = "ext"
    SOURCE = "source"
    CONFIG = "config"
    GIT_CHANGED = "git-changed"


def apply_bulk_action(tree: FileNode, action: "BulkAction | str",
                      ext: Optional[str] = None, git_status: Optional[GitStatus] = None) -> int:
    action = BulkAction(action)
    if action is BulkAction.ALL:
        set_all(tree, True)
        return tree.count_files()
    if action is BulkAction.NONE:
        set_all(tree, False)
        return 0
    if action is BulkAction.EXTENSION:
        if not ext:
            raise ValueError("Extension bulk action requires an extension")
        predicate = by_extension(ext)
    elif action is BulkAction.SOURCE:
        predicate = source_files()
    elif action is BulkAction.CONFIG:
        predicate = config_files()
    else:
        predicate = git_changed(git_status)
    return select_by_filter(tree, predicate)
