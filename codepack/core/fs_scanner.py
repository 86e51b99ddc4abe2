# codepack/core/fs_scanner.py
import os
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pathspec
from loguru import logger

from .errors import InvalidProjectRootError, ScanCancelledError
from .exclusions import ExclusionMatcher, is_source_file
from .models import FileNode

# A .gitignore spec together with the directory it applies to
_IgnoreLayer = Tuple[str, pathspec.PathSpec]


def _load_gitignore(dir_path: str) -> Optional[pathspec.PathSpec]:
    gitignore = os.path.join(dir_path, ".gitignore")
    if not os.path.isfile(gitignore):
        return None
    try:
        with open(gitignore, 'r', encoding='utf-8', errors='replace') as f:
            spec = pathspec.PathSpec.from_lines("gitwildmatch", f)
        logger.trace(f"Loaded .gitignore from {dir_path}")
        return spec
    except OSError as e:
        logger.warning(f"Could not read {gitignore}: {e}")
        return None


class TreeScanner:
    """
    Depth-first directory walk producing a FileNode tree.

    Excluded directories are pruned before being opened, symlinks are never
    followed, and per-entry I/O errors drop only that entry. Directories left
    without any children are omitted. Every node starts unchecked.
    """

    def __init__(self,
                 root_path: "str | Path",
                 matcher: Optional[ExclusionMatcher] = None,
                 extra_extensions: Iterable[str] = (),
                 respect_gitignore: bool = True,
                 include_hidden: bool = False):
        self.root_path = Path(root_path).resolve()
        self.matcher = matcher or ExclusionMatcher()
        self.extra_extensions = list(extra_extensions)
        self.respect_gitignore = respect_gitignore
        self.include_hidden = include_hidden
        self._is_cancelled = threading.Event()
        logger.debug(f"Scanner initialized for {self.root_path} (extra extensions: {self.extra_extensions})")

    def _is_gitignored(self, abs_path: str, is_dir: bool, layers: List[_IgnoreLayer]) -> bool:
        """The innermost .gitignore with a matching pattern decides, so `!pattern` can re-include."""
        for base, spec in reversed(layers):
            rel = os.path.relpath(abs_path, base).replace(os.sep, "/")
            if is_dir:
                rel += "/"
            result = spec.check_file(rel)
            if result.include is not None:
                if result.include:
                    logger.trace(f"Ignoring '{rel}' per .gitignore in {base}")
                return result.include
        return False

    def _should_skip(self, name: str, abs_path: str, is_dir: bool, layers: List[_IgnoreLayer]) -> bool:
        if not self.include_hidden and name.startswith("."):
            return True
        if self.matcher.is_excluded(name):
            logger.trace(f"Pruning excluded entry: {abs_path}")
            return True
        if self.respect_gitignore and self._is_gitignored(abs_path, is_dir, layers):
            return True
        if not is_dir and not is_source_file(name, self.extra_extensions):
            return True
        return False

    def scan(self) -> FileNode:
        """Scans the root synchronously. Raises InvalidProjectRootError if the root is not a directory."""
        logger.info(f"[Scan] Starting for: {self.root_path}")
        self._is_cancelled.clear()
        if not self.root_path.is_dir():
            raise InvalidProjectRootError(self.root_path)

        root_str = str(self.root_path)
        root_node = self._scan_recursive(root_str, [])
        if self._is_cancelled.is_set():
            logger.info(f"[Scan] Cancelled for: {self.root_path}")
            raise ScanCancelledError(f"Scan cancelled: {self.root_path}")
        if root_node is None:
            # Root itself holds nothing scannable; still return an (empty) root
            root_node = FileNode(name=self.root_path.name or root_str, path=root_str, is_dir=True)
        logger.info(f"[Scan] Finished for: {self.root_path} ({root_node.count_files()} files)")
        return root_node

    def _scan_recursive(self, dir_path: str, layers: List[_IgnoreLayer]) -> Optional[FileNode]:
        if self._is_cancelled.is_set(): return None

        if self.respect_gitignore:
            spec = _load_gitignore(dir_path)
            if spec is not None:
                layers = layers + [(dir_path, spec)]

        try: entries = list(os.scandir(dir_path))
        except OSError as scandir_err:
            logger.warning(f"Could not scan directory contents {dir_path}: {scandir_err}")
            return None

        child_nodes: List[FileNode] = []
        for entry in entries:
            if self._is_cancelled.is_set(): return None
            try:
                if entry.is_symlink():
                    logger.trace(f"Ignoring symlink entry: {entry.path}")
                    continue
                entry_is_dir = entry.is_dir(follow_symlinks=False)
                entry_is_file = entry.is_file(follow_symlinks=False)
            except OSError as e:
                logger.warning(f"Could not stat entry {entry.path}: {e}. Skipping.")
                continue

            if not (entry_is_dir or entry_is_file):
                continue # sockets, fifos, devices
            if self._should_skip(entry.name, entry.path, entry_is_dir, layers):
                continue

            if entry_is_dir:
                sub_dir_node = self._scan_recursive(entry.path, layers)
                if sub_dir_node: child_nodes.append(sub_dir_node)
            else:
                child_nodes.append(FileNode(name=entry.name, path=entry.path, is_dir=False))

        if not child_nodes:
            return None
        name = os.path.basename(dir_path) or dir_path
        node = FileNode(name=name, path=dir_path, is_dir=True)
        node.children = sorted(child_nodes, key=lambda n: (not n.is_dir, n.name.lower(), n.name))
        return node

    def cancel(self):
        """Signals the scanner to stop between entries."""
        logger.info("Cancellation requested for scanner.")
        self._is_cancelled.set()
