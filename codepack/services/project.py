# codepack/services/project.py
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger

from .. import commands
from ..config.loader import ConfigStore, get_store
from ..core import selection
from ..core.errors import ConfigWriteError, ValidationError
from ..core.models import ExportFormat, FileNode, GitStatus, PackResult, ProjectStats, ScanResult, SecretMatch, TokenEstimate
from ..core.selection import BulkAction, ReconcileReport
from . import git as git_service

ChangeListener = Callable[["ProjectSession"], None]


class ProjectSession:
    """
    One open project: the scanned tree (the single source of selection
    truth), its persisted config entry and the operations run on it.
    Listeners registered with `subscribe` are called after every change.
    """

    def __init__(self, store: Optional[ConfigStore] = None, plugins_dir: Optional[Path] = None):
        self.store = store or get_store()
        self.plugins_dir = plugins_dir
        self.project_path: Optional[Path] = None
        self.scan_result: Optional[ScanResult] = None
        self.last_save_error: Optional[str] = None
        self._listeners: List[ChangeListener] = []
        self._refresh_lock = threading.Lock()

    # --- Observers ---

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try: listener(self)
            except Exception as e: logger.error(f"Error in change listener: {e}")

    # --- Accessors ---

    def _require_scan(self) -> ScanResult:
        if self.scan_result is None:
            raise ValidationError("No project is open")
        return self.scan_result

    @property
    def tree(self) -> FileNode:
        return self._require_scan().tree

    @property
    def checked_paths(self) -> List[str]:
        return selection.collect_checked(self.tree)

    def _user_excludes(self) -> List[str]:
        return list(self.store.load().pack.user_excludes)

    # --- Lifecycle ---

    def open(self, path: "str | Path") -> ScanResult:
        """Scans a project and restores its saved selection (everything checked on first open)."""
        root = Path(path).resolve()
        result = commands.scan_directory(root, plugins_dir=self.plugins_dir, user_excludes=self._user_excludes())
        saved = self.store.get_project(root)
        if saved and saved.checked_paths:
            selection.restore(result.tree, saved.checked_paths)
            logger.info(f"Restored {len(selection.collect_checked(result.tree))} checked path(s) for {root}")
        else:
            selection.set_all(result.tree, True)
        self.project_path = root
        self.scan_result = result
        self.persist()
        self._notify()
        return result

    def refresh(self) -> Optional[ReconcileReport]:
        """
        Re-scans the open project and carries the selection over.
        Returns None without doing anything if a refresh is already running.
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Refresh already in progress; ignoring request")
            return None
        try:
            old = self._require_scan()
            new = commands.scan_directory(self.project_path, plugins_dir=self.plugins_dir,
                                          user_excludes=self._user_excludes())
            report = selection.reconcile_on_rescan(old.tree, new.tree)
            self.scan_result = new
            self.persist()
            self._notify()
            logger.info(f"Refreshed {self.project_path}: +{report.added} / -{report.removed} files")
            return report
        finally:
            self._refresh_lock.release()

    def persist(self) -> bool:
        """Saves the current selection. Failures are logged and leave the selection untouched."""
        if self.project_path is None or self.scan_result is None:
            return False
        try:
            self.store.save_project(self.project_path, self.checked_paths)
            self.last_save_error = None
            return True
        except ConfigWriteError as e:
            logger.error(f"Could not persist selection for {self.project_path}: {e}")
            self.last_save_error = str(e)
            return False

    # --- Selection ---

    def toggle(self, path: str, checked: bool) -> bool:
        found = selection.set_checked(self.tree, path, checked)
        if found:
            self.persist()
            self._notify()
        return found

    def apply_bulk(self, action: "BulkAction | str", ext: Optional[str] = None,
                   git_status: Optional[GitStatus] = None) -> int:
        action = BulkAction(action)
        if action is BulkAction.GIT_CHANGED and git_status is None:
            git_status = self.git_status()
        count = selection.apply_bulk_action(self.tree, action, ext=ext, git_status=git_status)
        self.persist()
        self._notify()
        return count

    # --- Presets & pinning ---

    def save_preset(self, name: str) -> None:
        self.store.save_preset(self._require_project_path(), name, self.checked_paths)

    def load_preset(self, name: str) -> int:
        presets = self.store.list_presets(self._require_project_path())
        if name not in presets:
            raise ValidationError(f"Unknown preset: {name}")
        selection.restore(self.tree, presets[name])
        self.persist()
        self._notify()
        return len(self.checked_paths)

    def delete_preset(self, name: str) -> bool:
        return self.store.delete_preset(self._require_project_path(), name)

    def list_presets(self) -> Dict[str, List[str]]:
        return self.store.list_presets(self._require_project_path())

    def set_pinned(self, pinned: bool) -> None:
        self.store.set_pinned(self._require_project_path(), pinned)

    # --- Pipeline operations on the current selection ---

    def git_status(self) -> GitStatus:
        return git_service.get_git_status(self._require_project_path())

    def _require_project_path(self) -> Path:
        if self.project_path is None:
            raise ValidationError("No project is open")
        return self.project_path

    def pack(self, format: "ExportFormat | str | None" = None, include_diff: bool = False,
             instruction: Optional[str] = None, save_path: "str | Path | None" = None) -> PackResult:
        settings = self.store.load().pack
        result = self._require_scan()
        options = dict(
            format=format or settings.default_format,
            max_file_bytes=settings.max_file_bytes,
            include_diff=include_diff,
            instruction=instruction,
            mask_secrets=settings.mask_secrets,
        )
        if save_path is not None:
            return commands.export_to_file(save_path, self.checked_paths, self.project_path,
                                           result.project_type, **options)
        return commands.pack_files(self.checked_paths, self.project_path, result.project_type, **options)

    def estimate_tokens(self) -> TokenEstimate:
        return commands.estimate_tokens(self.checked_paths)

    def stats(self) -> ProjectStats:
        return commands.get_project_stats(self.checked_paths)

    def scan_secrets(self) -> Dict[str, List[SecretMatch]]:
        return commands.scan_secrets(self.checked_paths)
