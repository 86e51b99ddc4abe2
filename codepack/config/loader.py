# codepack/config/loader.py
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError
from loguru import logger

from ..core.errors import ConfigWriteError, EmptySelectionError
from ..core.fileio import atomic_write_text
from .schema import AppConfig, ProjectConfig, now_epoch
from .paths import get_user_config_file


class ConfigStore:
    """
    App-wide JSON config holding one ProjectConfig per project root.
    Reads tolerate missing, corrupt or invalid files; writes are atomic.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = Path(config_path) if config_path else None
        self._cached: Optional[AppConfig] = None

    @property
    def config_path(self) -> Path:
        if self._config_path is None:
            self._config_path = get_user_config_file()
        return self._config_path

    def load(self, reload: bool = False) -> AppConfig:
        """Loads the application configuration."""
        if self._cached is not None and not reload:
            return self._cached

        config_path = self.config_path
        loaded_data: Dict = {}
        if config_path.exists():
            logger.info(f"Loading configuration from: {config_path}")
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    loaded_data = json.load(f)
            except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to load config file {config_path}: {e}")
                self._backup_corrupted(config_path)
                loaded_data = {}
        else:
            logger.info("Config file not found. Using default settings.")

        try:
            config = AppConfig.model_validate(loaded_data)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            logger.warning("Falling back to default configuration.")
            config = AppConfig()
        self._cached = config
        return config

    def _backup_corrupted(self, config_path: Path) -> None:
        try:
            backup_path = config_path.with_suffix(".json.corrupted")
            if backup_path.exists(): backup_path.unlink(missing_ok=True)
            config_path.rename(backup_path)
            logger.info(f"Backed up corrupted config to: {backup_path}")
        except OSError as backup_err:
            logger.error(f"Failed to backup corrupted config: {backup_err}")

    def save(self, config: Optional[AppConfig] = None) -> None:
        """Writes the configuration atomically. Raises ConfigWriteError on failure."""
        config = config or self.load()
        config_path = self.config_path
        logger.debug(f"Saving configuration to: {config_path}")
        try:
            atomic_write_text(config_path, config.model_dump_json(indent=4))
        except OSError as e:
            logger.error(f"Failed to save configuration to {config_path}: {e}")
            raise ConfigWriteError(f"Could not write config {config_path}: {e}") from e
        self._cached = config

    # --- Project entries ---

    @staticmethod
    def _key(project_path: "str | Path") -> str:
        return str(Path(project_path).resolve())

    def get_project(self, project_path: "str | Path") -> Optional[ProjectConfig]:
        return self.load().projects.get(self._key(project_path))

    def save_project(self, project_path: "str | Path", checked_paths: Iterable[str],
                     excluded_paths: Optional[Iterable[str]] = None) -> ProjectConfig:
        """Updates the selection for a project, keeping its presets and pinned flag."""
        config = self.load()
        key = self._key(project_path)
        existing = config.projects.get(key)
        entry = ProjectConfig(
            project_path=key,
            checked_paths=list(checked_paths),
            excluded_paths=list(excluded_paths) if excluded_paths is not None
                           else (existing.excluded_paths if existing else []),
            last_opened=now_epoch(),
            presets=dict(existing.presets) if existing else {},
            pinned=existing.pinned if existing else False,
        )
        config.projects[key] = entry
        self.save(config)
        return entry

    def _require_project(self, project_path: "str | Path") -> ProjectConfig:
        config = self.load()
        key = self._key(project_path)
        entry = config.projects.get(key)
        if entry is None:
            entry = ProjectConfig(project_path=key)
            config.projects[key] = entry
        return entry

    def save_preset(self, project_path: "str | Path", name: str, paths: Iterable[str]) -> None:
        paths = list(paths)
        name = name.strip()
        if not name:
            raise ValueError("Preset name must not be empty")
        if not paths:
            raise EmptySelectionError("save preset")
        entry = self._require_project(project_path)
        entry.presets[name] = paths
        self.save()
        logger.info(f"Saved preset '{name}' ({len(paths)} paths) for {entry.project_path}")

    def delete_preset(self, project_path: "str | Path", name: str) -> bool:
        entry = self.get_project(project_path)
        if entry is None or name not in entry.presets:
            return False
        del entry.presets[name]
        self.save()
        logger.info(f"Deleted preset '{name}' for {entry.project_path}")
        return True

    def list_presets(self, project_path: "str | Path") -> Dict[str, List[str]]:
        entry = self.get_project(project_path)
        return dict(entry.presets) if entry else {}

    def set_pinned(self, project_path: "str | Path", pinned: bool) -> None:
        entry = self._require_project(project_path)
        entry.pinned = pinned
        self.save()

    def recent_projects(self) -> List[ProjectConfig]:
        """Pinned projects first, then most recently opened."""
        projects = list(self.load().projects.values())
        return sorted(projects, key=lambda p: (not p.pinned, -_as_int(p.last_opened), p.project_path))

    def remove_project(self, project_path: "str | Path") -> bool:
        config = self.load()
        if config.projects.pop(self._key(project_path), None) is None:
            return False
        self.save(config)
        return True


def _as_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


_default_store: Optional[ConfigStore] = None


def get_store() -> ConfigStore:
    """Returns the process-wide store backed by the user config file."""
    global _default_store
    if _default_store is None:
        _default_store = ConfigStore()
    return _default_store
