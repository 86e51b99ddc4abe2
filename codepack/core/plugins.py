# codepack/core/plugins.py
import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from loguru import logger

from .errors import InvalidPluginError
from .fileio import atomic_write_text


def plugin_filename(name: str) -> str:
    return name.strip().lower().replace(" ", "-") + ".json"


class PluginDef(BaseModel):
    """
    Data-only project type definition loaded from a plugin directory.
    A plugin never executes code: it contributes detection markers,
    extra excluded directory names and extra source extensions.
    """
    name: str
    version: str = ""
    detect_files: List[str] = Field(default_factory=list)
    detect_dirs: List[str] = Field(default_factory=list)
    exclude_dirs: List[str] = Field(default_factory=list)
    source_extensions: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("plugin name must not be empty")
        return value.strip()

    def has_detection_rules(self) -> bool:
        return bool(self.detect_files or self.detect_dirs)

    def validate_rules(self) -> None:
        if not self.has_detection_rules():
            raise InvalidPluginError(f"Plugin '{self.name}' must declare detect_files or detect_dirs")

    def matches(self, root: Path) -> bool:
        """All listed files must exist and all listed dirs must be directories."""
        if not self.has_detection_rules():
            return False
        files_ok = all((root / f).exists() for f in self.detect_files)
        dirs_ok = all((root / d).is_dir() for d in self.detect_dirs)
        return files_ok and dirs_ok

    @property
    def filename(self) -> str:
        return plugin_filename(self.name)


class PluginStore:
    """Reads and writes plugin definitions, one JSON file per plugin."""

    def __init__(self, plugins_dir: Path):
        self.plugins_dir = Path(plugins_dir)
        self._cache: Optional[List[PluginDef]] = None

    def load(self, reload: bool = False) -> List[PluginDef]:
        """Loads all valid plugins in filename order. Malformed files are skipped."""
        if self._cache is not None and not reload:
            return list(self._cache)

        plugins: List[PluginDef] = []
        if not self.plugins_dir.is_dir():
            logger.debug(f"Plugins directory does not exist: {self.plugins_dir}")
            self._cache = plugins
            return list(plugins)

        try:
            candidates = sorted(p for p in self.plugins_dir.iterdir() if p.suffix.lower() == ".json")
        except OSError as e:
            logger.warning(f"Could not list plugins directory {self.plugins_dir}: {e}")
            candidates = []

        for path in candidates:
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                plugin = PluginDef.model_validate(data)
            except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
                logger.warning(f"Skipping invalid plugin file {path.name}: {e}")
                continue
            if not plugin.has_detection_rules():
                logger.warning(f"Skipping plugin '{plugin.name}' ({path.name}): no detect_files or detect_dirs")
                continue
            plugins.append(plugin)

        logger.info(f"Loaded {len(plugins)} plugin(s) from {self.plugins_dir}")
        self._cache = plugins
        return list(plugins)

    def save(self, plugin: PluginDef) -> Path:
        """Validates and writes a plugin atomically, then invalidates the cache."""
        plugin.validate_rules()
        target = atomic_write_text(self.plugins_dir / plugin.filename, plugin.model_dump_json(indent=2))
        logger.info(f"Saved plugin '{plugin.name}' to {target}")
        self._cache = None
        return target

    def delete(self, name: str) -> bool:
        """Removes the plugin file for `name`. Returns False if no such file existed."""
        target = self.plugins_dir / plugin_filename(name)
        if not target.exists():
            logger.warning(f"Plugin file not found for deletion: {target}")
            return False
        target.unlink()
        logger.info(f"Deleted plugin '{name}' ({target.name})")
        self._cache = None
        return True
