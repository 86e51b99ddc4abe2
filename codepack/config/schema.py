# codepack/config/schema.py
import time
from pydantic import BaseModel, Field
from typing import List, Dict

from ..core.models import ExportFormat
from ..core.packer import DEFAULT_MAX_FILE_BYTES


def now_epoch() -> str:
    return str(int(time.time()))


class ProjectConfig(BaseModel):
    project_path: str
    checked_paths: List[str] = Field(default_factory=list)
    excluded_paths: List[str] = Field(default_factory=list)
    last_opened: str = Field(default_factory=now_epoch) # Epoch seconds
    presets: Dict[str, List[str]] = Field(default_factory=dict) # Name -> checked paths
    pinned: bool = False


class PackSettings(BaseModel):
    default_format: ExportFormat = ExportFormat.PLAIN
    max_file_bytes: int = Field(default=DEFAULT_MAX_FILE_BYTES, gt=0)
    mask_secrets: bool = False
    user_excludes: List[str] = Field(default_factory=lambda: [
        # Generated bundles
        "*.min.js", "*.min.css",
        # Lock files
        "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    ])


class AppConfig(BaseModel):
    projects: Dict[str, ProjectConfig] = Field(default_factory=dict) # Keyed by project root
    pack: PackSettings = Field(default_factory=PackSettings)
