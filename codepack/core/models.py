# codepack/core/models.py
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Iterator


class ExportFormat(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"
    XML = "xml"

    @classmethod
    def parse(cls, value: "str | ExportFormat") -> "ExportFormat":
        """Accepts an enum member or its (case-insensitive) string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown export format: {value!r} (expected plain, markdown or xml)") from None


@dataclass
class FileNode:
    """Represents a file or directory in the scanned tree."""
    name: str
    path: str # Absolute path
    is_dir: bool
    children: List['FileNode'] = field(default_factory=list)
    checked: bool = False
    indeterminate: bool = False # Only ever set on directories

    def iter_files(self) -> Iterator['FileNode']:
        """Yields leaf nodes in traversal order (directories first at each level)."""
        if not self.is_dir:
            yield self
            return
        for child in self.children:
            yield from child.iter_files()

    def file_paths(self) -> List[str]:
        return [leaf.path for leaf in self.iter_files()]

    def count_files(self) -> int:
        return sum(1 for _ in self.iter_files())

    def find(self, path: str) -> Optional['FileNode']:
        if self.path == path:
            return self
        for child in self.children:
            # Only descend into directories whose path is a prefix of the target
            if child.path == path or (child.is_dir and path.startswith(child.path)):
                found = child.find(path)
                if found:
                    return found
        return None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ProjectMetadata:
    """Manifest-derived summary of a project, produced once per scan."""
    name: str
    project_type: str
    version: Optional[str] = None
    description: Optional[str] = None
    entry_point: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    dev_dependencies: List[str] = field(default_factory=list)
    runtime: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)


@dataclass
class ScanResult:
    project_type: str
    tree: FileNode
    total_files: int
    metadata: ProjectMetadata


@dataclass
class SecretMatch:
    """A single secret detected on one line of content."""
    rule_name: str
    line_number: int # 1-based
    match_content: str
    secret_type: str = "api_key" # api_key, private_key, password
    start: int = 0 # Column span within the line
    end: int = 0


@dataclass
class SkippedFile:
    path: str # Relative to the project root
    reason: str # binary, limit, unreadable, count
    size_bytes: int = 0


@dataclass
class PackResult:
    content: str
    file_count: int
    total_bytes: int
    estimated_tokens: int
    skipped_files: List[SkippedFile] = field(default_factory=list)


@dataclass
class TokenEstimate:
    tokens: int
    total_bytes: int


@dataclass
class LangStat:
    language: str
    extension: str
    file_count: int = 0
    line_count: int = 0
    byte_count: int = 0


@dataclass
class ProjectStats:
    total_files: int
    total_lines: int
    total_bytes: int
    languages: List[LangStat] = field(default_factory=list)


@dataclass
class ChangedFile:
    path: str # Absolute path
    status: str # added, modified, deleted, renamed, typechange, unknown


@dataclass
class GitStatus:
    """Snapshot of a repository's working changes, consumed read-only."""
    is_repo: bool
    branch: str = ""
    changed_files: List[ChangedFile] = field(default_factory=list)

    def changed_paths(self, include_deleted: bool = False) -> List[str]:
        return [f.path for f in self.changed_files if include_deleted or f.status != "deleted"]
