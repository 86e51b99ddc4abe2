# codepack/commands.py
"""
Entry points for the scan / pack / estimate / stats operations.

Each call is self-contained: it builds its own scanner or packer and shares
no mutable state with concurrent calls.
"""
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from loguru import logger

from .core.classifier import classify
from .core.errors import EmptySelectionError
from .core.exclusions import ExclusionMatcher
from .core.fileio import atomic_write_text
from .core.fs_scanner import TreeScanner
from .core.metadata import extract_metadata
from .core.models import ExportFormat, GitStatus, PackResult, ProjectStats, ScanResult, SecretMatch, TokenEstimate
from .core.packer import Packer
from .core.plugins import PluginDef, PluginStore
from .core.secrets import mask_text, scan_files
from .core.stats import compute_project_stats
from .core import token_counter
from .config.paths import get_user_plugins_dir
from .services import git as git_service


def _plugin_store(plugins_dir: Optional[Path]) -> PluginStore:
    return PluginStore(plugins_dir if plugins_dir is not None else get_user_plugins_dir())


def scan_directory(path: "str | Path",
                   plugins_dir: Optional[Path] = None,
                   user_excludes: Iterable[str] = (),
                   plugins: Optional[Sequence[PluginDef]] = None) -> ScanResult:
    """Classifies, scans and extracts metadata for a project root."""
    root = Path(path).resolve()
    if plugins is None:
        # Plugin files are re-read on every scan so edits apply without restart
        plugins = _plugin_store(plugins_dir).load(reload=True)
    classification = classify(root, plugins)
    matcher = ExclusionMatcher(user_rules=user_excludes, plugin_rules=classification.exclude_dirs)
    scanner = TreeScanner(root, matcher=matcher, extra_extensions=classification.source_extensions)
    tree = scanner.scan()
    metadata = extract_metadata(root, classification.project_type)
    total = tree.count_files()
    logger.info(f"Scanned {root}: type='{classification.project_type}', {total} files")
    return ScanResult(project_type=classification.project_type, tree=tree, total_files=total, metadata=metadata)


def pack_files(paths: Sequence[str],
               project_path: "str | Path",
               project_type: str,
               format: "ExportFormat | str" = ExportFormat.PLAIN,
               max_file_bytes: Optional[int] = None,
               include_diff: bool = False,
               instruction: Optional[str] = None,
               git_status: Optional[GitStatus] = None,
               diffs: Optional[Dict[str, str]] = None,
               mask_secrets: bool = False) -> PackResult:
    """
    Packs the selected files. With `include_diff`, diffs are taken from `diffs`
    when given, otherwise collected from git for the selected paths.
    """
    if not paths:
        raise EmptySelectionError("pack")
    if include_diff and diffs is None:
        diffs = git_service.collect_diffs(project_path, paths, git_status)
    packer = Packer(project_path, project_type, format, max_file_bytes=max_file_bytes, mask_secrets=mask_secrets)
    return packer.pack(paths, diffs=diffs if include_diff else None, instruction=instruction)


def export_to_file(save_path: "str | Path", paths: Sequence[str], project_path: "str | Path",
                   project_type: str, **pack_options) -> PackResult:
    """Packs and writes the result to `save_path` in a single atomic write."""
    result = pack_files(paths, project_path, project_type, **pack_options)
    atomic_write_text(save_path, result.content)
    logger.info(f"Exported {result.file_count} file(s) to {save_path}")
    return result


def estimate_tokens(paths: Sequence[str]) -> TokenEstimate:
    return token_counter.estimate_tokens(paths)


def get_project_stats(paths: Sequence[str]) -> ProjectStats:
    return compute_project_stats(paths)


def scan_secrets(paths: Sequence[str]) -> Dict[str, List[SecretMatch]]:
    return scan_files(paths)


def read_file_content(path: "str | Path", mask: bool = False) -> str:
    """Reads a text file for preview, optionally with secrets masked."""
    content = Path(path).read_text(encoding='utf-8', errors='replace')
    return mask_text(content) if mask else content


# --- Plugin management ---

def list_plugins(plugins_dir: Optional[Path] = None) -> List[PluginDef]:
    return _plugin_store(plugins_dir).load(reload=True)


def save_plugin(plugin: PluginDef, plugins_dir: Optional[Path] = None) -> Path:
    return _plugin_store(plugins_dir).save(plugin)


def delete_plugin(name: str, plugins_dir: Optional[Path] = None) -> bool:
    return _plugin_store(plugins_dir).delete(name)
