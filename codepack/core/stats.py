# codepack/core/stats.py
from pathlib import Path
from typing import Dict, Iterable
from loguru import logger

from .exclusions import file_extension
from .models import LangStat, ProjectStats

_LANGUAGES: Dict[str, str] = {
    "rs": "Rust",
    "ts": "TypeScript", "tsx": "TypeScript",
    "js": "JavaScript", "jsx": "JavaScript",
    "vue": "Vue",
    "svelte": "Svelte",
    "py": "Python",
    "kt": "Kotlin", "kts": "Kotlin",
    "java": "Java",
    "dart": "Dart",
    "go": "Go",
    "rb": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "c": "C",
    "cpp": "C++", "cc": "C++", "cxx": "C++",
    "h": "C/C++ Header", "hpp": "C/C++ Header",
    "cs": "C#",
    "scala": "Scala",
    "html": "HTML",
    "css": "CSS",
    "scss": "CSS (preprocessor)", "sass": "CSS (preprocessor)", "less": "CSS (preprocessor)",
    "json": "JSON",
    "yaml": "YAML", "yml": "YAML",
    "toml": "TOML",
    "xml": "XML",
    "md": "Markdown", "mdx": "Markdown",
    "sql": "SQL",
    "sh": "Shell", "bash": "Shell", "zsh": "Shell", "fish": "Shell",
    "bat": "PowerShell/Batch", "ps1": "PowerShell/Batch",
    "graphql": "GraphQL", "gql": "GraphQL",
    "proto": "Protobuf",
    "tf": "Terraform/HCL", "hcl": "Terraform/HCL",
    "lua": "Lua",
    "r": "R",
    "jl": "Julia",
}


def ext_to_language(ext: str) -> str:
    """Display language for an extension; unknown extensions are shown as-is."""
    ext = ext.lower()
    return _LANGUAGES.get(ext, ext)


def count_lines(text: str) -> int:
    """Newline-terminated line count; a final line without a newline still counts."""
    if not text:
        return 0
    newlines = text.count("\n")
    return newlines if text.endswith("\n") else newlines + 1


def compute_project_stats(paths: Iterable[str]) -> ProjectStats:
    """
    Line/byte/file totals for readable text files, grouped by display language.
    Languages are ordered by line count (descending), then name.
    """
    languages: Dict[str, LangStat] = {}
    total_files = total_lines = total_bytes = 0

    for path in dict.fromkeys(paths):
        try:
            data = Path(path).read_bytes()
            content = data.decode('utf-8')
        except (OSError, UnicodeDecodeError) as e:
            logger.trace(f"Skipping {path} in stats: {e}")
            continue
        size = len(data)
        lines = count_lines(content)
        ext = file_extension(Path(path).name) or "other"
        language = ext_to_language(ext)

        stat = languages.setdefault(language, LangStat(language=language, extension=ext))
        stat.file_count += 1
        stat.line_count += lines
        stat.byte_count += size
        total_files += 1
        total_lines += lines
        total_bytes += size

    ordered = sorted(languages.values(), key=lambda s: (-s.line_count, s.language))
    logger.debug(f"Computed stats: {total_files} files, {total_lines} lines, {len(ordered)} languages")
    return ProjectStats(total_files=total_files, total_lines=total_lines, total_bytes=total_bytes, languages=ordered)
