# codepack/core/packer.py
import os
import re
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from loguru import logger

from .errors import EmptySelectionError
from .exclusions import file_extension
from .metadata import extract_metadata
from .models import ExportFormat, PackResult, ProjectMetadata, SkippedFile
from .secrets import mask_text
from .token_counter import estimate_from_bytes, format_tokens

DEFAULT_MAX_FILE_BYTES = 1_048_576 # 1 MB
MAX_FILE_COUNT = 5_000

SKIP_LIMIT = "limit"
SKIP_BINARY = "binary"
SKIP_UNREADABLE = "unreadable"
SKIP_COUNT = "count"

DIFF_TITLE = "Git Diff (Working Changes)"
INSTRUCTION_TITLE = "Review Instructions"

_HEADER_RULE = "=" * 60

_COMMENT_TOKENS: Dict[str, str] = {
    **dict.fromkeys(("html", "xml", "svg", "vue", "svelte"), "<!--"),
    **dict.fromkeys(("css", "scss", "sass", "less"), "/*"),
    **dict.fromkeys(("py", "rb", "sh", "bash", "zsh", "fish", "yaml", "yml", "toml",
                     "ini", "cfg", "conf", "r", "jl", "pl"), "#"),
    **dict.fromkeys(("sql", "lua", "hs"), "--"),
    "bat": "REM",
}

_FENCE_LANGUAGES: Dict[str, str] = {
    "py": "python", "rs": "rust", "ts": "typescript", "tsx": "tsx", "js": "javascript",
    "jsx": "jsx", "kt": "kotlin", "kts": "kotlin", "rb": "ruby", "sh": "bash",
    "yml": "yaml", "md": "markdown", "cs": "csharp", "h": "c", "hpp": "cpp",
    "ps1": "powershell", "bat": "batch", "hs": "haskell", "ex": "elixir", "exs": "elixir",
}


def comment_token(rel_path: str) -> str:
    return _COMMENT_TOKENS.get(file_extension(rel_path), "//")


def fence_language(rel_path: str) -> str:
    ext = file_extension(rel_path)
    return _FENCE_LANGUAGES.get(ext, ext)


def xml_escape(text: str) -> str:
    return (text.replace("&", "&amp;").replace("<", "&lt;")
                .replace(">", "&gt;").replace('"', "&quot;"))


def _cdata(text: str) -> str:
    # "]]>" cannot appear inside a CDATA block; split it across two blocks
    return "<![CDATA[\n" + _with_newline(text).replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _with_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def _fence_for(content: str) -> str:
    longest = max((len(run) for run in re.findall(r"`+", content)), default=0)
    return "`" * max(3, longest + 1)


def _render_tree_lines(rel_paths: Sequence[str]) -> List[str]:
    root: Dict = {}
    for rel in rel_paths:
        node = root
        for part in rel.split("/"):
            node = node.setdefault(part, {})

    lines: List[str] = []

    def render(node: Dict, prefix: str, top: bool) -> None:
        names = sorted(node)
        for i, name in enumerate(names):
            child = node[name]
            last = i == len(names) - 1
            label = f"{name}/" if child else name
            if top:
                lines.append(label)
                if child: render(child, "  ", False)
            else:
                lines.append(f"{prefix}{'└── ' if last else '├── '}{label}")
                if child: render(child, prefix + ("    " if last else "│   "), False)

    render(root, "", True)
    return lines


class Packer:
    """
    Serializes a file selection into a single plain, Markdown or XML document.
    Output depends only on the selection, file contents and options, so
    packing the same input twice yields identical text.
    """

    def __init__(self,
                 project_path: "str | Path",
                 project_type: str,
                 fmt: "ExportFormat | str" = ExportFormat.PLAIN,
                 max_file_bytes: Optional[int] = None,
                 metadata: Optional[ProjectMetadata] = None,
                 mask_secrets: bool = False):
        self.project_path = Path(project_path)
        self.project_type = project_type
        self.fmt = ExportFormat.parse(fmt)
        self.max_file_bytes = max_file_bytes if max_file_bytes is not None else DEFAULT_MAX_FILE_BYTES
        self.metadata = metadata
        self.mask_secrets = mask_secrets
        self._is_cancelled = threading.Event()

    def relative(self, path: str) -> str:
        try:
            rel = os.path.relpath(path, self.project_path)
        except ValueError: # Different drive on Windows
            return path.replace("\\", "/")
        if rel.startswith(".."):
            return path.replace("\\", "/")
        return rel.replace(os.sep, "/")

    # --- File reading ---

    def _read(self, path: str) -> Tuple[Optional[str], Optional[str], int]:
        """Returns (content, skip_reason, size_bytes)."""
        try:
            size = os.path.getsize(path)
        except OSError as e:
            logger.warning(f"Could not stat {path}: {e}")
            return None, SKIP_UNREADABLE, 0
        if size > self.max_file_bytes:
            return None, SKIP_LIMIT, size
        try:
            with open(path, 'rb') as f:
                data = f.read()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return None, SKIP_UNREADABLE, size
        if b"\x00" in data:
            return None, SKIP_BINARY, size
        try:
            return data.decode('utf-8'), None, len(data)
        except UnicodeDecodeError:
            return None, SKIP_BINARY, size

    # --- Sections ---

    def _file_section(self, rel: str, content: str) -> str:
        if self.fmt is ExportFormat.PLAIN:
            return f"{comment_token(rel)} ===== {rel} =====\n{content}\n\n"
        if self.fmt is ExportFormat.MARKDOWN:
            fence = _fence_for(content)
            return f"## {rel}\n\n{fence}{fence_language(rel)}\n{_with_newline(content)}{fence}\n\n"
        return f"<file path=\"{xml_escape(rel)}\">\n{_cdata(content)}\n</file>\n\n"

    def _limit_placeholder(self, rel: str, size: int) -> str:
        size_kb, limit_kb = size // 1024, self.max_file_bytes // 1024
        if self.fmt is ExportFormat.PLAIN:
            return f"{comment_token(rel)} ===== {rel} [SKIPPED: {size_kb}KB > {limit_kb}KB limit] =====\n\n"
        if self.fmt is ExportFormat.MARKDOWN:
            return f"## {rel} *(skipped: {size_kb}KB > {limit_kb}KB limit)*\n\n"
        return f"<file path=\"{xml_escape(rel)}\" skipped=\"true\" size_kb=\"{size_kb}\" />\n\n"

    def _header(self, meta: ProjectMetadata, file_count: int, tokens: int) -> str:
        tokens_str = format_tokens(tokens)
        if self.fmt is ExportFormat.PLAIN:
            h = [f"# Project: {meta.name}", f"# Type: {meta.project_type}"]
            if meta.version: h.append(f"# Version: {meta.version}")
            if meta.description: h.append(f"# Description: {meta.description}")
            if meta.entry_point: h.append(f"# Entry Point: {meta.entry_point}")
            if meta.runtime: h.append(f"# Runtime: {', '.join(meta.runtime)}")
            if meta.dependencies: h.append(f"# Dependencies: {', '.join(meta.dependencies)}")
            if meta.dev_dependencies: h.append(f"# Dev Dependencies: {', '.join(meta.dev_dependencies)}")
            if meta.requirements:
                h.append("# Requirements:")
                h.extend(f"#   {req}" for req in meta.requirements)
            h += [f"# Files: {file_count}", f"# Estimated Tokens: {tokens_str}", _HEADER_RULE]
            return "\n".join(h) + "\n\n"

        if self.fmt is ExportFormat.MARKDOWN:
            h = [f"# {meta.name}", "", f"- **Type:** {meta.project_type}"]
            if meta.version: h.append(f"- **Version:** {meta.version}")
            if meta.description: h.append(f"- **Description:** {meta.description}")
            if meta.entry_point: h.append(f"- **Entry Point:** `{meta.entry_point}`")
            if meta.runtime: h.append(f"- **Runtime:** {', '.join(meta.runtime)}")
            if meta.dependencies:
                h.append(f"- **Dependencies ({len(meta.dependencies)}):** {', '.join(meta.dependencies)}")
            if meta.dev_dependencies:
                h.append(f"- **Dev Dependencies ({len(meta.dev_dependencies)}):** {', '.join(meta.dev_dependencies)}")
            if meta.requirements:
                h.append("- **Requirements:**")
                h.extend(f"  - `{req}`" for req in meta.requirements)
            h += [f"- **Files:** {file_count}", f"- **Estimated Tokens:** {tokens_str}", "", "---"]
            return "\n".join(h) + "\n\n"

        h = ['<?xml version="1.0" encoding="UTF-8"?>', "<codepack>", "<metadata>",
             f"  <name>{xml_escape(meta.name)}</name>",
             f"  <type>{xml_escape(meta.project_type)}</type>"]
        if meta.version: h.append(f"  <version>{xml_escape(meta.version)}</version>")
        if meta.description: h.append(f"  <description>{xml_escape(meta.description)}</description>")
        if meta.entry_point: h.append(f"  <entry_point>{xml_escape(meta.entry_point)}</entry_point>")
        for tag, child, items in (("runtime", "env", meta.runtime),
                                  ("dependencies", "dep", meta.dependencies),
                                  ("dev_dependencies", "dep", meta.dev_dependencies)):
            if items:
                h.append(f"  <{tag}>")
                h.extend(f"    <{child}>{xml_escape(item)}</{child}>" for item in items)
                h.append(f"  </{tag}>")
        h += [f"  <file_count>{file_count}</file_count>",
              f"  <estimated_tokens>{tokens_str}</estimated_tokens>",
              "</metadata>"]
        return "\n".join(h) + "\n"

    def _tree_overview(self, rel_paths: Sequence[str]) -> str:
        if not rel_paths:
            return ""
        lines = _render_tree_lines(rel_paths)
        if self.fmt is ExportFormat.PLAIN:
            return "# File Tree:\n" + "".join(f"#   {line}\n" for line in lines) + "#\n\n"
        if self.fmt is ExportFormat.MARKDOWN:
            return "## File Tree\n\n```\n" + "".join(f"{line}\n" for line in lines) + "```\n\n"
        return "<file_tree>\n" + _cdata("\n".join(lines)) + "\n</file_tree>\n"

    def _instruction(self, instruction: Optional[str]) -> str:
        if not instruction or not instruction.strip():
            return ""
        if self.fmt is ExportFormat.PLAIN:
            return f"# ===== {INSTRUCTION_TITLE} =====\n{_with_newline(instruction)}\n"
        if self.fmt is ExportFormat.MARKDOWN:
            return f"## {INSTRUCTION_TITLE}\n\n{_with_newline(instruction)}\n"
        return f"<instruction>\n{_cdata(instruction)}\n</instruction>\n"

    def _diffs(self, diffs: Optional[Mapping[str, str]]) -> str:
        if not diffs:
            return ""
        ordered = sorted((self.relative(p), d) for p, d in diffs.items() if d)
        if not ordered:
            return ""
        if self.fmt is ExportFormat.PLAIN:
            out = f"# ===== {DIFF_TITLE} =====\n\n"
            out += "".join(f"# --- {rel} ---\n{_with_newline(diff)}\n" for rel, diff in ordered)
            return out
        if self.fmt is ExportFormat.MARKDOWN:
            out = f"## {DIFF_TITLE}\n\n"
            for rel, diff in ordered:
                fence = _fence_for(diff)
                out += f"### {rel}\n\n{fence}diff\n{_with_newline(diff)}{fence}\n\n"
            return out
        out = "<diffs>\n"
        out += "".join(f"<diff path=\"{xml_escape(rel)}\">\n{_cdata(diff)}\n</diff>\n" for rel, diff in ordered)
        return out + "</diffs>\n"

    # --- Entry point ---

    def pack(self, paths: Sequence[str], diffs: Optional[Mapping[str, str]] = None,
             instruction: Optional[str] = None) -> PackResult:
        """
        Packs `paths` in the given order (duplicates dropped).
        Oversized, binary and unreadable files are reported in `skipped_files`.
        """
        paths = list(dict.fromkeys(paths))
        if not paths:
            raise EmptySelectionError("pack")
        logger.info(f"[Pack] Starting: {len(paths)} path(s), format={self.fmt.value}, limit={self.max_file_bytes} bytes")
        self._is_cancelled.clear()

        body: List[str] = []
        included: List[str] = []
        skipped: List[SkippedFile] = []
        total_bytes = 0

        for path in paths:
            rel = self.relative(path)
            if self._is_cancelled.is_set():
                logger.info("[Pack] Cancelled between files")
                break
            if len(included) >= MAX_FILE_COUNT:
                skipped.append(SkippedFile(path=rel, reason=SKIP_COUNT, size_bytes=_size_or_zero(path)))
                continue
            content, reason, size = self._read(path)
            if reason is not None:
                logger.debug(f"Skipping {rel}: {reason}")
                skipped.append(SkippedFile(path=rel, reason=reason, size_bytes=size))
                if reason == SKIP_LIMIT:
                    body.append(self._limit_placeholder(rel, size))
                continue
            body.append(self._file_section(rel, content))
            included.append(rel)
            total_bytes += size

        estimated_tokens = estimate_from_bytes(total_bytes)
        meta = self.metadata or extract_metadata(self.project_path, self.project_type)

        parts = [self._header(meta, len(included), estimated_tokens),
                 self._tree_overview(included),
                 self._instruction(instruction)]
        if self.fmt is ExportFormat.XML:
            parts.append("<files>\n\n")
            parts.extend(body)
            parts.append("</files>\n")
            parts.append(self._diffs(diffs))
            parts.append("</codepack>\n")
        else:
            parts.extend(body)
            parts.append(self._diffs(diffs))
        content = "".join(parts)

        if self.mask_secrets:
            content = mask_text(content)

        logger.info(f"[Pack] Finished: {len(included)} file(s), {total_bytes} bytes, ~{estimated_tokens} tokens, {len(skipped)} skipped")
        return PackResult(content=content, file_count=len(included), total_bytes=total_bytes,
                          estimated_tokens=estimated_tokens, skipped_files=skipped)

    def cancel(self):
        logger.info("Cancellation requested for packer.")
        self._is_cancelled.set()


def _size_or_zero(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def _find_at_line_start(content: str, needle: str, start: int) -> int:
    pos = content.find(needle, start)
    while pos > 0 and content[pos - 1] != "\n":
        pos = content.find(needle, pos + 1)
    return pos


def split_plain_sections(content: str, paths: Sequence[str]) -> List[Tuple[str, str]]:
    """
    Recovers (relative path, content) pairs from a plain export, given the
    relative paths that were packed, in pack order.

    A banner only counts when it belongs to the next expected path, so file
    content containing banner-shaped lines is kept intact. Skipped paths and
    the instruction/diff sections are not returned.
    """
    markers: List[Tuple[int, int, str, bool]] = [] # (start, body start, path, has body)
    cursor = 0
    for rel in dict.fromkeys(paths):
        token = comment_token(rel)
        banner = f"{token} ===== {rel} =====\n"
        placeholder = f"{token} ===== {rel} [SKIPPED: "
        found = [(pos, is_file) for pos, is_file in
                 ((_find_at_line_start(content, banner, cursor), True),
                  (_find_at_line_start(content, placeholder, cursor), False)) if pos >= 0]
        if not found:
            continue
        pos, is_file = min(found)
        body_start = pos + len(banner) if is_file else content.index("\n", pos) + 1
        markers.append((pos, body_start, rel, is_file))
        cursor = body_start

    diff_start = content.rfind(f"\n# ===== {DIFF_TITLE} =====\n")
    sections: List[Tuple[str, str]] = []
    for i, (_, body_start, rel, is_file) in enumerate(markers):
        if not is_file:
            continue
        if i + 1 < len(markers):
            end = markers[i + 1][0]
        elif diff_start >= body_start:
            end = diff_start + 1
        else:
            end = len(content)
        sections.append((rel, content[body_start:end].removesuffix("\n\n")))
    return sections
