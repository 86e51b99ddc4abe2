# codepack/core/exclusions.py
import fnmatch
from typing import Iterable, List, Set
from loguru import logger

# Directory/file names pruned from every scan (matched case-insensitively)
EXCLUDED_DIRS = (
    "node_modules", "build", "dist", ".gradle", ".idea", ".vscode", "__pycache__",
    ".git", ".svn", ".hg", "target", ".next", ".nuxt", ".output",
    "venv", ".venv", "env", ".env", ".dart_tool", ".pub-cache", "Pods", "DerivedData",
    ".cache", "coverage", ".turbo", "out", ".DS_Store", "bin", "obj", ".tox",
    "vendor", ".bundle", ".swiftpm",
)

SOURCE_EXTENSIONS = frozenset({
    # Code
    "rs", "ts", "tsx", "js", "jsx", "vue", "svelte", "py", "kt", "kts", "java", "dart",
    "go", "rb", "php", "swift", "c", "cpp", "h", "hpp", "cs", "m", "mm", "scala",
    "clj", "ex", "exs", "hs", "lua", "r", "jl", "sql",
    # Scripts
    "sh", "bash", "zsh", "fish", "bat", "ps1",
    # Config / markup / docs
    "yml", "yaml", "toml", "json", "xml", "html", "css", "scss", "sass", "less",
    "md", "mdx", "txt", "cfg", "ini", "conf", "env",
    "dockerfile", "makefile", "cmake", "gradle", "properties",
    "gitignore", "editorconfig", "eslintrc", "prettierrc",
    "graphql", "gql", "proto", "tf", "hcl", "nix", "astro",
    "mod", "sum", "lock",
})

# Well-known files without a useful extension
SPECIAL_FILENAMES = frozenset({
    "dockerfile", "makefile", "cmakelists.txt", "rakefile", "gemfile",
    "procfile", "justfile", "taskfile", "vagrantfile",
})


def _normalize_ext(ext: str) -> str:
    return ext.strip().lstrip("*").lstrip(".").lower()


def file_extension(name: str) -> str:
    """Lowercased extension without the dot; dotfiles like `.gitignore` yield `gitignore`."""
    base = name.rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[-1].lower()


def is_source_file(name: str, extra_extensions: Iterable[str] = ()) -> bool:
    """Whether a file name passes the scan-time type filter."""
    lower = name.lower()
    if lower in SPECIAL_FILENAMES:
        return True
    ext = file_extension(lower)
    if not ext:
        return False
    if ext in SOURCE_EXTENSIONS:
        return True
    return ext in {_normalize_ext(e) for e in extra_extensions}


class ExclusionMatcher:
    """
    Decides whether a single path segment is excluded.
    Rules are exact names (case-insensitive) or simple globs containing `*`.
    User and plugin rules only ever add to the built-in list.
    """

    def __init__(self, user_rules: Iterable[str] = (), plugin_rules: Iterable[str] = ()):
        self._names: Set[str] = {name.lower() for name in EXCLUDED_DIRS}
        self._globs: List[str] = []
        for rule in list(user_rules) + list(plugin_rules):
            self.add_rule(rule)
        logger.debug(f"Exclusion matcher initialized with {len(self._names)} names and {len(self._globs)} globs")

    def add_rule(self, rule: str) -> None:
        rule = rule.strip().rstrip("/")
        if not rule:
            return
        if "*" in rule or "?" in rule:
            glob = rule.lower()
            if glob not in self._globs:
                self._globs.append(glob)
        else:
            self._names.add(rule.lower())

    @property
    def rules(self) -> List[str]:
        return sorted(self._names) + list(self._globs)

    def is_excluded(self, name: str) -> bool:
        lower = name.lower()
        if lower in self._names:
            return True
        for glob in self._globs:
            if fnmatch.fnmatchcase(lower, glob):
                logger.trace(f"Excluding '{name}' due to pattern '{glob}'")
                return True
        return False
