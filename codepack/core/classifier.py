# codepack/core/classifier.py
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple
from loguru import logger

from .plugins import PluginDef

GENERIC = "generic"


@dataclass
class Classification:
    project_type: str
    plugin: Optional[PluginDef] = None

    @property
    def exclude_dirs(self) -> List[str]:
        return list(self.plugin.exclude_dirs) if self.plugin else []

    @property
    def source_extensions(self) -> List[str]:
        return list(self.plugin.source_extensions) if self.plugin else []


def _has(*names: str) -> Callable[[Path], bool]:
    return lambda root: any((root / n).exists() for n in names)


def _has_prefix(prefix: str) -> Callable[[Path], bool]:
    def check(root: Path) -> bool:
        try:
            return any(entry.name.startswith(prefix) for entry in root.iterdir())
        except OSError as e:
            logger.warning(f"Could not list {root} while classifying: {e}")
            return False
    return check


def _gradle_type(root: Path) -> str:
    if (root / "app").is_dir() or (root / "AndroidManifest.xml").exists():
        return "Android / Gradle"
    return "Gradle"


def _is_c_make_project(root: Path) -> bool:
    if not (root / "Makefile").exists():
        return False
    try:
        return any(p.suffix in (".c", ".h") for p in root.iterdir() if p.is_file())
    except OSError as e:
        logger.warning(f"Could not list {root} while classifying: {e}")
        return False


# (detector, project type or resolver) in priority order; first match wins
_MARKER_TABLE: Sequence[Tuple[Callable[[Path], bool], "str | Callable[[Path], str]"]] = (
    (_has("build.gradle", "build.gradle.kts"), _gradle_type),
    (_has("pubspec.yaml"), "Flutter / Dart"),
    (_has("Cargo.toml"), "Rust"),
    (_has("go.mod"), "Go"),
    (_has("pom.xml"), "Java / Maven"),
    (_has("Package.swift"), "Swift"),
    (_has("CMakeLists.txt"), "C++ / CMake"),
    (_is_c_make_project, "C"),
    (_has("Gemfile"), "Ruby"),
    (_has("docker-compose.yml", "docker-compose.yaml"), "Docker"),
    (_has_prefix("next.config"), "Next.js"),
    (_has_prefix("nuxt.config"), "Nuxt.js"),
    (_has_prefix("vite.config"), "Vite"),
    (_has("pyproject.toml", "requirements.txt", "setup.py"), "Python"),
    (_has("package.json"), "Node.js"),
)


def classify(root: Path, plugins: Sequence[PluginDef] = ()) -> Classification:
    """
    Assigns a project type from marker files at the project root.
    Plugins are evaluated first in load order, then the built-in table,
    then the `generic` fallback.
    """
    root = Path(root)
    for plugin in plugins:
        if plugin.matches(root):
            logger.info(f"Project at {root} matched plugin '{plugin.name}'")
            return Classification(project_type=plugin.name, plugin=plugin)

    for detector, result in _MARKER_TABLE:
        if detector(root):
            project_type = result(root) if callable(result) else result
            logger.debug(f"Project at {root} classified as '{project_type}'")
            return Classification(project_type=project_type)

    logger.debug(f"No markers found at {root}; using '{GENERIC}'")
    return Classification(project_type=GENERIC)


def detect_project_type(root: Path, plugins: Sequence[PluginDef] = ()) -> str:
    return classify(root, plugins).project_type
