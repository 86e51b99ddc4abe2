# codepack/core/metadata.py
import json
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from loguru import logger

from .models import ProjectMetadata

MAX_REQUIREMENTS = 200
_REQ_NAME_SPLIT = re.compile(r"[><=~!;\[\s@]")


def _dedupe(items: List[str]) -> List[str]:
    seen = set(); result = []
    for item in items:
        if item and item not in seen:
            seen.add(item); result.append(item)
    return result


def _read_text(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read manifest {path}: {e}")
        return None


def _load_json(path: Path) -> Optional[Dict[str, Any]]:
    text = _read_text(path)
    if text is None: return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed JSON in {path.name}: {e}")
        return None
    return data if isinstance(data, dict) else None


def _load_toml(path: Path) -> Optional[Dict[str, Any]]:
    text = _read_text(path)
    if text is None: return None
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"Malformed TOML in {path.name}: {e}")
        return None


def _first_line(path: Path) -> Optional[str]:
    text = _read_text(path)
    if not text: return None
    value = text.strip().splitlines()[0].strip() if text.strip() else ""
    return value or None


def _requirement_name(spec: str) -> str:
    return _REQ_NAME_SPLIT.split(spec.strip(), 1)[0].strip()


def _str_or_none(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# --- Per-ecosystem extractors ---

def _extract_package_json(root: Path, meta: ProjectMetadata) -> None:
    pkg = _load_json(root / "package.json")
    if pkg is not None:
        meta.name = _str_or_none(pkg.get("name")) or meta.name
        meta.version = _str_or_none(pkg.get("version"))
        meta.description = _str_or_none(pkg.get("description"))
        meta.entry_point = _str_or_none(pkg.get("main"))
        engines = pkg.get("engines")
        if isinstance(engines, dict):
            meta.runtime.extend(f"{k} {v}" for k, v in engines.items() if isinstance(v, str))
        deps = pkg.get("dependencies")
        if isinstance(deps, dict):
            meta.dependencies.extend(deps.keys())
            meta.requirements.extend(f"{k}@{v}" for k, v in deps.items() if isinstance(v, str))
        dev_deps = pkg.get("devDependencies")
        if isinstance(dev_deps, dict):
            meta.dev_dependencies.extend(dev_deps.keys())

    if not meta.runtime:
        for rc in (".nvmrc", ".node-version"):
            version = _first_line(root / rc)
            if version:
                meta.runtime.append(f"node {version}")
                break

    tsconfig = _load_json(root / "tsconfig.json")
    if tsconfig is not None:
        options = tsconfig.get("compilerOptions")
        target = options.get("target") if isinstance(options, dict) else None
        if isinstance(target, str):
            meta.runtime.append(f"ts target: {target}")


def _extract_python(root: Path, meta: ProjectMetadata) -> None:
    doc = _load_toml(root / "pyproject.toml")
    if doc is not None:
        project = doc.get("project")
        poetry = doc.get("tool", {}).get("poetry") if isinstance(doc.get("tool"), dict) else None
        if isinstance(project, dict):
            meta.name = _str_or_none(project.get("name")) or meta.name
            meta.version = _str_or_none(project.get("version"))
            meta.description = _str_or_none(project.get("description"))
            requires_python = _str_or_none(project.get("requires-python"))
            if requires_python:
                meta.runtime.append(f"python {requires_python}")
            for dep in project.get("dependencies") or []:
                if isinstance(dep, str) and dep.strip():
                    meta.dependencies.append(_requirement_name(dep))
                    meta.requirements.append(dep.strip())
            optional = project.get("optional-dependencies")
            if isinstance(optional, dict):
                for group in optional.values():
                    meta.dev_dependencies.extend(_requirement_name(d) for d in group or [] if isinstance(d, str))
        elif isinstance(poetry, dict):
            meta.name = _str_or_none(poetry.get("name")) or meta.name
            meta.version = _str_or_none(poetry.get("version"))
            meta.description = _str_or_none(poetry.get("description"))
            deps = poetry.get("dependencies")
            if isinstance(deps, dict):
                for name, constraint in deps.items():
                    if name == "python":
                        if isinstance(constraint, str): meta.runtime.append(f"python {constraint}")
                        continue
                    meta.dependencies.append(name)
                    version = constraint if isinstance(constraint, str) else (constraint or {}).get("version", "*")
                    meta.requirements.append(f"{name}@{version}")

    if not meta.dependencies:
        text = _read_text(root / "requirements.txt")
        for line in (text or "").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or line.startswith("-"):
                continue
            meta.dependencies.append(_requirement_name(line))
            meta.requirements.append(line)

    if not meta.runtime:
        version = _first_line(root / ".python-version")
        if version:
            meta.runtime.append(f"python {version}")

    for candidate in ("main.py", "app.py", "manage.py", "run.py"):
        if (root / candidate).exists():
            meta.entry_point = candidate
            break


def _extract_cargo(root: Path, meta: ProjectMetadata) -> None:
    doc = _load_toml(root / "Cargo.toml")
    if doc is None: return
    package = doc.get("package")
    if isinstance(package, dict):
        meta.name = _str_or_none(package.get("name")) or meta.name
        meta.version = _str_or_none(package.get("version"))
        meta.description = _str_or_none(package.get("description"))
        edition = _str_or_none(package.get("edition"))
        if edition: meta.runtime.append(f"rust edition {edition}")
        msrv = _str_or_none(package.get("rust-version"))
        if msrv: meta.runtime.append(f"rust >={msrv}")
    deps = doc.get("dependencies")
    if isinstance(deps, dict):
        for name, spec in deps.items():
            meta.dependencies.append(name)
            if isinstance(spec, str):
                version = spec
            elif isinstance(spec, dict):
                version = spec.get("version", "*")
            else:
                version = "*"
            meta.requirements.append(f"{name}@{version}")
    dev_deps = doc.get("dev-dependencies")
    if isinstance(dev_deps, dict):
        meta.dev_dependencies.extend(dev_deps.keys())


def _extract_go_mod(root: Path, meta: ProjectMetadata) -> None:
    text = _read_text(root / "go.mod")
    if text is not None:
        in_require = False
        for raw in text.splitlines():
            line = raw.split("//", 1)[0].strip()
            if not line:
                continue
            if line.startswith("module "):
                meta.name = line[len("module "):].strip() or meta.name
            elif line.startswith("go "):
                go_version = line[len("go "):].strip()
                meta.version = go_version
                meta.runtime.append(f"go {go_version}")
            elif line == "require (":
                in_require = True
            elif line == ")":
                in_require = False
            elif in_require or line.startswith("require "):
                parts = line.removeprefix("require ").split()
                if parts:
                    meta.dependencies.append(parts[0])
                if len(parts) >= 2:
                    meta.requirements.append(f"{parts[0]}@{parts[1]}")
    if (root / "main.go").exists():
        meta.entry_point = "main.go"


def _extract_pubspec(root: Path, meta: ProjectMetadata) -> None:
    text = _read_text(root / "pubspec.yaml")
    if text is not None:
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as e:
            logger.warning(f"Malformed YAML in pubspec.yaml: {e}")
            doc = None
        if isinstance(doc, dict):
            meta.name = _str_or_none(doc.get("name")) or meta.name
            version = doc.get("version")
            meta.version = str(version) if version is not None else None
            meta.description = _str_or_none(doc.get("description"))
            environment = doc.get("environment")
            if isinstance(environment, dict):
                meta.runtime.extend(f"{k} {v}" for k, v in environment.items() if v)
            deps = doc.get("dependencies")
            if isinstance(deps, dict):
                for name, constraint in deps.items():
                    if name == "sdk":
                        continue
                    meta.dependencies.append(name)
                    # Path/git/sdk dependencies carry a mapping instead of a version
                    if isinstance(constraint, (str, int, float)) and str(constraint) not in ("", "^"):
                        meta.requirements.append(f"{name}@{constraint}")
            dev_deps = doc.get("dev_dependencies")
            if isinstance(dev_deps, dict):
                meta.dev_dependencies.extend(k for k in dev_deps if k != "sdk")
    if (root / "lib" / "main.dart").exists():
        meta.entry_point = "lib/main.dart"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local(child.tag) == name:
            return (child.text or "").strip() or None
    return None


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    return next((c for c in element if _local(c.tag) == name), None)


def _extract_pom(root: Path, meta: ProjectMetadata) -> None:
    text = _read_text(root / "pom.xml")
    if text is None: return
    try:
        project = ET.fromstring(text)
    except ET.ParseError as e:
        logger.warning(f"Malformed XML in pom.xml: {e}")
        return
    meta.name = _child_text(project, "artifactId") or meta.name
    meta.version = _child_text(project, "version")
    meta.description = _child_text(project, "description")
    properties = _child(project, "properties")
    if properties is not None:
        java_version = _child_text(properties, "java.version") or _child_text(properties, "maven.compiler.source")
        if java_version:
            meta.runtime.append(f"java {java_version}")
    dependencies = _child(project, "dependencies")
    for dep in dependencies if dependencies is not None else []:
        artifact = _child_text(dep, "artifactId")
        if not artifact:
            continue
        group = _child_text(dep, "groupId") or ""
        version = _child_text(dep, "version")
        meta.dependencies.append(artifact)
        meta.requirements.append(f"{group}:{artifact}:{version}" if version else f"{group}:{artifact}")


_GRADLE_NAME = re.compile(r"""^\s*rootProject\.name\s*=\s*["']([^"']+)["']""", re.MULTILINE)


def _extract_gradle(root: Path, meta: ProjectMetadata) -> None:
    for settings_file in ("settings.gradle.kts", "settings.gradle"):
        text = _read_text(root / settings_file)
        if text is None:
            continue
        match = _GRADLE_NAME.search(text)
        if match:
            meta.name = match.group(1).strip()
        break


_EXTRACTORS: Dict[str, Callable[[Path, ProjectMetadata], None]] = {
    "Node.js": _extract_package_json,
    "Next.js": _extract_package_json,
    "Vite": _extract_package_json,
    "Nuxt.js": _extract_package_json,
    "Python": _extract_python,
    "Rust": _extract_cargo,
    "Go": _extract_go_mod,
    "Flutter / Dart": _extract_pubspec,
    "Java / Maven": _extract_pom,
    "Gradle": _extract_gradle,
    "Android / Gradle": _extract_gradle,
}


def extract_metadata(root: "str | Path", project_type: str) -> ProjectMetadata:
    """
    Parses the manifest(s) relevant to `project_type`.
    Never raises for unreadable or malformed manifests; missing fields stay empty.
    """
    root = Path(root)
    meta = ProjectMetadata(name=root.name or "project", project_type=project_type)
    extractor = _EXTRACTORS.get(project_type)
    if extractor is None:
        logger.debug(f"No manifest extractor for project type '{project_type}'")
        return meta
    try:
        extractor(root, meta)
    except (AttributeError, TypeError, ValueError) as e:
        # Unexpected manifest shapes keep whatever was extracted so far
        logger.warning(f"Partial metadata for {root} ({project_type}): {e}")

    meta.dependencies = _dedupe(meta.dependencies)
    meta.dev_dependencies = _dedupe(meta.dev_dependencies)
    meta.runtime = _dedupe(meta.runtime)
    meta.requirements = _dedupe(meta.requirements)[:MAX_REQUIREMENTS]
    logger.debug(f"Extracted metadata for '{meta.name}': {len(meta.dependencies)} deps, {len(meta.dev_dependencies)} dev deps")
    return meta
