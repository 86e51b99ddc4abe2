# tests/core/test_exclusions.py
from codepack.core.exclusions import ExclusionMatcher, file_extension, is_source_file


def test_builtin_names_are_excluded():
    matcher = ExclusionMatcher()
    for name in ("node_modules", "build", "dist", ".gradle", ".idea", ".vscode",
                 "__pycache__", ".git", "target", ".next", "venv"):
        assert matcher.is_excluded(name), name


def test_builtin_matching_is_case_insensitive():
    assert ExclusionMatcher().is_excluded("Node_Modules")


def test_regular_names_not_excluded():
    matcher = ExclusionMatcher()
    assert not matcher.is_excluded("src")
    assert not matcher.is_excluded("main.py")


def test_user_and_plugin_rules_are_additive():
    matcher = ExclusionMatcher(user_rules=["generated"], plugin_rules=["Library", "*.log"])
    assert matcher.is_excluded("generated")
    assert matcher.is_excluded("library")
    assert matcher.is_excluded("debug.log")
    # Built-ins still apply
    assert matcher.is_excluded("node_modules")


def test_glob_rules_are_not_regex():
    matcher = ExclusionMatcher(user_rules=["*.min.js"])
    assert matcher.is_excluded("app.min.js")
    assert not matcher.is_excluded("appXminXjs")


def test_file_extension():
    assert file_extension("main.py") == "py"
    assert file_extension("archive.tar.GZ") == "gz"
    assert file_extension(".gitignore") == "gitignore"
    assert file_extension("Makefile") == ""


def test_is_source_file():
    assert is_source_file("main.rs")
    assert is_source_file("Dockerfile")
    assert is_source_file("CMakeLists.txt")
    assert not is_source_file("logo.png")
    assert not is_source_file("LICENSE")


def test_is_source_file_extra_extensions():
    assert not is_source_file("Player.cs.meta")
    assert is_source_file("Player.cs.meta", extra_extensions=[".meta"])
    assert is_source_file("shader.glsl", extra_extensions=["glsl"])
