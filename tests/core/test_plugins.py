# tests/core/test_plugins.py
import json

import pytest
from pydantic import ValidationError

from codepack.core.errors import InvalidPluginError
from codepack.core.plugins import PluginDef, PluginStore


def _write_plugin(directory, filename, data):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / filename).write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")


def test_load_skips_malformed_and_ruleless_plugins(tmp_path):
    plugins_dir = tmp_path / "plugins"
    _write_plugin(plugins_dir, "a-unity.json", {"name": "Unity", "detect_dirs": ["Assets"]})
    _write_plugin(plugins_dir, "b-broken.json", "{not json")
    _write_plugin(plugins_dir, "c-empty.json", {"name": "Nothing"})
    _write_plugin(plugins_dir, "d-noname.json", {"detect_files": ["x"]})
    _write_plugin(plugins_dir, "notes.txt", "ignored")

    plugins = PluginStore(plugins_dir).load()
    assert [p.name for p in plugins] == ["Unity"]


def test_load_missing_directory_returns_empty(tmp_path):
    assert PluginStore(tmp_path / "missing").load() == []


def test_load_order_is_filename_order(tmp_path):
    plugins_dir = tmp_path / "plugins"
    _write_plugin(plugins_dir, "zeta.json", {"name": "Zeta", "detect_files": ["z"]})
    _write_plugin(plugins_dir, "alpha.json", {"name": "Alpha", "detect_files": ["a"]})
    assert [p.name for p in PluginStore(plugins_dir).load()] == ["Alpha", "Zeta"]


def test_save_uses_slugged_filename_and_invalidates_cache(tmp_path):
    store = PluginStore(tmp_path / "plugins")
    assert store.load() == []
    target = store.save(PluginDef(name="My Engine", detect_files=["engine.cfg"], source_extensions=["lua"]))
    assert target.name == "my-engine.json"
    assert json.loads(target.read_text(encoding="utf-8"))["source_extensions"] == ["lua"]
    assert [p.name for p in store.load()] == ["My Engine"]


def test_save_rejects_plugin_without_detection_rules(tmp_path):
    store = PluginStore(tmp_path / "plugins")
    with pytest.raises(InvalidPluginError):
        store.save(PluginDef(name="Empty"))
    assert not (tmp_path / "plugins" / "empty.json").exists()


def test_delete(tmp_path):
    store = PluginStore(tmp_path / "plugins")
    store.save(PluginDef(name="My Engine", detect_files=["engine.cfg"]))
    assert store.delete("My Engine") is True
    assert store.load() == []
    assert store.delete("My Engine") is False


def test_blank_name_is_invalid():
    with pytest.raises(ValidationError):
        PluginDef(name="   ", detect_files=["x"])

