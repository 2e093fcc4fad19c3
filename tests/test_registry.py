import sys

import pytest

from esmforge.config.settings import ConfigurationError
from esmforge.domain.enums import WorkerCategory
from esmforge.pipeline.registry import (
    BUNDLE_MARKER_ID,
    classify,
    count_build_workers,
    load_plugins,
    resolve_plugin,
)


def test_classify_keeps_only_recognised_prefixes():
    relevant, index = classify({
        "build:ts,tsx": "tsc",
        "plugin:vue": "./vue_plugin.py",
        "lintall:eslint": "eslint src",
        "mount:public": "mount public",
        "run:tsc": "tsc --watch",
        "buildish": "nope",
        "test": "jest",
    })

    assert [w.id for w in relevant] == ["build:ts,tsx", "plugin:vue", "lintall:eslint", "mount:public"]
    assert [w.category for w in relevant] == [
        WorkerCategory.BUILD, WorkerCategory.PLUGIN, WorkerCategory.LINT_ALL, WorkerCategory.MOUNT,
    ]
    indexed_ids = {w.id for workers in index.values() for w in workers}
    assert "run:tsc" not in indexed_ids
    assert "buildish" not in indexed_ids


def test_classify_builds_extension_index_in_declaration_order():
    relevant, index = classify([
        ("build:js,jsx", "first"),
        ("plugin:js", "second.py"),
        ("build:css", "third"),
    ])

    assert [w.id for w in index["js"]] == ["build:js,jsx", "plugin:js"]
    assert [w.id for w in index["jsx"]] == ["build:js,jsx"]
    assert [w.id for w in index["css"]] == ["build:css"]
    assert relevant[0].extensions == ("js", "jsx")


def test_lint_and_mount_workers_are_not_indexed():
    relevant, index = classify({"lintall:tsc": "tsc --noEmit", "mount:web_modules": "mount web_modules"})
    assert len(relevant) == 2
    assert index == {}
    assert all(w.extensions == () for w in relevant)


def test_bundle_marker_is_appended_but_never_indexed():
    relevant, index = classify({"build:js": "cat"}, bundle=True)
    assert relevant[-1].id == BUNDLE_MARKER_ID
    assert relevant[-1].category == WorkerCategory.BUNDLE_MARKER
    assert all(BUNDLE_MARKER_ID not in {w.id for w in workers} for workers in index.values())


def test_classify_is_deterministic():
    decl = {"build:ts": "a", "plugin:ts": "b.py", "other": "c"}
    assert classify(decl) == classify(decl)


def test_duplicate_ids_are_rejected():
    with pytest.raises(ConfigurationError):
        classify([("build:js", "a"), ("build:js", "b")])


def test_count_build_workers_ignores_plugins():
    assert count_build_workers(["build:js", "plugin:ts", "mount:x"]) == 1
    assert count_build_workers(["plugin:ts"]) == 0


def test_resolve_plugin_from_file(tmp_path):
    (tmp_path / "upper.py").write_text(
        "def build(path):\n    return {'result': open(path).read().upper()}\n",
        encoding="utf-8",
    )
    plugin = resolve_plugin("./upper.py", tmp_path)
    src = tmp_path / "a.txt"
    src.write_text("abc", encoding="utf-8")
    assert plugin.build(str(src)) == {"result": "ABC"}


def test_resolve_plugin_without_build_function(tmp_path):
    (tmp_path / "empty.py").write_text("VALUE = 1\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="build"):
        resolve_plugin("empty.py", tmp_path)


def test_resolve_missing_plugin(tmp_path):
    with pytest.raises(ConfigurationError):
        resolve_plugin("./missing.py", tmp_path)
    with pytest.raises(ConfigurationError):
        resolve_plugin("esmforge_no_such_module", tmp_path)


def test_load_plugins_keys_by_worker_id(tmp_path):
    (tmp_path / "p.py").write_text("def build(path):\n    return {'result': ''}\n", encoding="utf-8")
    relevant, _ = classify({"plugin:svelte": "p.py", "build:js": "cat"})
    plugins = load_plugins(relevant, tmp_path)
    assert list(plugins) == ["plugin:svelte"]


def test_dotted_plugin_resolves_from_working_root(tmp_path, monkeypatch):
    site = tmp_path / "site"
    (site / "site_plugins_root").mkdir(parents=True)
    (site / "site_plugins_root" / "svelte.py").write_text(
        "def build(path):\n    return {'result': 'export default 1;'}\n", encoding="utf-8"
    )
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    try:
        plugin = resolve_plugin("site_plugins_root.svelte", site)
        assert plugin.build("App.svelte") == {"result": "export default 1;"}
        assert str(site.resolve()) not in sys.path
    finally:
        sys.modules.pop("site_plugins_root.svelte", None)
        sys.modules.pop("site_plugins_root", None)
