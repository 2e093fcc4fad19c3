import logging
from pathlib import Path

import pytest

from esmforge.domain.enums import MessageLevel, WorkerState
from esmforge.domain.models import DependencyImportMap, SourceFile
from esmforge.pipeline.progress import LoggingRenderer
from esmforge.pipeline.registry import classify, load_plugins
from esmforge.pipeline.transform import TransformDispatcher
from esmforge.types import MissingWebModule, TransformError, WorkerComplete, WorkerMsg, WorkerUpdate

from conftest import ECHO_COMMAND, python_command


@pytest.fixture
def project(tmp_path):
    tmp_path = tmp_path.resolve()
    include = tmp_path / "src"
    include.mkdir()
    dist = tmp_path / "build" / "_dist_"
    return tmp_path, include, dist


def make_dispatcher(project, declarations, channel, log, import_map=None):
    cwd, include, dist = project
    relevant, index = classify(declarations)
    plugins = load_plugins(relevant, cwd)
    dispatcher = TransformDispatcher(
        include_dir=include,
        dist_dir=dist,
        extension_index=index,
        plugins=plugins,
        import_map=import_map or DependencyImportMap(imports={"preact": "preact.js"}),
        channel=channel,
        log=log,
        cwd=cwd,
    )
    return dispatcher, relevant


def test_echo_build_worker_remaps_and_rewrites(project, channel, events, log, write_file):
    cwd, include, dist = project
    src = write_file(include / "a.ts", "export const x = 1;\nimport z from './b.ts';")
    dispatcher, relevant = make_dispatcher(project, {"build:ts": ECHO_COMMAND}, channel, log)

    report = dispatcher.run(relevant, [src])

    out = dist / "a.js"
    assert report.written == [out]
    assert out.read_text(encoding="utf-8") == "export const x = 1;\nimport z from './b.js';"
    assert events[0] == WorkerUpdate(id="build:ts", state=WorkerState.RUNNING)
    assert events[-1] == WorkerComplete(id="build:ts", error=None)


def test_nested_paths_are_preserved_under_dist(project, channel, log, write_file):
    cwd, include, dist = project
    src = write_file(include / "components" / "button.tsx", "export default 1;\n")
    dispatcher, relevant = make_dispatcher(project, {"build:tsx": ECHO_COMMAND}, channel, log)

    dispatcher.run(relevant, [src])

    assert (dist / "components" / "button.js").exists()


def test_non_script_output_is_not_rewritten(project, channel, log, write_file):
    cwd, include, dist = project
    css = '@import "bare-package";\n'
    src = write_file(include / "style.scss", css)
    dispatcher, relevant = make_dispatcher(project, {"build:scss": ECHO_COMMAND}, channel, log)

    dispatcher.run(relevant, [src])

    assert (dist / "style.css").read_text(encoding="utf-8") == css


def test_bare_imports_resolve_through_import_map(project, channel, events, log, write_file):
    cwd, include, dist = project
    src = write_file(include / "main.js", 'import { h } from "preact";\nimport x from "unknown";\n')
    dispatcher, relevant = make_dispatcher(project, {"build:js": ECHO_COMMAND}, channel, log)

    dispatcher.run(relevant, [src])

    assert (dist / "main.js").read_text(encoding="utf-8") == (
        'import { h } from "/web_modules/preact.js";\nimport x from "/web_modules/unknown.js";\n'
    )
    assert MissingWebModule(specifier="unknown") in events


def test_empty_output_skips_file(project, channel, events, log, write_file):
    cwd, include, dist = project
    src = write_file(include / "a.ts", "export const x = 1;")
    dispatcher, relevant = make_dispatcher(project, {"build:ts": python_command("pass")}, channel, log)

    report = dispatcher.run(relevant, [src])

    assert report.written == []
    assert report.skipped == [("build:ts", src.resolve())]
    assert report.ok
    assert not dist.exists()
    assert events[-1] == WorkerComplete(id="build:ts", error=None)


def test_stderr_is_reported_without_failing_the_file(project, channel, events, log, write_file):
    cwd, include, dist = project
    src = write_file(include / "a.js", "export default 1;\n")
    command = python_command(
        "import sys; sys.stderr.write('deprecated option\\n'); sys.stdout.write(sys.stdin.read())"
    )
    dispatcher, relevant = make_dispatcher(project, {"build:js": command}, channel, log)

    report = dispatcher.run(relevant, [src])

    assert report.ok
    assert (dist / "a.js").exists()
    assert WorkerMsg(id="build:js", level=MessageLevel.ERROR, text="deprecated option\n") in events


def test_failing_command_is_isolated_per_file(project, channel, events, log, write_file):
    cwd, include, dist = project
    bad = write_file(include / "bad.js", "FAIL\n")
    good = write_file(include / "good.js", "export default 1;\n")
    command = python_command(
        "import sys\n"
        "data = sys.stdin.read()\n"
        "sys.exit(3) if data.startswith('FAIL') else sys.stdout.write(data)"
    )
    dispatcher, relevant = make_dispatcher(project, {"build:js": command}, channel, log)

    report = dispatcher.run(relevant, sorted([bad, good]))

    assert len(report.failures) == 1
    assert "exited with code 3" in str(report.failures[0])
    assert (dist / "good.js").exists()
    assert not (dist / "bad.js").exists()

    completions = [e for e in events if isinstance(e, WorkerComplete)]
    assert completions[0].error is report.failures[0]
    assert isinstance(completions[-1].error, TransformError)
    assert "1 file(s) failed" in str(completions[-1].error)


def test_file_failure_is_logged_once_when_rendered(project, channel, log, write_file, caplog):
    cwd, include, dist = project
    src = write_file(include / "bad.js", "x\n")
    LoggingRenderer(log.logger).attach(channel)
    dispatcher, relevant = make_dispatcher(project, {"build:js": python_command("raise SystemExit(3)")}, channel, log)

    with caplog.at_level(logging.DEBUG, logger="esmforge.tests"):
        dispatcher.run(relevant, [src])

    failures = [r for r in caplog.records if "exited with code 3" in r.getMessage()]
    assert len(failures) == 1
    assert failures[0].levelname == "ERROR"


def test_only_matching_extensions_are_dispatched(project, channel, log, write_file):
    cwd, include, dist = project
    ts = write_file(include / "a.ts", "export const a = 1;\n")
    png = write_file(include / "logo.png", "binary")
    dispatcher, relevant = make_dispatcher(project, {"build:ts": ECHO_COMMAND}, channel, log)

    report = dispatcher.run(relevant, [ts, png])

    assert report.written == [dist / "a.js"]


def test_plugin_worker_result_is_written(project, channel, events, log, write_file):
    cwd, include, dist = project
    write_file(cwd / "plugins" / "svelte_plugin.py", (
        "from pathlib import Path\n"
        "def build(path):\n"
        "    return {'result': 'import \"./' + Path(path).stem + '.css\";\\nexport default 1;\\n'}\n"
    ))
    src = write_file(include / "App.svelte", "<h1>hi</h1>")
    dispatcher, relevant = make_dispatcher(project, {"plugin:svelte": "plugins/svelte_plugin.py"}, channel, log)

    report = dispatcher.run(relevant, [src])

    assert report.ok
    assert (dist / "App.js").read_text(encoding="utf-8") == 'import "./App.css";\nexport default 1;\n'
    assert events[-1] == WorkerComplete(id="plugin:svelte", error=None)


def test_plugin_error_is_prefixed_and_isolated(project, channel, events, log, write_file):
    cwd, include, dist = project
    write_file(cwd / "flaky.py", (
        "def build(path):\n"
        "    if path.endswith('broken.vue'):\n"
        "        raise RuntimeError('template parse error')\n"
        "    return {'result': 'export default 1;\\n'}\n"
    ))
    broken = write_file(include / "broken.vue", "<template>")
    fine = write_file(include / "fine.vue", "<template></template>")
    dispatcher, relevant = make_dispatcher(project, {"plugin:vue": "flaky.py"}, channel, log)

    report = dispatcher.run(relevant, [broken, fine])

    assert len(report.failures) == 1
    assert str(report.failures[0]) == "[plugin:vue] template parse error"
    assert (dist / "fine.js").exists()
    assert WorkerComplete(id="plugin:vue", error=report.failures[0]) in events


def test_plugin_must_return_result_mapping(project, channel, log, write_file):
    cwd, include, dist = project
    write_file(cwd / "bad_plugin.py", "def build(path):\n    return 'not a mapping'\n")
    src = write_file(include / "a.vue", "")
    dispatcher, relevant = make_dispatcher(project, {"plugin:vue": "bad_plugin.py"}, channel, log)

    report = dispatcher.run(relevant, [src])

    assert len(report.failures) == 1
    assert "'result'" in str(report.failures[0])


def test_later_worker_for_same_extension_runs_after_earlier(project, channel, events, log, write_file):
    cwd, include, dist = project
    src = write_file(include / "a.js", "export default 1;\n")
    second = python_command("import sys; sys.stdin.read(); sys.stdout.write('export default 2;\\n')")
    dispatcher, relevant = make_dispatcher(
        project, [("build:js", ECHO_COMMAND), ("build:js,mjs", second)], channel, log
    )

    dispatcher.run(relevant, [src])

    assert (dist / "a.js").read_text(encoding="utf-8") == "export default 2;\n"
    updates = [e.id for e in events if isinstance(e, WorkerUpdate)]
    assert updates == ["build:js", "build:js,mjs"]


def test_output_path_outside_include_is_rejected(project, channel, log, tmp_path):
    dispatcher, _ = make_dispatcher(project, {"build:js": ECHO_COMMAND}, channel, log)
    with pytest.raises(TransformError):
        dispatcher.output_path(SourceFile.from_path(tmp_path / "elsewhere" / "x.js"))


def test_output_paths_stay_under_dist(project, channel, log):
    cwd, include, dist = project
    dispatcher, _ = make_dispatcher(project, {"build:ts": ECHO_COMMAND}, channel, log)
    out = dispatcher.output_path(SourceFile.from_path(include / "deep" / "x.ts"))
    assert out == dist.resolve() / "deep" / "x.js"
    assert Path(out).is_relative_to(dist.resolve())
